"""EM refinement of slice offset means."""

import numpy as np
import pytest

from keysig.clustering import Gaussian, em


def test_means_move_to_cluster_centers():
    values = [40, 59, 81, 40, 59, 81, 59, 81]
    laws = [Gaussian(46.3), Gaussian(66.3), Gaussian(81.0)]

    pi = em(values, laws)

    assert [round(law.mean) for law in laws] == [40, 59, 81]
    assert pi.sum() == pytest.approx(1.0)
    assert pi == pytest.approx([2 / 8, 3 / 8, 3 / 8], abs=1e-3)


def test_far_values_do_not_underflow():
    laws = [Gaussian(0.0), Gaussian(1000.0)]
    em([0.0, 1000.0, 2000.0], laws)
    assert all(np.isfinite(law.mean) for law in laws)


def test_update_sigma():
    laws = [Gaussian(0.0, 1.0)]
    em([-2.0, 2.0], laws, update_sigma=True)
    assert laws[0].mean == pytest.approx(0.0)
    assert laws[0].sigma == pytest.approx(2.0)


def test_empty_input():
    assert len(em([], [Gaussian(1.0)])) == 1
    assert len(em([1.0], [])) == 0
