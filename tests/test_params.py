"""Pixel conversion of the tuning parameters, for interline 20 and lines 2 thick."""

import pytest

from keysig.params import Parameters, quorum
from keysig.staff import DegenerateGeometryError, Scale

CASES = [
    # (attribute, expected pixels)
    ("min_peak_cumul", 32),
    ("max_space_cumul", 4),
    ("core_stem_length", 40),
    ("max_peak_cumul", 80),
    ("max_peak_width", 8),
    ("max_first_space_width", 35),
    ("max_inner_space", 14),
    ("max_peak_dx", 28),
    ("max_sharp_delta", 15.0),
    ("min_flat_delta", 10.0),
    ("offset_threshold", 2.0),
    ("min_glyph_weight", 120),
    ("max_slice_dist", 10),
]


@pytest.mark.parametrize("name, expected", CASES, ids=[c[0] for c in CASES])
def test_pixel_values(params, name, expected):
    assert getattr(params, name) == expected


def test_trail_bounds(params):
    assert params.trail_bounds(True) == (6, 10)
    assert params.trail_bounds(False) == (20, 26)
    assert params.min_trail(True) == 4
    assert params.min_trail(False) == 16


def test_override(scale):
    params = Parameters(scale, offset_threshold=3.0)
    assert params.offset_threshold == 3.0


def test_unknown_override(scale):
    with pytest.raises(TypeError):
        Parameters(scale, no_such_thing=1)


def test_quorum_rounds_up():
    assert quorum(40, 0.75) == 30
    assert quorum(5, 0.75) == 4


def test_invalid_interline():
    with pytest.raises(DegenerateGeometryError):
        Scale(0)
