"""Browse rectangle, projection counts, stem and void tests."""

import numpy as np
import pytest

from keysig.events import Peak
from keysig.projection import (Projection, Roi, browse_rect, browse_stop_of,
                               build_projection, crop, has_stem, is_range_void,
                               is_stem_like)
from keysig.staff import Barline, DegenerateGeometryError

import synthetic


def test_browse_rect_spans_two_interlines_above_one_below(scale, params):
    staff = synthetic.make_staff(1, 60)
    rect = browse_rect(staff, scale, 20, 220, params.pre_staff_margin)
    assert rect == (0, 20, 221, 141)


def test_browse_rect_empty_range(scale, params):
    staff = synthetic.make_staff(1, 60)
    with pytest.raises(DegenerateGeometryError):
        browse_rect(staff, scale, 100, 10, params.pre_staff_margin)


BAR_CASES = [
    # (bars, expected browse stop)
    ([], 220),
    ([Barline(150)], 149),
    ([Barline(150, good=False)], 220),
    ([Barline(40)], 220),  # before browse start
    ([Barline(300)], 220),  # beyond projection width
    ([Barline(120), Barline(90)], 89),
]


@pytest.mark.parametrize(
    "bars, expected",
    BAR_CASES,
    ids=["no_bar", "good_bar", "bad_bar", "bar_before", "bar_after", "first_bar"],
)
def test_browse_stop(bars, expected):
    staff = synthetic.make_staff(1, 60, bars)
    assert browse_stop_of(staff, 20, 50, 200) == expected


def test_projection_counts_foreground_per_column():
    img = synthetic.blank()
    synthetic.draw_sharp(img, 60, 100)
    proj = build_projection(img, (50, 20, 60, 141))

    assert proj.start == 50
    assert proj.stop == 109
    assert proj.value(59) == 0
    assert proj.value(60) == 8
    assert proj.value(64) == 60
    assert proj.value(66) == 8
    assert proj.value(71) == 60
    assert proj.value(75) == 8
    assert proj.value(76) == 0


def test_projection_outside_range_is_zero():
    proj = Projection(10, [3, 4, 5])
    assert proj.value(9) == 0
    assert proj.value(12) == 5
    assert proj.value(13) == 0
    assert len(proj) == 3


def test_crop_pads_outside_image_with_background():
    img = synthetic.blank(10, 10)
    img[0, 0] = 0
    buf = crop(img, (-2, -2, 4, 4))
    assert buf.shape == (4, 4)
    assert buf[2, 2] == 0
    assert np.count_nonzero(buf == 0) == 1


def _column(height, black_rows):
    img = synthetic.blank(height, 3)
    for y in black_rows:
        img[y, 1] = 0
    return img


STEM_CASES = [
    # (black rows, expected)
    (range(10, 50), True),
    ([y for y in range(10, 50) if y % 5 != 0], True),  # a few broken rows
    (range(10, 35), False),  # too short
    ([y for y in range(10, 90) if y % 2 == 0], False),  # dotted
]


@pytest.mark.parametrize(
    "rows, expected",
    STEM_CASES,
    ids=["solid", "broken", "short", "dotted"],
)
def test_has_stem(rows, expected):
    img = _column(100, rows)
    assert has_stem((0, 0, 3, 100), img, 40, 0.75) is expected


def test_has_stem_shorter_area_than_core():
    img = _column(30, range(0, 30))
    assert has_stem((0, 0, 3, 30), img, 40, 0.75) is True


def test_stem_like_widens_narrow_peak(params):
    img = synthetic.blank()
    synthetic.draw_flat(img, 60, 100)
    roi = Roi(20, 141)
    assert is_stem_like(Peak(60, 61, 56), roi, img, params)
    assert not is_stem_like(Peak(64, 65, 6), roi, img, params)


VOID_CASES = [
    # (values, expected)
    ([0] * 10, True),
    ([2, 0, 0, 1, 2], True),
    ([0, 0, 8, 8, 0], False),
]


@pytest.mark.parametrize("values, expected", VOID_CASES, ids=["blank", "noise", "chunk"])
def test_is_range_void(values, expected):
    proj = Projection(100, values)
    assert is_range_void(proj, 100, 100 + len(values) - 1, 4) is expected
