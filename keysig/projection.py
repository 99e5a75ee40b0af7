"""Vertical projection of the key area onto the x-axis.

Pipeline pieces used by ``KeyBuilder``:
    1. Browse rectangle: measure start .. browse stop, from two interlines
       above the staff to one interline below, so any key under any clef fits
    2. Projection (count foreground pixels per column -> 1D signal)
    3. Stem test (sliding window of black rows inside a narrow band)
    4. Void test for a candidate range
"""

import logging

import numpy as np

from .params import quorum
from .staff import DegenerateGeometryError

logger = logging.getLogger(__name__)

FOREGROUND = 0
BACKGROUND = 255


# ---------------------------------------------------------------------------
# Region of interest
# ---------------------------------------------------------------------------

class Roi:
    """Vertical band scanned for the key: top ordinate and height."""

    def __init__(self, y, height):
        self.y = y
        self.height = height

    def __repr__(self):
        return f"Roi(y={self.y}, height={self.height})"

    def rect(self, start, stop):
        """(x, y, width, height) over abscissa range [start, stop]."""
        return (start, self.y, stop - start + 1, self.height)

    def area_pixels(self, source, key_range):
        """Copy of the source pixels within the whole key area."""
        return crop(source, self.rect(key_range.start, key_range.stop))

    def slice_pixels(self, source, slice_, slices):
        """Copy of the slice pixels, with good items of adjacent slices erased.

        A shared stem between neighbors would otherwise be counted twice.
        """
        rect = slice_.rect
        buf = crop(source, rect)
        idx = slices.index(slice_)

        for i in (idx - 1, idx + 1):
            if i < 0 or i >= len(slices):
                continue
            alter = slices[i].alter
            if alter is None:
                continue
            glyph = alter.glyph
            if not intersects(glyph.bounds, rect):
                continue
            logger.debug("Erasing %s from %s", glyph, slice_)
            erase_glyph(buf, glyph, rect[0], rect[1])

        return buf


def intersects(a, b):
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return ax < bx + bw and bx < ax + aw and ay < by + bh and by < ay + ah


def crop(source, rect):
    """Copy ``rect`` out of ``source``; parts outside the image are background."""
    x, y, w, h = rect
    buf = np.full((h, w), BACKGROUND, dtype=np.uint8)
    img_h, img_w = source.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(img_w, x + w), min(img_h, y + h)
    if x0 < x1 and y0 < y1:
        buf[y0 - y:y1 - y, x0 - x:x1 - x] = source[y0:y1, x0:x1]
    return buf


def erase_glyph(buf, glyph, left, top):
    """Paint the glyph pixels as background in ``buf`` located at (left, top)."""
    gx, gy, gw, gh = glyph.bounds
    h, w = buf.shape
    x0, y0 = max(gx, left), max(gy, top)
    x1, y1 = min(gx + gw, left + w), min(gy + gh, top + h)
    if x0 >= x1 or y0 >= y1:
        return
    mask = glyph.mask[y0 - gy:y1 - gy, x0 - gx:x1 - gx]
    region = buf[y0 - top:y1 - top, x0 - left:x1 - left]
    region[mask] = BACKGROUND


def browse_rect(staff, scale, measure_start, browse_stop, pre_staff_margin):
    """Rectangle to be browsed for any key signature, whatever the clef.

    Vertically, from first line minus 2 interlines to last line plus 1
    interline, both taken at the left abscissa of the rectangle.
    """
    x_min = max(0, measure_start - pre_staff_margin)
    x_max = browse_stop
    if x_max < x_min:
        raise DegenerateGeometryError(
            f"{staff} empty browse range [{x_min}, {x_max}]"
        )
    y_min = staff.first_line.y_at(x_min) - 2 * scale.interline
    y_max = staff.last_line.y_at(x_min) + scale.interline
    if y_max <= y_min:
        raise DegenerateGeometryError(f"{staff} inverted staff lines")
    return (x_min, y_min, x_max - x_min + 1, y_max - y_min + 1)


def browse_stop_of(staff, measure_start, browse_start, global_width):
    """Abscissa where projection analysis stops.

    Typically ``measure_start + global_width``, but a good bar line found
    after ``browse_start`` ends the range just before it.
    """
    end = measure_start + global_width
    for bar in staff.bars:
        if not bar.good:
            continue
        if browse_start < bar.x <= end:
            logger.debug("%s stopping key search before %s", staff, bar)
            end = bar.x - 1
            break
    return end


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

class Projection:
    """Foreground counts per column, addressable over [start, stop]."""

    def __init__(self, start, values):
        self.start = start
        self.values = np.asarray(values, dtype=np.int32)
        self.stop = start + len(self.values) - 1

    def value(self, x):
        if x < self.start or x > self.stop:
            return 0
        return int(self.values[x - self.start])

    def __len__(self):
        return len(self.values)


def build_projection(source, rect):
    """Count foreground pixels in each column of ``rect``.

    Columns or rows falling outside the image count as background.
    """
    x, y, w, h = rect
    if w <= 0 or h <= 0:
        raise DegenerateGeometryError(f"Empty projection rectangle {rect}")
    band = crop(source, rect)
    return Projection(x, np.count_nonzero(band == FOREGROUND, axis=0))


# ---------------------------------------------------------------------------
# Stem test
# ---------------------------------------------------------------------------

def has_stem(area, source, core_length, min_black_ratio):
    """Whether ``area`` holds a vertical portion of ``core_length`` rows with
    at least ``min_black_ratio`` of black rows.

    A row is black if it contains at least one foreground pixel. A few broken
    rows are tolerated, shallow peaks are not.

    Args:
        area: (x, y, width, height) very narrow rectangle of interest.
        source: binary image, foreground = 0.
        core_length: minimum "stem" length in rows.
        min_black_ratio: minimum ratio of black rows within the core length.
    """
    buf = crop(source, area)
    blacks = np.any(buf == FOREGROUND, axis=1).astype(np.int32)
    if len(blacks) == 0:
        return False

    needed = quorum(core_length, min_black_ratio)
    window = min(core_length, len(blacks))
    counts = np.convolve(blacks, np.ones(window, dtype=np.int32), mode='valid')
    return bool(np.max(counts) >= needed)


def is_stem_like(peak, roi, source, params):
    """Check whether a projection peak corresponds to a "stem"."""
    x, width = peak.start, peak.width
    if width <= 2:
        # Slight margin on left & right of peak
        x, width = x - 1, width + 2
    area = (x, roi.y, width, roi.height)
    return has_stem(area, source, params.core_stem_length, params.min_black_ratio)


def is_range_void(projection, start, stop, max_space_cumul):
    """True when no significant chunk lies in [start, stop].

    The mean of non-zero column counts must stay at or below half the space
    threshold.
    """
    values = np.array([projection.value(x) for x in range(start, stop + 1)])
    positive = values[values > 0]
    mean_height = int(round(positive.mean())) if len(positive) else 0
    logger.debug("is_range_void start:%d stop:%d mean_height:%d", start, stop, mean_height)
    return mean_height <= max_space_cumul / 2
