"""Horizontal slicing of the key area, one slice per alteration item."""

import logging
import math

from .events import last_good_peak

logger = logging.getLogger(__name__)


class Slice:
    """Rectangular slice of a key-sig, likely to contain one alteration item."""

    def __init__(self, rect):
        self.rect = rect  # (x, y, width, height)
        self.glyph = None  # best glyph, if any
        self.eval = None  # best evaluation, if any
        self.alter = None  # retrieved KeyAlterInter, if any
        self.id = 0  # 1-based position, kept by the owner

    @property
    def x(self):
        return self.rect[0]

    @property
    def stop(self):
        return self.rect[0] + self.rect[2] - 1

    def x_embraces(self, x):
        return self.rect[0] <= x < self.rect[0] + self.rect[2]

    def offer(self, glyph, evaluation):
        """Keep ``glyph`` if its evaluation beats the current best."""
        if self.eval is None or self.eval.grade < evaluation.grade:
            self.eval = evaluation
            self.glyph = glyph

    def __repr__(self):
        parts = [f"#{self.id}"]
        if self.alter is not None:
            parts.append(repr(self.alter))
        if self.glyph is not None:
            parts.append(f"glyph#{self.glyph.id} {self.eval.grade:.3f}")
        return "Slice{" + " ".join(parts) + "}"


def refine_stop(key_range, projection, good_peak, typical_trail, max_trail):
    """Set the key-sig stop at the lowest projection after the last good peak.

    Looks within [start + typical_trail - 1, start + max_trail] of that peak.
    """
    x_min = good_peak.start + typical_trail - 1
    x_max = min(projection.stop, good_peak.start + max_trail)
    min_count = None

    for x in range(x_min, x_max + 1):
        count = projection.value(x)
        if min_count is None or count < min_count:
            key_range.stop = x - 1
            min_count = count


def compute_starts(signature, peaks, key_range, projection, params):
    """Compute the theoretical starting abscissa of each key-sig item.

    Sharps start at the area start, then midway between the second stem of
    an item and the first stem of the next one. Flats start at the area
    start, then at each peak. Also refines the area stop.

    Returns:
        list of starts, empty if no consistent slicing exists.
    """
    starts = []
    good = last_good_peak(peaks)
    if good is None or key_range.start is None:
        return starts

    if signature > 0:
        starts.append(key_range.start)
        for i in range(2, len(peaks), 2):
            peak = peaks[i]
            if peak.invalid:
                break
            starts.append(int(math.ceil(0.5 * (peak.start + peaks[i - 1].stop))))
    elif signature < 0:
        first = peaks[0]
        # Make sure there is nothing right before first peak
        heading = (first.start + first.stop) // 2 - key_range.start
        if heading > params.max_flat_heading:
            logger.debug("Too large heading before first flat peak")
            return starts

        starts.append(key_range.start)
        for peak in peaks[1:]:
            if peak.invalid:
                break
            starts.append(peak.start)
    else:
        return starts

    typical, maximum = params.trail_bounds(signature > 0)
    refine_stop(key_range, projection, good, typical, maximum)

    return starts[:abs(signature)]


def allocate_slices(starts, key_range, roi):
    """Define one slice per start; the last one ends at the area stop."""
    slices = []
    for i, start in enumerate(starts):
        stop = starts[i + 1] - 1 if i < len(starts) - 1 else key_range.stop
        slice_ = Slice(roi.rect(start, max(start, stop)))
        slice_.id = i + 1
        slices.append(slice_)
    return slices
