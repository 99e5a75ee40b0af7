"""Infer the key signature value (-flats, 0, +sharps) from detected peaks.

Typical x delta between the two stems of a sharp is around 0.5+ interline,
between stems of two flats (or first stems of two sharps) around 1+
interline. Some flat deltas may be smaller than some sharp deltas, so only
the short deltas (at or below the mean) are averaged, and the left side of
the first peak (almost void for a flat) breaks ties.
"""

import logging

from .events import last_good_peak
from .glyphs import Shape
from .params import MAX_FIFTHS

logger = logging.getLogger(__name__)


def retrieve_signature(peaks, area_start, params):
    """Compute the signature from the sequence of peaks.

    For sharps the peak count must be even; otherwise the last peak gets
    invalidated (a trailing invalid peak is first removed from ``peaks``).

    Args:
        peaks: list of ``Peak``, possibly ending with an invalid one. May be
            modified.
        area_start: key area start abscissa.
        params: ``Parameters``.

    Returns:
        (signature, shape) with signature > 0 for sharps, < 0 for flats and
        shape None when signature is 0.
    """
    if not peaks:
        return 0, None

    last = len(peaks) - 1
    if peaks[last].invalid:
        if last > 0:
            last -= 1
        else:
            logger.debug("no valid peak")
            return 0, None

    if last == 0:
        return -1, Shape.FLAT

    centers = [p.center for p in peaks[:last + 1]]
    mean_dx = (centers[-1] - centers[0]) / last
    shorts = [b - a for a, b in zip(centers, centers[1:]) if b - a <= mean_dx]
    mean_short = sum(shorts) / len(shorts)
    offset = peaks[0].start - area_start

    if mean_short < params.min_flat_delta:
        shape = Shape.SHARP
    elif mean_short > params.max_sharp_delta:
        shape = Shape.FLAT
    else:
        shape = Shape.SHARP if offset > params.offset_threshold else Shape.FLAT

    logger.debug("mean_short:%.1f offset:%d -> %s", mean_short, offset, shape.name)

    if shape == Shape.SHARP:
        if (last + 1) % 2 != 0:
            if peaks[-1].invalid:
                peaks.pop()
            peaks[-1].set_invalid()
            last -= 1
        signature = (last + 1) // 2
    else:
        signature = -(last + 1)

    if abs(signature) > MAX_FIFTHS:
        logger.debug("signature %d capped", signature)
        signature = MAX_FIFTHS if signature > 0 else -MAX_FIFTHS

    return signature, shape


def check_signature(signature, peaks, key_range, params):
    """Check a final invalid peak, which may shorten the signature.

    The key area ends right before that invalid peak. If the trailing length
    after the last good peak is too short for the current shape, the last
    item is removed and its peaks are invalidated, so that later slicing
    measures from the last kept item.
    """
    if signature == 0 or not peaks:
        return signature

    last = peaks[-1]
    if not last.invalid:
        return signature

    key_range.stop = last.start - 1
    good = last_good_peak(peaks)
    if good is None:
        return 0

    trail = key_range.stop - good.start + 1
    sharps = signature > 0
    if trail < params.min_trail(sharps):
        logger.debug("Removing too narrow %s", "sharp" if sharps else "flat")
        signature += -1 if sharps else 1

        # Peaks of the removed item no longer count as good ones
        first_invalid = next(i for i, p in enumerate(peaks) if p.invalid)
        for peak in peaks[max(0, first_invalid - (2 if sharps else 1)):first_invalid]:
            peak.set_invalid()

    return signature
