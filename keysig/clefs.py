"""Clef kinds and their canonical key signature pitch positions.

Pitch positions count half-interlines from the middle line, downwards
positive: -4 is the top line, +4 the bottom line. Sharps come in FCGDAEB
order, flats in BEADGCF order. Relative positioning is the same for every
clef, except sharps under a tenor clef.
"""

import logging
from enum import Enum

from .glyphs import Shape

logger = logging.getLogger(__name__)


class ClefKind(Enum):
    TREBLE = "treble"
    BASS = "bass"
    ALTO = "alto"
    TENOR = "tenor"


SHARPS_MAP = {
    ClefKind.TREBLE: (-4, -1, -5, -2, 1, -3, 0),
    ClefKind.ALTO: (-3, 0, -4, -1, 2, -2, 1),
    ClefKind.BASS: (-2, 1, -3, 0, 3, -1, 2),
    ClefKind.TENOR: (3, -1, 2, -2, 1, -3, 0),
}

FLATS_MAP = {
    ClefKind.TREBLE: (0, -3, 1, -2, 2, -1, 3),
    ClefKind.ALTO: (1, -2, 2, -1, 3, 0, 4),
    ClefKind.BASS: (2, -1, 3, 0, 4, 1, 5),
    ClefKind.TENOR: (-1, -4, 0, -3, 1, -2, 2),
}


def standard_pitches(shape, kind):
    return SHARPS_MAP[kind] if shape == Shape.SHARP else FLATS_MAP[kind]


def guess_kind(shape, measured_pitches):
    """Guess the clef kind that best fits a sequence of measured pitches.

    Args:
        shape: Shape.SHARP or Shape.FLAT.
        measured_pitches: one value per slice, None for an empty slice.

    Returns:
        (best kind, {kind: mean squared distance}). Lower distance is better.
    """
    results = {}
    for kind in ClefKind:
        std = standard_pitches(shape, kind)
        dist = 0.0
        count = 0
        for i, pitch in enumerate(measured_pitches):
            if pitch is None or i >= len(std):
                continue
            dist += (pitch - std[i]) ** 2
            count += 1
        results[kind] = dist / count if count else float('inf')

    best = min(ClefKind, key=lambda k: results[k])
    logger.debug("guess_kind %s %s -> %s", shape.name, results, best.name)
    return best, results
