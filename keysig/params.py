"""Scale-dependent tuning parameters for key signature retrieval.

All lengths are expressed as fractions of the staff interline, so that the
same settings work across image resolutions. ``Parameters`` converts them to
pixels for a given ``Scale``.
"""

import math

# ---------------------------------------------------------------------------
# Interline fractions
# ---------------------------------------------------------------------------

MAX_SLICE_DIST = 0.5          # max x distance to theoretical slice
CORE_STEM_LENGTH = 2.0        # core length for alteration "stem"
TYPICAL_ALTERATION_HEIGHT = 2.5
PRE_STAFF_MARGIN = 2.0        # margin before measure start
MAX_FIRST_PEAK_OFFSET = 2.0   # WRT browse start
MAX_PEAK_CUMUL = 4.0
MAX_PEAK_WIDTH = 0.4          # measured at threshold height
MAX_FLAT_HEADING = 0.4        # heading length before first flat peak
FLAT_TRAIL = 1.0
MIN_FLAT_TRAIL = 0.8
MAX_FLAT_TRAIL = 1.3
SHARP_TRAIL = 0.3
MIN_SHARP_TRAIL = 0.2
MAX_SHARP_TRAIL = 0.5
MAX_PEAK_DX = 1.4
MAX_SHARP_DELTA = 0.75        # max short peak delta for sharps
MIN_FLAT_DELTA = 0.5          # min short peak delta for flats
# Empirical; calibrate against a labeled corpus before changing.
OFFSET_THRESHOLD = 0.1
MAX_GLYPH_GAP = 1.5
MAX_GLYPH_WIDTH = 2.0
MAX_GLYPH_HEIGHT = 3.5
MAX_FIRST_SPACE_WIDTH = 1.75  # too small may miss the whole key-sig
MAX_INNER_SPACE = 0.7         # too small may miss final key-sig items

# Line thickness fraction
MAX_SPACE_CUMUL = 2.0

# Area fraction (square interline)
MIN_GLYPH_WEIGHT = 0.3

# Plain ratios
MIN_BLACK_RATIO = 0.75
PEAK_HEIGHT_RATIO = 0.5

# ---------------------------------------------------------------------------
# Grades
# ---------------------------------------------------------------------------

INTRINSIC_RATIO = 0.8
KEY_ALTER_MIN_GRADE = 0.3
KEY_ALTER_MIN_GRADE2 = 0.2
KEY_ALTER_BOOST = 0.25
KEY_ALTERS_SUPPORT_RATIO = 2.0

MAX_FIFTHS = 7
PURGE_MIN_WEIGHT = 2


class Parameters:
    """Pixel values derived from a ``Scale``.

    Any attribute may be overridden by keyword, e.g.
    ``Parameters(scale, offset_threshold=3.0)``.
    """

    def __init__(self, scale, **overrides):
        px = scale.to_pixels
        pxd = scale.to_pixels_double

        self.pre_staff_margin = px(PRE_STAFF_MARGIN)
        self.max_first_peak_offset = px(MAX_FIRST_PEAK_OFFSET)
        self.max_first_space_width = px(MAX_FIRST_SPACE_WIDTH)
        self.max_inner_space = px(MAX_INNER_SPACE)
        self.max_space_cumul = scale.line_to_pixels(MAX_SPACE_CUMUL)
        self.core_stem_length = px(CORE_STEM_LENGTH)
        self.min_black_ratio = MIN_BLACK_RATIO
        self.max_peak_cumul = px(MAX_PEAK_CUMUL)
        self.max_peak_width = px(MAX_PEAK_WIDTH)
        self.max_flat_heading = px(MAX_FLAT_HEADING)
        self.flat_trail = px(FLAT_TRAIL)
        self.min_flat_trail = px(MIN_FLAT_TRAIL)
        self.max_flat_trail = px(MAX_FLAT_TRAIL)
        self.sharp_trail = px(SHARP_TRAIL)
        self.min_sharp_trail = px(MIN_SHARP_TRAIL)
        self.max_sharp_trail = px(MAX_SHARP_TRAIL)
        self.max_peak_dx = px(MAX_PEAK_DX)
        self.max_sharp_delta = pxd(MAX_SHARP_DELTA)
        self.min_flat_delta = pxd(MIN_FLAT_DELTA)
        self.offset_threshold = pxd(OFFSET_THRESHOLD)
        self.max_glyph_gap = pxd(MAX_GLYPH_GAP)
        self.max_glyph_width = pxd(MAX_GLYPH_WIDTH)
        self.max_glyph_height = pxd(MAX_GLYPH_HEIGHT)
        self.min_glyph_weight = scale.area_to_pixels(MIN_GLYPH_WEIGHT)
        self.max_slice_dist = px(MAX_SLICE_DIST)

        # Maximum alteration contribution on top of staff lines
        max_alter_contrib = TYPICAL_ALTERATION_HEIGHT * (scale.interline - scale.main_fore)
        self.min_peak_cumul = int(round(
            5 * scale.main_fore + PEAK_HEIGHT_RATIO * max_alter_contrib
        ))

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise TypeError(f"Unknown parameter: {name}")
            setattr(self, name, value)

    def trail_bounds(self, sharps):
        """(typical, maximum) trailing length after the last good peak."""
        if sharps:
            return self.sharp_trail, self.max_sharp_trail
        return self.flat_trail, self.max_flat_trail

    def min_trail(self, sharps):
        return self.min_sharp_trail if sharps else self.min_flat_trail


def quorum(core_length, min_black_ratio):
    """Number of black rows required in a stem window."""
    return int(math.ceil(core_length * min_black_ratio))
