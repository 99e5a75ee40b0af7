"""Staff geometry and per-staff header state consumed by the key builders.

Staff, line and bar detection happen upstream; this module only holds what
they produce, plus the mutable header context each ``KeyBuilder`` owns.
"""

import numpy as np


class KeySigError(Exception):
    """Base exception for key signature retrieval."""
    pass


class DegenerateGeometryError(KeySigError):
    """Raised when staff geometry cannot support a key lookup."""
    pass


class Scale:
    """Sheet scale: interline and main staff line thickness, in pixels."""

    def __init__(self, interline: int, main_fore: int = 1):
        if interline <= 0:
            raise DegenerateGeometryError(f"Invalid interline: {interline}")
        self.interline = interline
        self.main_fore = main_fore

    def to_pixels(self, fraction):
        return int(round(fraction * self.interline))

    def to_pixels_double(self, fraction):
        return float(fraction * self.interline)

    def line_to_pixels(self, fraction):
        return int(round(fraction * self.main_fore))

    def area_to_pixels(self, fraction):
        return int(round(fraction * self.interline * self.interline))


class StaffLine:
    """A staff line given as a polyline of (x, y) points, sorted by x."""

    def __init__(self, points):
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if len(pts) == 0:
            raise DegenerateGeometryError("Staff line without points")
        order = np.argsort(pts[:, 0])
        self.xs = pts[order, 0]
        self.ys = pts[order, 1]

    @classmethod
    def horizontal(cls, y, x_min=0, x_max=1):
        return cls([(x_min, y), (x_max, y)])

    def y_at(self, x):
        """Ordinate at abscissa ``x`` (linear interpolation, flat extension)."""
        return int(round(float(np.interp(x, self.xs, self.ys))))


class Barline:
    def __init__(self, x, width=1, good=True):
        self.x = x
        self.width = width
        self.good = good

    def __repr__(self):
        return f"Barline(x={self.x}, good={self.good})"


class Range:
    """Key abscissa range: browsing bounds and inferred key-area bounds."""

    def __init__(self, browse_start=None, browse_stop=None):
        self.browse_start = browse_start
        self.browse_stop = browse_stop
        self.start = None
        self.stop = None

    def clear(self):
        self.start = None
        self.stop = None

    def __repr__(self):
        return (f"Range(browse={self.browse_start}-{self.browse_stop}, "
                f"area={self.start}-{self.stop})")


class StaffHeader:
    """Mutable context of the staff header (clef, key, time).

    ``header_start`` is the measure start, ``clef_stop`` the right edge of the
    clef (if known) and ``header_stop`` a fallback abscissa to start browsing.
    """

    def __init__(self, header_start, header_stop=None, clef_stop=None):
        self.header_start = header_start
        self.header_stop = header_stop if header_stop is not None else header_start
        self.clef_stop = clef_stop
        self.key_range: Range = None
        self.key = None
        self.alter_starts: list[int] = None
        self.key_stop: int = None  # last key column, inclusive

    def clear_key(self):
        self.key = None
        self.alter_starts = None
        self.key_stop = None


class Staff:
    def __init__(self, staff_id, first_line, last_line, header, bars=None):
        self.id = staff_id
        self.first_line: StaffLine = first_line
        self.last_line: StaffLine = last_line
        self.header: StaffHeader = header
        self.bars: list[Barline] = sorted(bars or [], key=lambda b: b.x)
        self.attachments: dict[str, tuple] = {}

    def __repr__(self):
        return f"Staff#{self.id}"

    def pitch_position_of(self, x, y):
        """Pitch position of (x, y): 0 on middle line, -4 top line, +4 bottom line."""
        top = self.first_line.y_at(x)
        bottom = self.last_line.y_at(x)
        if bottom <= top:
            raise DegenerateGeometryError(f"{self} has inverted lines at x={x}")
        return 4.0 * (2 * y - top - bottom) / (bottom - top)

    def add_attachment(self, key, rect):
        self.attachments[key] = rect


class System:
    """A system: staves processed together, sharing one symbol graph."""

    def __init__(self, system_id, staves, scale, sig=None):
        from .sig import SymbolGraph

        self.id = system_id
        self.staves: list[Staff] = list(staves)
        self.scale: Scale = scale
        self.sig = sig if sig is not None else SymbolGraph()

    def __repr__(self):
        return f"System#{self.id}"
