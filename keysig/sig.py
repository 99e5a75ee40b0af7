"""Symbol interpretation graph: inters (candidate symbols) and relations.

Only the subset needed by key retrieval: key alters, keys, clefs, support
and exclusion relations.
"""

import threading
from enum import Enum

from .glyphs import Shape, union_bounds
from .params import KEY_ALTERS_SUPPORT_RATIO

# Vertical reference of a flat: its bulb center, above the glyph bottom
FLAT_BULB_OFFSET = 0.5


class Inter:
    """A symbol interpretation, with an intrinsic grade."""

    def __init__(self, bounds, grade, staff=None):
        self.bounds = bounds
        self.grade = grade
        self.staff = staff
        self.sig = None
        self.deleted = False

    @property
    def x(self):
        return self.bounds[0]

    def increase(self, ratio):
        """Raise grade by ``ratio`` of the remaining distance to 1."""
        self.grade += ratio * (1.0 - self.grade)

    def delete(self):
        if self.sig is not None:
            self.sig.remove_vertex(self)
        self.deleted = True


class KeyAlterInter(Inter):
    """One alteration item (sharp or flat) of a key signature."""

    def __init__(self, glyph, shape, grade, staff, measured_pitch):
        super().__init__(glyph.bounds, grade, staff)
        self.glyph = glyph
        self.shape = shape
        self.measured_pitch = measured_pitch
        self.pitch = int(round(measured_pitch))

    @classmethod
    def create(cls, glyph, shape, grade, staff, interline):
        """Build the alter and measure its pitch within the staff."""
        x, y, w, h = glyph.bounds
        cx = x + w / 2.0
        if shape == Shape.FLAT:
            cy = y + h - FLAT_BULB_OFFSET * interline
        else:
            cy = y + h / 2.0
        return cls(glyph, shape, grade, staff, staff.pitch_position_of(cx, cy))

    @property
    def integer_pitch(self):
        return self.pitch

    def set_pitch(self, pitch):
        self.pitch = pitch

    def __repr__(self):
        return (f"KeyAlter{{{self.shape.name} p:{self.pitch} "
                f"g:{self.grade:.3f} {self.bounds}}}")


class KeyInter(Inter):
    def __init__(self, bounds, grade, fifths, alters, staff=None):
        super().__init__(bounds, grade, staff)
        self.fifths = fifths
        self.alters = list(alters)

    @property
    def shape(self):
        if self.fifths > 0:
            return Shape.SHARP
        if self.fifths < 0:
            return Shape.FLAT
        return None

    def __repr__(self):
        return f"Key{{fifths:{self.fifths} g:{self.grade:.3f} {self.bounds}}}"


class ClefInter(Inter):
    def __init__(self, kind, bounds, grade, staff=None):
        super().__init__(bounds, grade, staff)
        self.kind = kind

    def __repr__(self):
        return f"Clef{{{self.kind.name} x:{self.x}}}"


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------

class Relation:
    support_ratio = None

    def __repr__(self):
        return type(self).__name__


class KeyAltersRelation(Relation):
    """Mutual support between alters of the same key signature."""

    support_ratio = KEY_ALTERS_SUPPORT_RATIO


class ClefKeyRelation(Relation):
    """Compatibility between a clef and a key signature."""
    pass


class Exclusion(Relation):
    class Cause(Enum):
        OVERLAP = "overlap"
        INCOMPATIBLE = "incompatible"

    def __init__(self, cause):
        self.cause = cause

    def __repr__(self):
        return f"Exclusion({self.cause.value})"


class SymbolGraph:
    """Inters as vertices, relations as undirected edges.

    Mutations are guarded by a lock, since staves of a system may be
    processed in parallel.
    """

    def __init__(self):
        self._vertices = []
        self._edges = []  # (source, target, relation)
        self._lock = threading.RLock()

    def add_vertex(self, inter):
        with self._lock:
            if inter not in self._vertices:
                self._vertices.append(inter)
                inter.sig = self
        return inter

    def remove_vertex(self, inter):
        with self._lock:
            if inter in self._vertices:
                self._vertices.remove(inter)
            self._edges = [e for e in self._edges
                           if e[0] is not inter and e[1] is not inter]
            inter.sig = None

    def contains(self, inter):
        return inter in self._vertices

    def vertices(self):
        return list(self._vertices)

    def inters(self, staff=None, cls=Inter):
        return [v for v in self._vertices
                if isinstance(v, cls) and (staff is None or v.staff is staff)]

    def add_edge(self, source, target, relation):
        with self._lock:
            self._edges.append((source, target, relation))
        return relation

    def insert_exclusion(self, a, b, cause):
        return self.add_edge(a, b, Exclusion(cause))

    def edges_of(self, inter, cls=Relation):
        return [e for e in self._edges
                if isinstance(e[2], cls) and (e[0] is inter or e[1] is inter)]

    def opposite(self, edge, inter):
        return edge[1] if edge[0] is inter else edge[0]

    def get_relation(self, a, b, cls=Relation):
        for s, t, rel in self._edges:
            if isinstance(rel, cls) and {id(s), id(t)} == {id(a), id(b)}:
                return rel
        return None

    def exclusions(self, inter):
        return self.edges_of(inter, Exclusion)

    def contextual_grade(self, inter):
        """Intrinsic grade raised by the support of partners.

        Each supporting partner of grade g brings a ratio 1 + (r - 1) * g;
        the product R yields R * grade / (1 + (R - 1) * grade).
        """
        ratio = 1.0
        for edge in self._edges:
            rel = edge[2]
            if rel.support_ratio is None or (edge[0] is not inter and edge[1] is not inter):
                continue
            partner = self.opposite(edge, inter)
            ratio *= 1.0 + (rel.support_ratio - 1.0) * partner.grade
        g = inter.grade
        return ratio * g / (1.0 + (ratio - 1.0) * g)


def key_bounds(alters):
    return union_bounds(a.bounds for a in alters)
