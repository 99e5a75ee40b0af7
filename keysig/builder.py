"""Retrieve a staff key signature from the vertical projection of its pixels.

A key signature is a sequence of consistent alterations (all sharps, all
flats, or none) in a predefined order: FCGDAEB for sharps, BEADGCF for
flats. The projection of the key area onto the x-axis is split into slices,
one per alteration item.

Strategy:
    1. Find the first significant space after the clef; if really wide,
       there is no key signature. The next really wide space ends it.
    2. Look for peaks (stem-like items) in the area.
    3. Use delta abscissa between peaks to tell sharps from flats, then
       count items.
    4. Slice the area, one slice per item.
    5. Using connected components of the whole area, retrieve one good
       compound per slice via the shape classifier.
    6. For slices left empty, extract pixels of the slice alone.
    7. Once the whole system is known, snap each item pitch to the best
       matching clef and create the key.
"""

import logging

from .clefs import guess_kind, standard_pitches
from .glyphs import (KEY_SHAPES, RunComponentBuilder, Shape, decompose,
                     purge_glyphs)
from .params import (INTRINSIC_RATIO, KEY_ALTER_BOOST, KEY_ALTER_MIN_GRADE,
                     KEY_ALTER_MIN_GRADE2, PURGE_MIN_WEIGHT, Parameters)
from .projection import (Roi, browse_rect, browse_stop_of, build_projection,
                         is_range_void, is_stem_like)
from .scanner import KeyScanner
from .sig import (ClefInter, ClefKeyRelation, Exclusion, KeyAlterInter,
                  KeyAltersRelation, KeyInter, key_bounds)
from .signature import check_signature, retrieve_signature
from .slices import Slice, allocate_slices, compute_starts
from .staff import DegenerateGeometryError, Range

logger = logging.getLogger(__name__)


class KeyBuilder:
    """Key signature retrieval for one staff.

    Args:
        staff: the ``Staff`` to analyze; its header holds the key range.
        source: staff-free binary image, foreground = 0.
        scale: sheet ``Scale``.
        sig: the system ``SymbolGraph`` receiving the results.
        classifier: a ``Classifier``.
        measure_start: precise abscissa of measure start.
        browse_start: estimated abscissa to start browsing (after clef).
        global_width: theoretical projection length from measure start.
        component_builder: a ``ComponentBuilder``, OpenCV-based by default.
        params: ``Parameters``, derived from ``scale`` by default.
    """

    def __init__(self, staff, source, scale, sig, classifier, measure_start,
                 browse_start, global_width, component_builder=None, params=None):
        self.staff = staff
        self.source = source
        self.scale = scale
        self.sig = sig
        self.classifier = classifier
        self.component_builder = component_builder or RunComponentBuilder()
        self.params = params or Parameters(scale)
        self.measure_start = measure_start

        header = staff.header
        if header.key_range is None:
            header.key_range = Range(
                browse_start,
                browse_stop_of(staff, measure_start, browse_start, global_width),
            )
        self.range = header.key_range

        self.peaks = []  # sequence of peaks found
        self.events = []  # sequence of spaces and peaks, for diagnostics
        self.slices: list[Slice] = []
        self.key_shape = None
        self.key_inter = None

        self.roi = None
        self.projection = None
        try:
            rect = browse_rect(staff, scale, measure_start, self.range.browse_stop,
                               self.params.pre_staff_margin)
            self.roi = Roi(rect[1], rect[3])
            self.projection = build_projection(source, rect)
        except DegenerateGeometryError as e:
            logger.warning("%s no key lookup: %s", staff, e)

    def __repr__(self):
        return f"KeyBuilder#{self.staff.id}"

    @property
    def browse_start(self):
        return self.range.browse_start

    @property
    def fifths(self):
        """Signed count of slices holding an alter (+sharps, -flats)."""
        count = sum(1 for s in self.slices if s.alter is not None)
        if count == 0 or self.key_shape is None:
            return 0
        return count if self.key_shape == Shape.SHARP else -count

    # -----------------------------------------------------------------------
    # Processing
    # -----------------------------------------------------------------------

    def process(self):
        """Process the potential key signature of the staff.

        Returns:
            the inferred signature, 0 when there is none.
        """
        logger.debug("Key processing for %s", self.staff)
        if self.projection is None:
            return 0

        self._browse_area()

        area_start = self.range.start if self.range.start is not None else self.range.browse_start
        signature, self.key_shape = retrieve_signature(self.peaks, area_start, self.params)

        if signature != 0:
            signature = check_signature(signature, self.peaks, self.range, self.params)

        if signature != 0:
            if self.range.stop is None:
                self.range.stop = self.range.browse_stop

            starts = compute_starts(signature, self.peaks, self.range, self.projection, self.params)

            if starts:
                self.slices = allocate_slices(starts, self.range, self.roi)
                self._attach_slices()

                # First, look for suitable items in key area, using components
                self.retrieve_components()

                # If some slices are still empty, use hard slice extraction
                empty = [s for s in self.slices if s.alter is None]
                if empty:
                    logger.debug("%s empty key slices: %s", self.staff, empty)
                    for slice_ in empty:
                        self.extract_alter(slice_, (self.key_shape,), KEY_ALTER_MIN_GRADE)
            else:
                signature = 0

        if signature == 0:
            self.key_shape = None

        return signature

    def reprocess(self, browse_start):
        """Re-launch the processing, using an updated browsing abscissa."""
        self.range.browse_start = browse_start
        self.reset()
        return self.process()

    def reset(self):
        """Discard everything found so far, so that a new browsing can be launched."""
        for slice_ in self.slices:
            if slice_.alter is not None:
                slice_.alter.delete()
        if self.key_inter is not None:
            self.key_inter.delete()
            self.key_inter = None

        self.peaks = []
        self.events = []
        self.slices = []
        self.key_shape = None
        self.range.clear()
        self.staff.header.clear_key()
        for key in [k for k in self.staff.attachments if k.startswith("k")]:
            del self.staff.attachments[key]

    def _browse_area(self):
        scanner = KeyScanner(
            self.projection, self.range, self.params,
            lambda peak: is_stem_like(peak, self.roi, self.source, self.params),
            label=repr(self.staff),
        )
        self.peaks = scanner.browse()
        self.events = scanner.events

    # -----------------------------------------------------------------------
    # Item extraction
    # -----------------------------------------------------------------------

    def _is_size_acceptable(self, box):
        return box[3] <= self.params.max_glyph_height and box[2] <= self.params.max_glyph_width

    def _is_weight_acceptable(self, weight):
        return weight >= self.params.min_glyph_weight

    def _evaluate_slice_glyph(self, slice_, glyph, shapes):
        evals = self.classifier.evaluate(glyph, self.scale.interline)
        for shape in shapes:
            evaluation = evals.get(shape)
            if evaluation is None:
                continue
            logger.debug("%s width:%d eval:%s", glyph, glyph.width, evaluation)
            slice_.offer(glyph, evaluation)

    def _slice_of(self, glyph):
        cx, _ = glyph.centroid
        for slice_ in self.slices:
            if slice_.x_embraces(cx):
                return slice_
        return None

    def _create_alter(self, slice_, min_grade):
        if slice_.eval is None:
            return None
        grade = INTRINSIC_RATIO * slice_.eval.grade
        if grade < min_grade:
            return None
        try:
            alter = KeyAlterInter.create(
                slice_.glyph, slice_.eval.shape, grade, self.staff, self.scale.interline
            )
        except DegenerateGeometryError as e:
            logger.warning("%s cannot measure pitch: %s", self.staff, e)
            return None
        self.sig.add_vertex(alter)
        slice_.alter = alter
        logger.debug("%s", slice_)
        return alter

    def retrieve_components(self):
        """Look in key area for key items, based on connected components."""
        buf = self.roi.area_pixels(self.source, self.range)
        parts = self.component_builder.build_components(buf, (self.range.start, self.roi.y))
        parts = purge_glyphs(parts, self.range.stop, PURGE_MIN_WEIGHT)
        shapes = (self.key_shape,)

        def evaluate(glyph):
            slice_ = self._slice_of(glyph)
            if slice_ is not None:
                self._evaluate_slice_glyph(slice_, glyph, shapes)

        decompose(parts, self.params.max_glyph_gap, self._is_size_acceptable,
                  self._is_weight_acceptable, evaluate)

        for slice_ in self.slices:
            self._create_alter(slice_, KEY_ALTER_MIN_GRADE)
            logger.debug("%s", slice_)

    def extract_alter(self, slice_, shapes, min_grade):
        """Extract the slice pixels alone and evaluate possible glyphs.

        Args:
            slice_: the slice to process.
            shapes: shapes to try.
            min_grade: minimum acceptable grade.

        Returns:
            the created alter, if any.
        """
        buf = self.roi.slice_pixels(self.source, slice_, self.slices)
        x, y, w, _ = slice_.rect
        parts = self.component_builder.build_components(buf, (x, y))
        parts = purge_glyphs(parts, x + w - 1, PURGE_MIN_WEIGHT)

        decompose(parts, self.params.max_glyph_gap, self._is_size_acceptable,
                  self._is_weight_acceptable,
                  lambda glyph: self._evaluate_slice_glyph(slice_, glyph, shapes))

        return self._create_alter(slice_, min_grade)

    def _attach_slices(self):
        for i, slice_ in enumerate(self.slices):
            slice_.id = i + 1
            self.staff.add_attachment(f"k{i + 1}", slice_.rect)

    def insert_slice(self, index, theoretical_offset):
        """Insert a slice at ``index``, starting at the theoretical offset
        (WRT measure start), and try to assign it a valid alter."""
        next_slice = self.slices[index]
        start = self.measure_start + theoretical_offset
        if index > 0:
            start = max(start, self.slices[index - 1].stop + 1)
        stop = next_slice.x - 1
        if stop < start:
            logger.debug("%s no room to insert key slice at index:%d", self.staff, index)
            return None

        slice_ = Slice(self.roi.rect(start, stop))
        self.slices.insert(index, slice_)
        self._attach_slices()
        logger.debug("%s trying to insert key left %s", self.staff, slice_)

        shapes = (self.key_shape,) if self.key_shape is not None else KEY_SHAPES
        self.extract_alter(slice_, shapes, KEY_ALTER_MIN_GRADE2)
        return slice_

    def scan_slice(self, start, stop):
        """Inspect [start, stop] and define a slice there if not void.

        Returns:
            the created slice, with its alter if classification succeeded,
            or None when nothing significant lies there.
        """
        if self.projection is None:
            return None
        if self.slices:
            start = max(start, self.slices[-1].stop + 1)
        if stop < start or is_range_void(self.projection, start, stop,
                                         self.params.max_space_cumul):
            return None

        slice_ = Slice(self.roi.rect(start, stop))
        self.slices.append(slice_)
        slice_.id = len(self.slices)
        self.staff.add_attachment(f"k{slice_.id}", slice_.rect)
        logger.debug("%s trying to append key right %s", self.staff, slice_)

        shapes = (self.key_shape,) if self.key_shape is not None else KEY_SHAPES
        alter = self.extract_alter(slice_, shapes, KEY_ALTER_MIN_GRADE2)
        if alter is not None:
            self.key_shape = alter.shape
        return slice_

    # -----------------------------------------------------------------------
    # Pitches, key and clefs
    # -----------------------------------------------------------------------

    def adjust_pitches(self):
        """Snap alter pitches to the best matching clef, then create the key."""
        if not self.slices or self.key_shape is None:
            return

        measured = [s.alter.measured_pitch if s.alter is not None else None
                    for s in self.slices]
        guess, results = guess_kind(self.key_shape, measured)
        std_pitches = standard_pitches(self.key_shape, guess)

        for i, slice_ in enumerate(self.slices):
            alter = slice_.alter
            if alter is None:
                logger.info("%s no alter for %s", self.staff, slice_)
            elif i < len(std_pitches) and alter.integer_pitch != std_pitches[i]:
                logger.info("%s slice#%d pitch adjusted from %.1f to %d",
                            self.staff, i + 1, alter.measured_pitch, std_pitches[i])
                alter.set_pitch(std_pitches[i])

        if self._create_key_inter() is None:
            return

        self._check_with_clefs(guess)

        # Consistency within signature
        for slice_ in self.slices:
            if slice_.alter is not None:
                slice_.alter.increase(KEY_ALTER_BOOST)

        header = self.staff.header
        header.alter_starts = [s.x for s in self.slices]
        last = [s.alter for s in self.slices if s.alter is not None][-1]
        x, _, w, _ = last.bounds
        # Last column of the last alter, inclusive
        header.key_stop = x + w - 1

    def _create_key_inter(self):
        alters = [s.alter for s in self.slices if s.alter is not None]
        if not alters:
            logger.debug("%s no alter, no key", self.staff)
            return None

        if self.key_inter is not None:
            self.key_inter.delete()

        # All alters in a key-sig support each other
        for i, alter in enumerate(alters):
            for sibling in alters[i + 1:]:
                if self.sig.get_relation(alter, sibling, KeyAltersRelation) is None:
                    self.sig.add_edge(alter, sibling, KeyAltersRelation())

        grade = sum(self.sig.contextual_grade(a) for a in alters) / len(alters)
        self.key_inter = KeyInter(key_bounds(alters), grade, self.fifths, alters, self.staff)
        self.sig.add_vertex(self.key_inter)
        self.staff.header.key = self.key_inter
        return self.key_inter

    def _check_with_clefs(self, guess):
        """Link the key to compatible clef candidates, exclude the others."""
        key = self.key_inter
        staff_clefs = sorted(self.sig.inters(self.staff, ClefInter), key=lambda c: c.x)
        preceding = [c for c in staff_clefs if c.x < key.x]
        if not preceding:
            return

        last_clef = preceding[-1]
        clefs = []
        for edge in self.sig.exclusions(last_clef):
            other = self.sig.opposite(edge, last_clef)
            if isinstance(other, ClefInter) and other not in clefs:
                clefs.append(other)
        clefs.append(last_clef)
        logger.debug("%s last clef:%s set:%s", self.staff, last_clef, clefs)

        for clef in clefs:
            if clef.kind == guess:
                self.sig.add_edge(clef, key, ClefKeyRelation())
            else:
                self.sig.insert_exclusion(clef, key, Exclusion.Cause.INCOMPATIBLE)

    # -----------------------------------------------------------------------
    # Diagnostics
    # -----------------------------------------------------------------------

    def plot_data(self):
        """Read-only data for an external plotting tool."""
        data = {
            "staff": self.staff.id,
            "projection": None,
            "events": [e.as_dict() for e in self.events],
            "slices": [s.rect for s in self.slices],
            "alter_starts": list(self.staff.header.alter_starts or []),
            "area": (self.range.start, self.range.stop),
            "browse": (self.range.browse_start, self.range.browse_stop),
            "min_peak_cumul": self.params.min_peak_cumul,
            "max_space_cumul": self.params.max_space_cumul,
        }
        if self.projection is not None:
            data["projection"] = {
                "start": self.projection.start,
                "values": self.projection.values.tolist(),
            }
        return data
