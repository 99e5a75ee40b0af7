"""System consistency for the column of per-staff key builders.

Key signature items are expected to be vertically aligned across the staves
of a system. Each staff is processed on its own first, then the theoretical
offset of each slice index is estimated over the whole system and used to
insert missing leading slices, re-scan misaligned staves and append missing
trailing slices.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .builder import KeyBuilder
from .clustering import Gaussian, em
from .glyphs import SerializedClassifier
from .params import Parameters

logger = logging.getLogger(__name__)


class KeyColumn:
    """Key builders of one system, one per staff.

    Args:
        system: the ``System`` (staves, scale, symbol graph).
        source: staff-free binary image, foreground = 0.
        classifier: a ``Classifier``.
        component_builder: optional ``ComponentBuilder``.
        max_workers: staves processed in parallel during the first pass.
        max_retries: re-runs allowed per staff for misalignment.
        params: optional ``Parameters`` shared by all builders.
    """

    def __init__(self, system, source, classifier, component_builder=None,
                 max_workers=1, max_retries=1, params=None):
        self.system = system
        self.source = source
        self.classifier = classifier
        self.component_builder = component_builder
        self.max_workers = max_workers
        self.max_retries = max_retries
        self.params = params or Parameters(system.scale)
        self.builders: dict[int, KeyBuilder] = {}
        self.global_offsets: list[int] = []
        self.mean_slice_width = 0

    def _builder_for(self, staff, projection_width, classifier):
        header = staff.header
        measure_start = header.header_start
        if header.clef_stop is not None:
            browse_start = header.clef_stop + 1
        else:
            browse_start = header.header_stop
        return KeyBuilder(
            staff, self.source, self.system.scale, self.system.sig, classifier,
            measure_start, browse_start, projection_width,
            component_builder=self.component_builder, params=self.params,
        )

    def retrieve_keys(self, projection_width):
        """Retrieve the keys of all staves in the system.

        Args:
            projection_width: desired projection width from measure start.

        Returns:
            the ending abscissa offset of the keys column WRT measure start.
        """
        self.create_builders(projection_width)
        self.process_staves()

        if len(self.system.staves) > 1:
            self.check_keys_alignment()

        # Adjust each individual alter pitch, according to best matching key-sig
        for builder in self.builders.values():
            builder.adjust_pitches()

        max_key_offset = 0
        for staff in self.system.staves:
            key_stop = staff.header.key_stop
            if key_stop is not None:
                max_key_offset = max(max_key_offset, key_stop - staff.header.header_start)
        return max_key_offset

    def create_builders(self, projection_width):
        classifier = self.classifier
        if self.max_workers > 1:
            classifier = SerializedClassifier(classifier)

        # Results of a previous run are discarded from the graph
        for builder in self.builders.values():
            builder.reset()

        self.builders = {}
        for staff in sorted(self.system.staves, key=lambda s: s.id):
            staff.header.key_range = None
            self.builders[staff.id] = self._builder_for(staff, projection_width, classifier)
        return self.builders

    def process_staves(self):
        """First pass: process each staff separately, in parallel if allowed."""
        builders = list(self.builders.values())
        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(lambda b: b.process(), builders))
        return [b.process() for b in builders]

    # -----------------------------------------------------------------------
    # Alignment
    # -----------------------------------------------------------------------

    def compute_global_offsets(self):
        """Theoretical abscissa offset of each slice index in the system.

        One Gaussian per slice index, initialized at the mean offset observed
        for that index, then refined by EM over all observed offsets.

        Returns:
            the mean slice width.
        """
        per_index = []
        values = []
        widths = []

        for builder in self.builders.values():
            for i, slice_ in enumerate(builder.slices):
                offset = slice_.x - builder.measure_start
                if i >= len(per_index):
                    per_index.append([])
                per_index[i].append(offset)
                values.append(offset)
                widths.append(slice_.rect[2])

        laws = [Gaussian(np.mean(pop), 1.0) for pop in per_index]
        em(values, laws)
        self.global_offsets = [int(round(law.mean)) for law in laws]
        self.mean_slice_width = int(round(np.mean(widths))) if widths else 0

        logger.debug("%s global_offsets:%s mean_slice_width:%d",
                     self.system, self.global_offsets, self.mean_slice_width)
        return self.mean_slice_width

    def best_slice_index(self, offset, max_slice_dist):
        """Global index closest to ``offset``, or None if farther than allowed."""
        best_index = None
        best_dist = None
        for i, g_offset in enumerate(self.global_offsets):
            dist = abs(g_offset - offset)
            if best_dist is None or dist < best_dist:
                best_dist = dist
                best_index = i
        if best_dist is not None and best_dist <= max_slice_dist:
            return best_index
        return None

    def check_keys_alignment(self):
        """Verify vertical alignment of keys within the system, and repair."""
        mean_slice_width = self.compute_global_offsets()
        if not self.global_offsets:
            return

        max_slice_dist = self.params.max_slice_dist
        retries = {staff_id: 0 for staff_id in self.builders}

        # Missing initial slices?
        for staff_id, builder in self.builders.items():
            i = 0
            while i < len(builder.slices):
                offset = builder.slices[i].x - builder.measure_start
                index = self.best_slice_index(offset, max_slice_dist)

                if index is not None:
                    if index > i:
                        logger.debug("%s slice inserted at index:%d", builder.staff, i)
                        if builder.insert_slice(i, self.global_offsets[i]) is None:
                            break
                    i += 1
                    continue

                # Slice too far on left
                logger.debug("%s misaligned slice index:%d x:%d",
                             builder.staff, i, builder.slices[i].x)
                if retries[staff_id] >= self.max_retries:
                    logger.warning("%s key still misaligned, giving up", builder.staff)
                    break

                retries[staff_id] += 1
                builder.reprocess(self._new_browse_start(builder))
                break

        # Missing trailing slices?
        for builder in self.builders.values():
            for i in range(len(builder.slices), len(self.global_offsets)):
                x = builder.measure_start + self.global_offsets[i] - 1
                logger.debug("%s should investigate slice index:%d at x:%d",
                             builder.staff, i, x)
                if builder.scan_slice(x, x + mean_slice_width - 1) is None:
                    break  # Nothing found at all, stop slice sequence here

        # Slices with pixels but no recognized alter
        for builder in self.builders.values():
            for slice_ in builder.slices:
                if slice_.alter is None:
                    logger.info("%s weird key %s", builder.staff, slice_)

    def _new_browse_start(self, builder):
        new_start = builder.measure_start + self.global_offsets[0]
        if builder.browse_start is not None:
            new_start = (builder.browse_start + new_start) // 2
        return int(min(max(new_start, builder.measure_start), builder.range.browse_stop))

    def weird_slices(self):
        """(staff id, slice) pairs still lacking an alter."""
        return [(staff_id, s) for staff_id, b in self.builders.items()
                for s in b.slices if s.alter is None]

    def plot_data(self, staff):
        builder = self.builders.get(staff.id)
        if builder is None:
            return None
        data = builder.plot_data()
        key = staff.header.key
        data["label"] = f"key:{key.fifths}" if key is not None else None
        return data
