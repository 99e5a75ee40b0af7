"""Browse the key projection to detect the sequence of peaks and spaces.

Peaks are similar to stems (one per flat, two per sharp), spaces are blanks
between items. The first space separates the clef from what follows; if it is
really wide there is no key signature. The next really wide space marks the
end of the key signature.
"""

import logging

from .events import Peak, Space

logger = logging.getLogger(__name__)


class KeyScanner:
    """State machine over the columns of [browse_start, browse_stop].

    Args:
        projection: ``Projection`` of the browse rectangle.
        key_range: staff ``Range``; ``start``/``stop`` get updated.
        params: ``Parameters``.
        stem_check: callable(peak) -> bool, the stem test for a peak.
        label: used in log messages only.
    """

    def __init__(self, projection, key_range, params, stem_check, label="Staff"):
        self.projection = projection
        self.range = key_range
        self.params = params
        self.stem_check = stem_check
        self.label = label
        self.peaks: list[Peak] = []
        self.events: list = []

    def browse(self):
        """Scan the range, filling ``peaks`` and ``events``. Returns ``peaks``."""
        params = self.params
        x_min = self.range.browse_start
        x_max = self.range.browse_stop

        space_start = space_stop = None
        valley_hit = False
        peak_start = peak_stop = None
        peak_height = 0

        for x in range(x_min, x_max + 1):
            cumul = self.projection.value(x)

            if cumul >= params.min_peak_cumul:
                if not valley_hit:
                    continue

                if space_start is not None:
                    if not self._create_space(space_start, space_stop):
                        return self.peaks  # Too wide space
                    space_start = None

                if peak_start is None:
                    peak_start = x
                peak_stop = x
                peak_height = max(peak_height, cumul)
            elif not valley_hit:
                valley_hit = True
            else:
                if peak_start is not None:
                    if not self._create_peak(peak_start, peak_stop, peak_height):
                        return self.peaks  # Invalid peak
                    peak_start = None
                    peak_height = 0

                if cumul <= params.max_space_cumul:
                    if space_start is None:
                        space_start = x
                    space_stop = x
                elif space_start is not None:
                    if not self._create_space(space_start, space_stop):
                        return self.peaks
                    space_start = None

        # Finish ongoing space or peak, if any
        if space_start is not None:
            self._create_space(space_start, space_stop)
        elif peak_start is not None:
            self._create_peak(peak_start, peak_stop, peak_height)

        return self.peaks

    def _create_peak(self, start, stop, height):
        """Record a candidate peak. Returns whether browsing can keep on."""
        params = self.params
        keep_on = True
        peak = Peak(start, stop, height)

        if height > params.max_peak_cumul or peak.width > params.max_peak_width:
            logger.debug("%s invalid height or width for %s", self.label, peak)
            peak.set_invalid()
            keep_on = False
        else:
            if not self.stem_check(peak):
                logger.debug("%s %s no stem", self.label, peak)
                return True

            prev = self.peaks[-1] if self.peaks else None
            if prev is not None:
                # A large dx indicates we are beyond end of key-sig
                if peak.center - prev.center > params.max_peak_dx:
                    logger.debug("%s too large delta since previous peak", self.label)
                    peak.set_invalid()
                    keep_on = False
            else:
                offset = start - self.range.browse_start
                if offset > params.max_first_peak_offset:
                    logger.debug("%s first peak arrives too late", self.label)
                    peak.set_invalid()
                    keep_on = False
                elif self.range.start is None:
                    # No space found before peak, the glyphs overlap
                    self.range.start = self.range.browse_start

        self.events.append(peak)
        self.peaks.append(peak)
        return keep_on

    def _create_space(self, start, stop):
        """Record a space between items. Returns whether browsing can keep on."""
        keep_on = True
        space = Space(start, stop)

        if self.range.start is None:
            # Very first space
            if space.width > self.params.max_first_space_width:
                logger.debug("%s no key signature", self.label)
                keep_on = False
            else:
                # First chunk may later be skipped if lacking peak
                self.range.start = space.stop + 1
        elif not self.peaks:
            self.range.start = space.stop + 1
        elif space.width > self.params.max_inner_space:
            self.range.stop = space.start
            keep_on = False

        self.events.append(space)
        return keep_on
