"""Glyphs, the classifier and component builder capabilities, and the
combination search over glyph parts.

The classifier and the component builder are external collaborators; only
their interfaces plus an OpenCV-based component builder live here.
"""

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum

import cv2 as cv
import numpy as np

from .projection import FOREGROUND

logger = logging.getLogger(__name__)


class Shape(Enum):
    SHARP = "sharp"
    FLAT = "flat"
    NATURAL = "natural"


KEY_SHAPES = (Shape.SHARP, Shape.FLAT)


class Evaluation:
    """Classifier grade for one shape hypothesis."""

    def __init__(self, shape, grade):
        self.shape = shape
        self.grade = grade

    def __repr__(self):
        return f"{self.shape.name}({self.grade:.3f})"


class Glyph:
    """Set of foreground pixels, as a boolean mask located at (left, top)."""

    _next_id = 0
    _id_lock = threading.Lock()

    def __init__(self, mask, left, top):
        self.mask = np.asarray(mask, dtype=bool)
        self.left = left
        self.top = top
        with Glyph._id_lock:
            Glyph._next_id += 1
            self.id = Glyph._next_id

    @property
    def width(self):
        return self.mask.shape[1]

    @property
    def height(self):
        return self.mask.shape[0]

    @property
    def bounds(self):
        return (self.left, self.top, self.width, self.height)

    @property
    def weight(self):
        return int(np.count_nonzero(self.mask))

    @property
    def centroid(self):
        ys, xs = np.nonzero(self.mask)
        return (self.left + float(xs.mean()), self.top + float(ys.mean()))

    def __repr__(self):
        return f"Glyph#{self.id}{self.bounds}"

    @classmethod
    def combine(cls, parts):
        """Compound glyph made of all ``parts``."""
        left = min(p.left for p in parts)
        top = min(p.top for p in parts)
        right = max(p.left + p.width for p in parts)
        bottom = max(p.top + p.height for p in parts)
        mask = np.zeros((bottom - top, right - left), dtype=bool)
        for p in parts:
            dy, dx = p.top - top, p.left - left
            mask[dy:dy + p.height, dx:dx + p.width] |= p.mask
        return cls(mask, left, top)


def union_bounds(boxes):
    boxes = list(boxes)
    left = min(b[0] for b in boxes)
    top = min(b[1] for b in boxes)
    right = max(b[0] + b[2] for b in boxes)
    bottom = max(b[1] + b[3] for b in boxes)
    return (left, top, right - left, bottom - top)


def box_gap(a, b):
    """Euclidean gap between two (x, y, w, h) boxes; 0 when touching."""
    dx = max(0, max(a[0], b[0]) - min(a[0] + a[2], b[0] + b[2]))
    dy = max(0, max(a[1], b[1]) - min(a[1] + a[3], b[1] + b[3]))
    return float(np.hypot(dx, dy))


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------

class Classifier(ABC):
    """Shape classifier, used as a pure scoring oracle."""

    @abstractmethod
    def evaluate(self, glyph, interline):
        """Return a dict Shape -> Evaluation for ``glyph``."""
        pass


class SerializedClassifier(Classifier):
    """Wrap a classifier that is not thread-safe behind a lock."""

    def __init__(self, classifier):
        self.classifier = classifier
        self._lock = threading.Lock()

    def evaluate(self, glyph, interline):
        with self._lock:
            return self.classifier.evaluate(glyph, interline)


class ComponentBuilder(ABC):
    """Builds connected components (glyph parts) out of a pixel buffer."""

    @abstractmethod
    def build_components(self, buffer, origin):
        """Return glyphs found in ``buffer`` (foreground = 0) located at ``origin``."""
        pass


class RunComponentBuilder(ComponentBuilder):
    """Connected components via OpenCV, 8-connectivity."""

    def __init__(self, connectivity=8):
        self.connectivity = connectivity

    def build_components(self, buffer, origin):
        ink = np.where(buffer == FOREGROUND, 255, 0).astype(np.uint8)
        num_labels, labels, stats, _ = cv.connectedComponentsWithStats(
            ink, connectivity=self.connectivity
        )
        x0, y0 = origin
        glyphs = []
        for label in range(1, num_labels):
            left = stats[label, cv.CC_STAT_LEFT]
            top = stats[label, cv.CC_STAT_TOP]
            w = stats[label, cv.CC_STAT_WIDTH]
            h = stats[label, cv.CC_STAT_HEIGHT]
            mask = labels[top:top + h, left:left + w] == label
            glyphs.append(Glyph(mask, x0 + int(left), y0 + int(top)))
        return glyphs


# ---------------------------------------------------------------------------
# Combination search
# ---------------------------------------------------------------------------

def _neighbors(parts, max_gap):
    links = {i: set() for i in range(len(parts))}
    for i in range(len(parts)):
        for j in range(i + 1, len(parts)):
            if box_gap(parts[i].bounds, parts[j].bounds) <= max_gap:
                links[i].add(j)
                links[j].add(i)
    return links


def decompose(parts, max_gap, is_size_acceptable, is_weight_acceptable, evaluate):
    """Evaluate every connected combination of ``parts``.

    Parts closer than ``max_gap`` are linked. Each connected subset is visited
    once; a subset whose bounding box is not size-acceptable is not grown any
    further (adding parts never shrinks the box). ``evaluate`` is called with
    the compound glyph of each subset whose weight is acceptable.

    Returns:
        number of compounds evaluated.
    """
    links = _neighbors(parts, max_gap)
    seen = set()
    frontier = [frozenset([i]) for i in range(len(parts))]
    trials = 0

    while frontier:
        subset = frontier.pop()
        if subset in seen:
            continue
        seen.add(subset)

        box = union_bounds(parts[i].bounds for i in subset)
        if not is_size_acceptable(box):
            continue

        weight = sum(parts[i].weight for i in subset)
        if is_weight_acceptable(weight):
            members = [parts[i] for i in sorted(subset)]
            glyph = members[0] if len(members) == 1 else Glyph.combine(members)
            evaluate(glyph)
            trials += 1

        for i in subset:
            for j in links[i]:
                if j not in subset:
                    bigger = subset | {j}
                    if bigger not in seen:
                        frontier.append(bigger)

    logger.debug("decompose parts:%d trials:%d", len(parts), trials)
    return trials


def purge_glyphs(glyphs, x_max, min_weight):
    """Drop parts too small, or stuck on the right edge at ``x_max``.

    The latter certainly belong to the stem of the next item.
    """
    return [g for g in glyphs if g.weight >= min_weight and g.left != x_max]
