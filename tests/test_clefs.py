"""Clef guessing from measured alter pitches."""

import pytest

from keysig.clefs import ClefKind, guess_kind, standard_pitches
from keysig.glyphs import Shape

CASES = [
    # (shape, measured pitches, expected clef)
    (Shape.SHARP, [-4.1, -0.9, -5.0], ClefKind.TREBLE),
    (Shape.SHARP, [-2.0, 1.2], ClefKind.BASS),
    (Shape.SHARP, [-3.0, 0.1, -4.0, -1.0], ClefKind.ALTO),
    (Shape.SHARP, [3.0, -1.0, 2.0], ClefKind.TENOR),
    (Shape.FLAT, [0.1, -3.0, 1.0], ClefKind.TREBLE),
    (Shape.FLAT, [2.0, -1.0], ClefKind.BASS),
    (Shape.FLAT, [-1.0, -4.0], ClefKind.TENOR),
    # an empty slice is ignored
    (Shape.SHARP, [None, -1.0, -5.0], ClefKind.TREBLE),
    # one wrong item does not defeat the others
    (Shape.SHARP, [-4.0, -2.0], ClefKind.TREBLE),
]


def _case_id(case):
    shape, pitches, kind = case
    return f"{shape.name.lower()}_{len(pitches)}_{kind.name.lower()}"


@pytest.mark.parametrize("shape, pitches, expected", CASES, ids=list(map(_case_id, CASES)))
def test_guess_kind(shape, pitches, expected):
    best, results = guess_kind(shape, pitches)
    assert best == expected
    assert set(results) == set(ClefKind)


def test_no_measure_yields_treble():
    best, results = guess_kind(Shape.FLAT, [None, None])
    assert best == ClefKind.TREBLE
    assert all(v == float('inf') for v in results.values())


@pytest.mark.parametrize("kind", list(ClefKind), ids=[k.name.lower() for k in ClefKind])
def test_standard_pitches_have_seven_items(kind):
    assert len(standard_pitches(Shape.SHARP, kind)) == 7
    assert len(standard_pitches(Shape.FLAT, kind)) == 7

