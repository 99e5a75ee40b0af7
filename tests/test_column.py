"""System-level alignment of keys across three drawn staves."""

from types import SimpleNamespace

import pytest

from keysig.column import KeyColumn
from keysig.glyphs import Shape
from keysig.sig import KeyAlterInter, KeyInter
from keysig.staff import Range, System

import synthetic

TOPS = (60, 260, 460)
KEY = synthetic.TREBLE_SHARPS[:3]


@pytest.fixture
def column(classifier):
    img = synthetic.blank(height=600)
    staves = []
    for i, top in enumerate(TOPS):
        synthetic.draw_key(img, top, Shape.SHARP, KEY)
        staves.append(synthetic.make_staff(i + 1, top))
    system = System(1, staves, synthetic.scale())
    return KeyColumn(system, img, classifier)


def _first_pass(column):
    column.create_builders(synthetic.GLOBAL_WIDTH)
    return column.process_staves()


def _drop_slice(builder, index):
    slice_ = builder.slices.pop(index)
    slice_.alter.delete()
    for i, s in enumerate(builder.slices):
        s.id = i + 1


def test_retrieve_keys(column):
    max_offset = column.retrieve_keys(synthetic.GLOBAL_WIDTH)

    assert max_offset == 119 - synthetic.MEASURE_START
    for staff in column.system.staves:
        assert staff.header.key.fifths == 3
        assert [a.pitch for a in staff.header.key.alters] == list(KEY)
    assert column.global_offsets == [40, 59, 81]
    assert column.weird_slices() == []


@pytest.mark.parametrize("max_workers", [1, 3], ids=["serial", "parallel"])
def test_first_pass(column, max_workers):
    column.max_workers = max_workers
    assert _first_pass(column) == [3, 3, 3]


def test_missing_leading_slice_is_inserted(column):
    _first_pass(column)
    damaged = column.builders[2]
    _drop_slice(damaged, 0)
    others = {sid: [s.alter for s in b.slices] for sid, b in column.builders.items() if sid != 2}

    column.check_keys_alignment()

    assert column.global_offsets == [40, 59, 81]
    assert [(s.x, s.stop) for s in damaged.slices] == [(60, 78), (79, 100), (101, 119)]
    assert all(s.alter is not None for s in damaged.slices)
    for sid, alters in others.items():
        assert [s.alter for s in column.builders[sid].slices] == alters


def test_missing_trailing_slice_is_scanned(column):
    _first_pass(column)
    damaged = column.builders[3]
    _drop_slice(damaged, 2)

    column.check_keys_alignment()

    assert len(damaged.slices) == 3
    assert damaged.slices[2].x == 101
    assert damaged.slices[2].alter.shape == Shape.SHARP

    for builder in column.builders.values():
        builder.adjust_pitches()
    assert column.system.staves[2].header.key.fifths == 3


def test_retrieve_keys_twice_replaces_results(column):
    column.retrieve_keys(synthetic.GLOBAL_WIDTH)
    first_keys = column.system.sig.inters(cls=KeyInter)

    column.retrieve_keys(synthetic.GLOBAL_WIDTH)

    keys = column.system.sig.inters(cls=KeyInter)
    assert len(keys) == 3
    assert not any(k in keys for k in first_keys)
    assert len(column.system.sig.inters(cls=KeyAlterInter)) == 9
    for staff in column.system.staves:
        assert staff.header.key.fifths == 3
        assert staff.header.key_range.start == 60


def test_key_stop_is_last_alter_column(column):
    column.retrieve_keys(synthetic.GLOBAL_WIDTH)
    for staff in column.system.staves:
        last = staff.header.key.alters[-1]
        assert staff.header.key_stop == last.bounds[0] + last.bounds[2] - 1


def test_one_key_per_staff(column):
    column.retrieve_keys(synthetic.GLOBAL_WIDTH)
    keys = column.system.sig.inters(cls=KeyInter)
    assert sorted(k.staff.id for k in keys) == [1, 2, 3]


def test_plot_data_label(column):
    column.retrieve_keys(synthetic.GLOBAL_WIDTH)
    data = column.plot_data(column.system.staves[0])
    assert data["label"] == "key:3"
    assert data["staff"] == 1


# ---------------------------------------------------------------------------
# Alignment logic with stand-in builders
# ---------------------------------------------------------------------------

class FakeBuilder:
    def __init__(self, offsets, measure_start=20):
        self.measure_start = measure_start
        self.range = Range(50, 220)
        self.staff = "Staff"
        self.slices = [self._slice(measure_start + o) for o in offsets]
        self.reprocessed = []
        self.scanned = []

    @property
    def browse_start(self):
        return self.range.browse_start

    @staticmethod
    def _slice(x):
        return SimpleNamespace(x=x, rect=(x, 0, 20, 100), alter=object())

    def reprocess(self, browse_start):
        self.reprocessed.append(browse_start)

    def scan_slice(self, start, stop):
        self.scanned.append((start, stop))
        return None

    def insert_slice(self, index, offset):
        return None


def _fake_column(builders, max_retries=1):
    system = SimpleNamespace(staves=[], scale=synthetic.scale(), sig=None)
    column = KeyColumn(system, None, None, max_retries=max_retries)
    column.builders = dict(enumerate(builders, start=1))
    return column


@pytest.mark.parametrize("max_retries, expected", [(1, [(50 + 53) // 2]), (0, [])],
                         ids=["retry", "no_retry"])
def test_misaligned_staff_is_reprocessed(max_retries, expected):
    aligned = [FakeBuilder([40, 60]) for _ in range(4)]
    misaligned = FakeBuilder([5])
    column = _fake_column(aligned + [misaligned], max_retries)

    column.check_keys_alignment()

    assert column.global_offsets == [33, 60]
    assert misaligned.reprocessed == expected
    assert all(b.reprocessed == [] for b in aligned)


def test_trailing_scan_stops_when_nothing_found():
    full = FakeBuilder([40, 60, 80])
    short = FakeBuilder([40])
    column = _fake_column([full, full, short])

    column.check_keys_alignment()

    assert short.scanned == [(20 + 60 - 1, 20 + 60 - 1 + 20 - 1)]
    assert full.scanned == []


def test_best_slice_index():
    column = _fake_column([])
    column.global_offsets = [40, 60]
    assert column.best_slice_index(45, 10) == 0
    assert column.best_slice_index(52, 10) == 1
    assert column.best_slice_index(75, 10) is None
