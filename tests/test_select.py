"""
``test_select``
===============

Tests for grouping records by event, pairing candidates with their
children, and the candidate selection.
"""
import warnings

import numpy as np
import pytest

import femtophi as fph

PHI = fph.ParticleType.PHI
PHI_CHILD = fph.ParticleType.PHI_CHILD


def two_event_table() -> fph.ParticleTable:
    """Event 0 holds one valid candidate and a candidate without
    children, event 1 a valid candidate.
    """
    return fph.ParticleTable.from_numpy(
        index=[0, 1, 2, 3, 4, 5, 6],
        collision_id=[0, 0, 0, 0, 1, 1, 1],
        part_type=[6, 6, 5, 5, 6, 6, 5],
        cut=[150, 149, 338, 338, 0, 149, 338],
        children=[[], [], [0, 1], [], [], [], [4, 5]],
    )


def test_partition_excludes_other_events() -> None:
    table = two_event_table()
    part = fph.EventPartition(table, 0)
    assert part.positions(PHI).tolist() == [2, 3], "Wrong candidates."
    assert part.positions(PHI_CHILD).tolist() == [0, 1]
    assert part.select(PHI).index.tolist() == [2, 3]
    other = fph.EventPartition(table, 1)
    assert other.positions(PHI).tolist() == [6], "Other event leaked."


def test_partition_empty_selection() -> None:
    part = fph.EventPartition(two_event_table(), 7)
    assert len(part.positions(PHI)) == 0, "Unknown event not empty."
    assert len(part.select(PHI)) == 0
    assert part.count(fph.ParticleType.D0) == 0


def test_resolve_children_aligned() -> None:
    table = two_event_table()
    res = fph.resolve_children(table, [2, 3, 6])
    assert res.no_children == 1, "Childless candidate not counted."
    assert res.mismatch == 0
    triplets = res.triplets
    assert len(triplets) == 2
    assert triplets.parent.index.tolist() == [2, 6]
    assert triplets.positive.index.tolist() == [0, 4], "Positive swapped."
    assert triplets.negative.index.tolist() == [1, 5], "Negative swapped."


def test_resolve_children_mismatch_warns() -> None:
    table = fph.ParticleTable.from_numpy(
        index=[5, 6, 7],
        part_type=[6, 6, 5],
        children=[[], [], [9, 6]],
    )
    with pytest.warns(fph.base.ChildIndexMismatchWarning) as record:
        res = fph.resolve_children(table, [2])
    assert len(record) == 1, "Expected a single warning per candidate."
    assert res.mismatch == 1
    assert len(res.triplets) == 0, "Mismatched candidate was paired."


def test_resolve_children_swapped_not_corrected() -> None:
    """Tests that children written in the opposite order are rejected,
    rather than exchanged.
    """
    table = fph.ParticleTable.from_numpy(
        index=[5, 6, 7],
        part_type=[6, 6, 5],
        children=[[], [], [6, 5]],
    )
    with pytest.warns(fph.base.ChildIndexMismatchWarning):
        res = fph.resolve_children(table, [2])
    assert len(res.triplets) == 0, "Swapped children were accepted."


def test_resolve_children_before_table_start() -> None:
    table = fph.ParticleTable.from_numpy(
        index=[0, 1], part_type=[6, 5], children=[[], [0, 1]]
    )
    with pytest.warns(fph.base.ChildIndexMismatchWarning):
        res = fph.resolve_children(table, [1])
    assert res.mismatch == 1, "Out of range children not a mismatch."


def test_resolve_no_children_silent() -> None:
    table = fph.ParticleTable.from_numpy(index=[5, 6, 7], part_type=[6, 6, 5])
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        res = fph.resolve_children(table, [2])
    assert res.no_children == 1
    assert len(res.triplets) == 0


def triplet_from(table: fph.ParticleTable) -> fph.Triplet:
    return fph.resolve_children(table, [2]).triplets


def test_cut_evaluator_child_type() -> None:
    good = fph.ParticleTable.from_numpy(
        index=[0, 1, 2], part_type=[6, 6, 5], children=[[], [], [0, 1]]
    )
    bad = fph.ParticleTable.from_numpy(
        index=[0, 1, 2], part_type=[0, 6, 5], children=[[], [], [0, 1]]
    )
    evaluator = fph.CutEvaluator(fph.SelectionConfig())
    assert evaluator(triplet_from(good)).data.tolist() == [True]
    assert evaluator(triplet_from(bad)).data.tolist() == [False]
    bad_neg = fph.ParticleTable.from_numpy(
        index=[0, 1, 2], part_type=[6, 0, 5], children=[[], [], [0, 1]]
    )
    rejected = evaluator(triplet_from(bad_neg)).data.tolist()
    assert rejected == [False], "Negative child type not checked."


def test_cut_evaluator_disabled_predicates() -> None:
    """Tests that switched off predicates accept everything, but remain
    individually evaluable.
    """
    table = fph.ParticleTable.from_numpy(
        index=[0, 1, 2],
        part_type=[6, 6, 5],
        cut=[0, 0, 0],
        children=[[], [], [0, 1]],
    )
    triplet = triplet_from(table)
    evaluator = fph.CutEvaluator(fph.SelectionConfig())
    assert not evaluator.enabled("cut_bits")
    assert evaluator.cut_bits(triplet).data.tolist() == [False]
    masks = evaluator.masks(triplet)
    assert list(masks) == ["child_type", "cut_bits", "pid"]
    assert masks["cut_bits"].data.tolist() == [True], "Disabled cut active."
    assert evaluator(triplet).data.tolist() == [True]


def test_cut_evaluator_cut_bits_enabled() -> None:
    table = fph.ParticleTable.from_numpy(
        index=[0, 1, 2, 3, 4, 5],
        part_type=[6, 6, 5, 6, 6, 5],
        cut=[150, 149, 338, 150, 0, 338],
        children=[[], [], [0, 1], [], [], [3, 4]],
    )
    config = fph.SelectionConfig(use_cut_bits=True)
    evaluator = fph.CutEvaluator(config)
    triplets = fph.resolve_children(table, [2, 5]).triplets
    accepted = evaluator(triplets).data.tolist()
    assert accepted == [True, False], "Negative child cut not applied."


def test_cut_evaluator_pid_enabled() -> None:
    pos_bit = 1 << fph.calculate.pid_bit(1, 1, 0, 2, 2)
    neg_bit = 1 << fph.calculate.pid_bit(0, 1, 0, 2, 2)
    table = fph.ParticleTable.from_numpy(
        index=[0, 1, 2, 3, 4, 5],
        part_type=[6, 6, 5, 6, 6, 5],
        pidcut=[pos_bit, neg_bit, 0, neg_bit, neg_bit, 0],
        pt=np.ones(6),
        children=[[], [], [0, 1], [], [], [3, 4]],
    )
    evaluator = fph.CutEvaluator(fph.SelectionConfig(use_pid=True))
    triplets = fph.resolve_children(table, [2, 5]).triplets
    assert evaluator(triplets).data.tolist() == [True, False]
