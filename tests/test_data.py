"""
``test_data``
=============

Unit tests for the data structures, probing their attributes and
methods.
"""
import math

import numpy as np
import pytest

import femtophi as fph


def phi_event_table() -> fph.ParticleTable:
    """Two children, followed by the Phi candidate declaring them."""
    return fph.ParticleTable.from_numpy(
        index=[5, 6, 7],
        collision_id=[0, 0, 0],
        part_type=[6, 6, 5],
        pt=[1.0, 0.8, 1.6],
        eta=[0.1, -0.2, 0.0],
        phi=[0.5, 1.5, 1.0],
        sign=[1, -1, 0],
        children=[[], [], [5, 6]],
    )


def test_pdg_kaon_phi_names() -> None:
    """Tests that the codes labelling the Phi QA histograms resolve to
    distinct particle names.
    """
    names = fph.PdgArray([333, 321, -321]).name.tolist()
    assert all(names), "Unresolved PDG name."
    assert len(set(names)) == 3, "Kaon charge conjugates share a name."


def test_particle_type_labels() -> None:
    assert fph.ParticleType.PHI.label == "Phi"
    assert fph.ParticleType.PHI_CHILD.label == "PhiChild"
    assert fph.Role.POSITIVE_CHILD.suffix == "_pos", "Wrong folder suffix."
    assert fph.Role.PARENT.suffix == "", "Parent folder is suffixed."


def test_table_defaults() -> None:
    """Tests that omitted columns are filled with their defaults."""
    table = phi_event_table()
    assert len(table) == 3, "Wrong number of records."
    assert np.all(table.mass == 0.0), "Mass not zero filled."
    assert len(table.cut) == 3, "Cut column not filled."
    assert table.children.data.tolist() == [[-1, -1], [-1, -1], [5, 6]]
    has_children = table.has_children.data.tolist()
    assert has_children == [False, False, True], "Wrong children mask."


def test_table_unequal_columns() -> None:
    with pytest.raises(ValueError):
        fph.ParticleTable(index=[0, 1, 2], pt=[1.0, 2.0])


def test_table_row_access() -> None:
    table = phi_event_table()
    parent = table.row(2)
    assert parent.index == 7, "Wrong record fetched."
    assert parent.part_type == fph.ParticleType.PHI
    assert parent.children == fph.ChildPair(5, 6), "Wrong declared children."
    assert table.row(-1) == parent, "Negative positions not supported."
    with pytest.raises(IndexError):
        table.row(3)


def test_table_masking() -> None:
    table = phi_event_table()
    children = table[table.type_mask(fph.ParticleType.PHI_CHILD)]
    assert children.index.tolist() == [5, 6], "Mask selected wrong rows."
    single = table[2]
    assert len(single) == 1, "Integer subscript not a single record."
    assert single.row(0) == table.row(2), "Integer subscript wrong record."
    assert table[1:].index.tolist() == [6, 7], "Slicing failed."


def test_table_momentum() -> None:
    table = phi_event_table()
    expected = [pt * math.cosh(eta) for pt, eta in zip(table.pt, table.eta)]
    assert np.allclose(table.p, expected), "Momentum magnitude incorrect."


def test_table_copy_independent() -> None:
    table = phi_event_table()
    copied = table.copy()
    assert copied == table, "Copy differs from original."
    copied.pt[0] = 100.0
    assert table.pt[0] == 1.0, "Copy shares memory with original."


def test_table_serialize_inverse() -> None:
    table = phi_event_table()
    serialized = table.serialize()
    rebuilt = fph.ParticleTable(**serialized)
    assert rebuilt == table, "Serializing ParticleTable is not invertible."


def test_table_from_records_and_concatenate() -> None:
    first = fph.ParticleTable.from_records(
        [
            {"index": 0, "part_type": 6},
            {"index": 1, "part_type": 6},
            {"index": 2, "part_type": 5, "children": (0, 1)},
        ]
    )
    second = fph.ParticleTable.from_records(
        [{"index": 3, "collision_id": 1}]
    )
    joined = fph.ParticleTable.concatenate([first, second])
    assert joined.index.tolist() == [0, 1, 2, 3], "Order not preserved."
    assert joined.collision_id.tolist() == [0, 0, 0, 1]
    assert joined.row(2).children == fph.ChildPair(0, 1)
    with pytest.raises(ValueError):
        fph.ParticleTable.from_records([{"index": 0, "momentum": 1.0}])


def test_table_str() -> None:
    table = phi_event_table()
    assert "3 records" in str(table), "Table summary missing."
    assert "PhiChild" in str(table), "Type names missing from table."


def test_children_too_many() -> None:
    with pytest.raises(ValueError):
        fph.ChildrenArray.from_lists([[1, 2, 3]])


def test_cut_satisfies() -> None:
    """Tests that bitmask selection requires every bit of the mask."""
    cuts = fph.CutArray([0b1111, 0b0101, 0b0010, 0])
    selected = cuts.satisfies(0b0101).data.tolist()
    assert selected == [True, True, False, False], "Wrong bitmask match."
    everything = cuts.satisfies(0).data.tolist()
    assert all(everything), "Empty mask should accept all records."
    assert cuts.bit_set(1).data.tolist() == [True, False, True, False]
    with pytest.raises(ValueError):
        cuts.bit_set(32)


def test_collision_frozen() -> None:
    collision = fph.Collision(index=3, pos_z=1.5, mult_ntr=12)
    assert collision.mult_ntr == 12
    with pytest.raises(AttributeError):
        collision.index = 4  # type: ignore


def test_maskarray_logic() -> None:
    first = fph.MaskArray([True, True, False])
    second = fph.MaskArray([True, False, False])
    assert (first & second).data.tolist() == [True, False, False]
    assert (first | second).data.tolist() == [True, True, False]
    assert (~first).data.tolist() == [False, False, True]
    full = fph.MaskArray.full(4, True)
    assert full.data.tolist() == [True] * 4, "Full mask incorrect."


def test_maskgroup_serialize_inverse() -> None:
    """Tests that the selection outcome of a candidate batch is
    recovered from its serialization.
    """
    table = fph.ParticleTable.from_numpy(
        index=[0, 1, 2, 3, 4, 5],
        part_type=[6, 6, 5, 6, 0, 5],
        children=[[], [], [0, 1], [], [], [3, 4]],
    )
    triplets = fph.resolve_children(table, [2, 5]).triplets
    group = fph.CutEvaluator(fph.SelectionConfig()).masks(triplets)
    rebuilt = fph.MaskGroup(group.serialize())
    assert list(rebuilt) == list(group), "Predicate order not preserved."
    assert rebuilt.serialize() == group.serialize(), "Not invertible."
    assert rebuilt.data.tolist() == [True, False]


def test_maskgroup_aggregation() -> None:
    group = fph.MaskGroup(
        {"a": [True, True, False], "b": [True, False, False]}
    )
    assert group.data.tolist() == [True, False, False], "AND incorrect."
    assert group.failed() == {"a": 1, "b": 2}, "Wrong rejection counts."
    group["c"] = fph.MaskArray([False, True, True])
    assert group.data.tolist() == [False, False, False]
    del group["c"]
    assert "a" in str(group), "Rich tree is missing a key."
    with pytest.raises(ValueError):
        fph.MaskGroup().data
