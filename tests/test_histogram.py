"""
``test_histogram``
==================

Tests for the histogram registry and the role-keyed accumulators.
"""
import hist
import numpy as np
import pytest

import femtophi as fph

KINEMATICS = ("hPt", "hEta", "hPhi", "hEtaPhi", "hPtTempFitVar")
EXTENDED = ("hCharge", "hTPCNClusters", "hDCAz", "hMass")
SECONDARY = ("hDecayRadius", "hDaughterDCA")


def book_child(secondary_vertex: bool, use_max: bool):
    registry = fph.HistogramRegistry("FullPhiQA")
    histo = fph.ParticleHisto(fph.ParticleType.PHI_CHILD, "_pos")
    histo.init(
        registry,
        fph.AxisSpec(20, 0.5, 4.05),
        fph.AxisSpec(300, -0.15, 0.15),
        secondary_vertex,
        321,
        use_max,
    )
    return registry, histo


def children_table(num: int) -> fph.ParticleTable:
    return fph.ParticleTable.from_numpy(
        index=np.arange(num),
        part_type=np.full(num, 6),
        pt=np.linspace(0.6, 3.0, num),
        eta=np.zeros(num),
        phi=np.full(num, 1.0),
        sign=np.ones(num),
        tpc_nclusters=np.full(num, 120),
    )


def test_registry_duplicate_booking() -> None:
    registry = fph.HistogramRegistry("Event")
    registry.add("Event/zvtxhist", hist.axis.Regular(10, -10.0, 10.0))
    with pytest.raises(ValueError):
        registry.add("Event/zvtxhist", hist.axis.Regular(10, -10.0, 10.0))
    with pytest.raises(KeyError):
        registry.fill("Event/missing", [1.0])


def test_particle_booking_default_flags() -> None:
    registry, histo = book_child(secondary_vertex=False, use_max=True)
    paths = set(registry)
    for name in KINEMATICS:
        assert f"PhiChild_pos/Kinematics/{name}" in paths, f"{name} missing."
    for name in EXTENDED:
        assert f"PhiChild_pos/Extended/{name}" in paths, f"{name} missing."
    assert not any("SecondaryVertex" in path for path in paths)
    assert registry.folders == ("PhiChild_pos",)
    assert histo.pdg_code == 321


def test_particle_booking_secondary_vertex_only() -> None:
    registry, _ = book_child(secondary_vertex=True, use_max=False)
    paths = set(registry)
    for name in SECONDARY:
        assert f"PhiChild_pos/SecondaryVertex/{name}" in paths
    assert not any("Extended" in path for path in paths)
    assert len(registry) == len(KINEMATICS) + len(SECONDARY)


def test_temp_fit_binning() -> None:
    registry, _ = book_child(secondary_vertex=False, use_max=True)
    h = registry["PhiChild_pos/Kinematics/hPtTempFitVar"]
    assert h.axes[0].size == 20, "Wrong pT binning."
    assert h.axes[1].size == 300, "Wrong temp-fit variable binning."


def test_particle_fill_once_per_record() -> None:
    registry, histo = book_child(secondary_vertex=False, use_max=True)
    histo.fill(children_table(4), secondary_vertex=False, use_max=True)
    for path in registry:
        assert registry.entries(path) == 4.0, f"{path} not filled 4 times."


def test_particle_fill_before_init() -> None:
    histo = fph.ParticleHisto(fph.ParticleType.PHI)
    with pytest.raises(RuntimeError):
        histo.fill(children_table(1), secondary_vertex=False, use_max=True)


def test_particle_fill_unbooked_group() -> None:
    _, histo = book_child(secondary_vertex=False, use_max=False)
    with pytest.raises(RuntimeError):
        histo.fill(children_table(1), secondary_vertex=True, use_max=False)


def test_event_histo() -> None:
    registry = fph.HistogramRegistry("Event")
    event = fph.EventHisto()
    with pytest.raises(RuntimeError):
        event.fill(fph.Collision(index=0))
    event.init(registry)
    event.fill(fph.Collision(index=0, pos_z=1.2, mult_v0m=40, mult_ntr=12))
    assert len(registry) == 5, "Wrong number of event histograms."
    for path in registry:
        assert path.startswith("Event/")
        assert registry.entries(path) == 1.0, f"{path} not filled once."


def test_registry_rendering() -> None:
    registry, _ = book_child(secondary_vertex=False, use_max=False)
    assert "Kinematics" in str(registry), "Folder missing from tree."
    assert "PhiChild_pos/Kinematics/hPt" in registry.summary()
    registry.reset()
    assert registry.entries("PhiChild_pos/Kinematics/hPt") == 0.0
