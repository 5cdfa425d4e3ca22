"""
``femtophi.calculate``
======================

Routines for decoding the selection and PID bitmasks written into the
particle tables by the upstream producer.

The PID container stores one bit per combination of nSigma working
point, particle species and detector. Bit zero is reserved, and the
remaining bits are laid out with the loosest working point in the
highest positions.
"""
import enum
import typing as ty
import warnings

import numpy as np

from . import base
from .data import CutArray, MaskArray

__all__ = [
    "Detector",
    "N_DETECTORS",
    "pid_nsigma_position",
    "pid_bit",
    "is_pid_selected",
    "is_full_pid_selected",
    "cut_bits_satisfied",
]


class Detector(enum.IntEnum):
    """Detector configurations encoded in the PID container.

    :group: calculate
    """

    TPC = 0
    TPC_TOF = 1


N_DETECTORS = len(Detector)


def _as_cuts(cuts: ty.Union[CutArray, ty.Sequence[int], base.AnyVector]):
    return cuts if isinstance(cuts, CutArray) else CutArray(cuts)


def pid_nsigma_position(
    nsigma: float, nsigma_values: ty.Sequence[float]
) -> int:
    """Position of a working point among the encoded nSigma values.

    :group: calculate

    Parameters
    ----------
    nsigma : float
        Requested nSigma working point.
    nsigma_values : sequence[float]
        Working points encoded in the PID container.

    Returns
    -------
    int
        Position of ``nsigma`` after sorting ``nsigma_values`` in
        descending order.

    Notes
    -----
    If ``nsigma`` is not among the encoded working points, a
    ``PidConfigurationWarning`` is issued and the second loosest
    working point (position 1) is used instead, or the only one if a
    single working point is encoded.
    """
    ordered = sorted(map(float, nsigma_values), reverse=True)
    if len(ordered) == 0:
        raise ValueError("No nSigma working points were provided.")
    try:
        return ordered.index(float(nsigma))
    except ValueError:
        fallback = min(1, len(ordered) - 1)
        warnings.warn(
            f"nSigma working point {nsigma} not among {tuple(ordered)}, "
            f"falling back to {ordered[fallback]}.",
            base.PidConfigurationWarning,
        )
        return fallback


def pid_bit(
    species: int,
    nsigma_pos: int,
    detector: ty.Union[int, Detector],
    n_species: int,
    n_nsigma: int,
) -> int:
    """Bit number of a species, working point and detector combination
    in the PID container.

    :group: calculate

    Parameters
    ----------
    species : int
        Index of the particle species.
    nsigma_pos : int
        Position of the working point, see ``pid_nsigma_position()``.
    detector : Detector
        Detector configuration.
    n_species : int
        Number of species encoded.
    n_nsigma : int
        Number of working points encoded.

    Returns
    -------
    int
        Bit number, counting from zero.
    """
    detector = int(detector)
    if not (0 <= species < n_species):
        raise ValueError(f"Species {species} outside [0, {n_species}).")
    if not (0 <= nsigma_pos < n_nsigma):
        raise ValueError(
            f"nSigma position {nsigma_pos} outside [0, {n_nsigma})."
        )
    if not (0 <= detector < N_DETECTORS):
        raise ValueError(f"Unknown detector {detector}.")
    return (
        1
        + (n_nsigma - (nsigma_pos + 1)) * N_DETECTORS * n_species
        + (n_species - (species + 1)) * N_DETECTORS
        + (N_DETECTORS - (detector + 1))
    )


def is_pid_selected(
    pidcut: ty.Union[CutArray, ty.Sequence[int], base.AnyVector],
    species: int,
    n_species: int,
    nsigma: float,
    nsigma_values: ty.Sequence[float],
    detector: ty.Union[int, Detector],
) -> MaskArray:
    """Selects records whose PID container flags ``species`` within the
    ``nsigma`` working point of ``detector``.

    :group: calculate

    Returns
    -------
    MaskArray
        Boolean mask over the records.
    """
    pos = pid_nsigma_position(nsigma, nsigma_values)
    bit = pid_bit(species, pos, detector, n_species, len(nsigma_values))
    return _as_cuts(pidcut).bit_set(bit)


def is_full_pid_selected(
    pidcut: ty.Union[CutArray, ty.Sequence[int], base.AnyVector],
    p: ty.Union[base.DoubleVector, ty.Sequence[float]],
    threshold: float,
    species: int,
    n_species: int,
    nsigma_values: ty.Sequence[float],
    nsigma_tpc: float,
    nsigma_tpc_tof: float = 1.0,
) -> MaskArray:
    """Momentum dependent PID selection. Below ``threshold`` the TPC
    bit for ``nsigma_tpc`` is required, at or above it the combined
    TPC+TOF bit for ``nsigma_tpc_tof``.

    :group: calculate

    Parameters
    ----------
    pidcut : CutArray
        PID containers of the records.
    p : ndarray[float64]
        Momentum magnitude of the records.
    threshold : float
        Momentum at which the selection switches to TPC+TOF.
    species : int
        Index of the particle species.
    n_species : int
        Number of species encoded.
    nsigma_values : sequence[float]
        Working points encoded.
    nsigma_tpc, nsigma_tpc_tof : float
        Working points required of the TPC and TPC+TOF selections.

    Returns
    -------
    MaskArray
        Boolean mask over the records.
    """
    p = np.asarray(p, dtype=np.float64)
    tpc = is_pid_selected(
        pidcut, species, n_species, nsigma_tpc, nsigma_values, Detector.TPC
    )
    below = p < threshold
    if np.all(below):
        return tpc
    tpc_tof = is_pid_selected(
        pidcut,
        species,
        n_species,
        nsigma_tpc_tof,
        nsigma_values,
        Detector.TPC_TOF,
    )
    return MaskArray(np.where(below, tpc.data, tpc_tof.data))


def cut_bits_satisfied(
    cut: ty.Union[CutArray, ty.Sequence[int], base.AnyVector], mask: int
) -> MaskArray:
    """Selects records whose selection bitmask contains every bit of
    ``mask``, *ie.* ``(cut & mask) == mask``.

    :group: calculate
    """
    return _as_cuts(cut).satisfies(mask)
