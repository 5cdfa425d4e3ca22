"""
``femtophi.base``
=================

Defines the base classes, types, and interface protocols used by
femtophi's modules.
"""
import collections.abc as cla
import typing as ty
from abc import ABC, abstractmethod

import numpy as np
import numpy.typing as npt

__all__ = [
    "DoubleVector",
    "FloatVector",
    "BoolVector",
    "IntVector",
    "LongVector",
    "UIntVector",
    "ObjVector",
    "AnyVector",
    "CollisionInterface",
    "ParticleSinkInterface",
    "EventSinkInterface",
    "ArrayBase",
    "MaskBase",
    "MaskLike",
    "ChildIndexMismatchWarning",
    "PidConfigurationWarning",
]

DoubleVector = npt.NDArray[np.float64]
FloatVector = npt.NDArray[np.float32]
BoolVector = npt.NDArray[np.bool_]
IntVector = npt.NDArray[np.int32]
LongVector = npt.NDArray[np.int64]
UIntVector = npt.NDArray[np.uint32]
ObjVector = npt.NDArray[np.object_]
AnyVector = npt.NDArray[ty.Any]
MaskLike = ty.Union["MaskBase", BoolVector]


class CollisionInterface(ty.Protocol):
    """Defines the interface for a collision (event) descriptor expected
    by femtophi's routines.

    :group: base

    Attributes
    ----------
    index : int
        Global index of the collision, used as the event key by the
        particle records.
    pos_z : float
        Longitudinal position of the primary vertex, in cm.
    mult_v0m : float
        Forward multiplicity estimator.
    mult_ntr : int
        Number of tracks contributing to the primary vertex.
    sphericity : float
        Transverse sphericity of the event.
    """

    @property
    def index(self) -> int:
        ...

    @property
    def pos_z(self) -> float:
        ...

    @property
    def mult_v0m(self) -> float:
        ...

    @property
    def mult_ntr(self) -> int:
        ...

    @property
    def sphericity(self) -> float:
        ...


class ParticleSinkInterface(ty.Protocol):
    """Update contract of a per-role particle histogram accumulator.
    ``fill`` receives one accepted record at a time, as a single row
    table.

    :group: base
    """

    def init(
        self,
        registry: ty.Any,
        pt_bins: ty.Any,
        var_bins: ty.Any,
        secondary_vertex: bool,
        pdg_code: int,
        use_max: bool,
    ) -> None:
        ...

    def fill(
        self, particles: ty.Any, secondary_vertex: bool, use_max: bool
    ) -> None:
        ...


class EventSinkInterface(ty.Protocol):
    """Update contract of the per-event QA accumulator.

    :group: base
    """

    def init(self, registry: ty.Any) -> None:
        ...

    def fill(self, collision: CollisionInterface) -> None:
        ...


class ArrayBase(ABC, cla.Sequence, np.lib.mixins.NDArrayOperatorsMixin):
    @abstractmethod
    def __init__(self, data: ty.Optional[AnyVector] = None) -> None:
        pass

    @abstractmethod
    def __iter__(self) -> ty.Iterator[ty.Any]:
        """Iterator exposing contained data as Python native."""

    @abstractmethod
    def __bool__(self) -> bool:
        """Truthy returns ``False`` if no elements, ``True`` otherwise."""

    @abstractmethod
    def __array__(self) -> AnyVector:
        """Numpy array representation of the data."""

    @abstractmethod
    def __eq__(self) -> "MaskBase":
        """Equality comparison."""

    @abstractmethod
    def __ne__(self) -> "MaskBase":
        """Non equality comparison."""

    @property
    @abstractmethod
    def data(self) -> AnyVector:
        pass


# ---------------------------
# composite pattern for masks
# ---------------------------
class MaskBase(ABC):
    @property
    @abstractmethod
    def data(self) -> BoolVector:
        pass

    @abstractmethod
    def copy(self) -> "MaskBase":
        pass

    @abstractmethod
    def __array__(self) -> npt.NDArray[ty.Any]:
        """Numpy array representation of the data."""

    @abstractmethod
    def __getitem__(self, key) -> "MaskBase":
        pass

    @abstractmethod
    def __and__(self, other: MaskLike) -> "MaskBase":
        pass

    @abstractmethod
    def __or__(self, other: MaskLike) -> "MaskBase":
        pass

    @abstractmethod
    def __invert__(self) -> "MaskBase":
        pass

    @abstractmethod
    def __bool__(self) -> bool:
        pass


class ChildIndexMismatchWarning(UserWarning):
    """Raised when the records found at the conventional child positions
    of a parent candidate do not carry the child indices the parent
    declares. Signals an inconsistency in the upstream tables, rather
    than a failed selection.

    :group: errors_warnings
    """


class PidConfigurationWarning(UserWarning):
    """Raised when a requested PID nSigma working point is not among
    the working points encoded in the PID bitmask.

    :group: errors_warnings
    """
