"""
``femtophi.data``
=================

Data structures to encapsulate the derived particle tables, and provide
convenient methods to select from them.

Classes for storing and manipulating data are listed in the table below.

|---------------+----------------------------------+-----------|
| Name          | Used for                         | Composite |
|---------------+----------------------------------+-----------|
| MaskArray     | Masking                          | No        |
| MaskGroup     | Masking                          | Yes       |
| PdgArray      | Particle labels                  | No        |
| CutArray      | Selection / PID bitmasks         | No        |
| ChildrenArray | Declared parent-child relations  | No        |
| ParticleTable | Per-event particle records       | Yes       |
| Collision     | Event descriptor                 | No        |
|---------------+----------------------------------+-----------|

All array data structures are subscriptable, and may be masked and
sliced, using Python native methods, numpy arrays, or the MaskArray /
MaskGroup objects.

The ``ParticleTable`` wraps one numpy array per particle attribute,
keeping the records in table order. Row positions within a table are
meaningful: the producer writes the two children of a composite
candidate immediately before the candidate itself.
"""

import collections as cl
import collections.abc as cla
import enum
import functools as fn
import io
import itertools as it
import numbers as nm
import operator as op
import typing as ty

import attr
import more_itertools as mit
import numpy as np
import numpy.typing as npt
import typing_extensions as tyx
from attr import Factory, cmp_using, define, field, setters
from mcpid.lookup import PdgRecords
from rich.console import Console
from rich.tree import Tree
from tabulate import tabulate

from . import base

__all__ = [
    "ParticleType",
    "Role",
    "MaskGroup",
    "MaskArray",
    "PdgArray",
    "CutArray",
    "ChildrenArray",
    "ChildPair",
    "Collision",
    "ParticleRecord",
    "ParticleTable",
    "ParticleTableSerialized",
]


_LOOKUP_TABLE = PdgRecords()
NO_CHILD = -1


class ParticleType(enum.IntEnum):
    """Particle-type tags written by the table producer, identifying the
    role of each record.

    :group: datastructure
    """

    TRACK = 0
    V0 = 1
    V0_CHILD = 2
    CASCADE = 3
    CASCADE_BACHELOR = 4
    PHI = 5
    PHI_CHILD = 6
    D0 = 7
    D0_CHILD = 8

    @property
    def label(self) -> str:
        """Name used for histogram folders, *eg.* ``'PhiChild'``."""
        return _TYPE_LABELS[self]


_TYPE_LABELS = {
    ParticleType.TRACK: "Tracks",
    ParticleType.V0: "V0",
    ParticleType.V0_CHILD: "V0Child",
    ParticleType.CASCADE: "Cascade",
    ParticleType.CASCADE_BACHELOR: "CascadeBachelor",
    ParticleType.PHI: "Phi",
    ParticleType.PHI_CHILD: "PhiChild",
    ParticleType.D0: "D0",
    ParticleType.D0_CHILD: "D0Child",
}


class Role(enum.Enum):
    """Roles of the records in a reconstructed candidate, keyed to the
    histogram folder suffix used by their accumulator.

    :group: datastructure
    """

    PARENT = ""
    POSITIVE_CHILD = "_pos"
    NEGATIVE_CHILD = "_neg"

    @property
    def suffix(self) -> str:
        return self.value


class ChildPair(ty.NamedTuple):
    """Named tuple container for the declared indices of the positive
    and negative child of a single record. Missing children are
    ``-1``.

    :group: datastructure
    """

    positive: int
    negative: int


class ParticleRecord(ty.NamedTuple):
    """Named tuple container for a single row of a ``ParticleTable``.

    :group: datastructure
    """

    index: int
    collision_id: int
    part_type: int
    cut: int
    pidcut: int
    pt: float
    eta: float
    phi: float
    sign: int
    temp_fit_var: float
    mass: float
    children: ChildPair
    dca_z: float
    tpc_nclusters: int
    decay_radius: float
    daughter_dca: float


DataType = ty.TypeVar("DataType", bound=base.ArrayBase)


# from https://numpy.org/doc/stable/reference/generated/numpy.lib.mixins
# .NDArrayOperatorsMixin.html
def _array_ufunc(
    instance: DataType,
    ufunc: ty.Callable[..., ty.Any],
    method: str,
    *inputs: ty.Any,
    **kwargs: ty.Any,
) -> ty.Any:
    """Defines the behaviour of ``ArrayBase`` objects when passed to a
    numpy ufunc. Boolean results are returned as a ``MaskArray``, other
    array results are wrapped in the class of ``instance``.
    """
    out = kwargs.get("out", ())
    class_type = instance.__class__
    for x in inputs + out:
        if not isinstance(x, instance._HANDLED_TYPES + (class_type,)):
            return NotImplemented
    inputs = tuple(x.data if isinstance(x, class_type) else x for x in inputs)
    if out:
        kwargs["out"] = tuple(
            x.data if isinstance(x, class_type) else x for x in out
        )
    result = op.methodcaller(method, *inputs, **kwargs)(ufunc)
    if type(result) is tuple:
        return tuple(class_type(x) for x in result)
    elif method == "at":
        return None
    elif isinstance(result, np.ndarray) and (result.dtype == np.bool_):
        return MaskArray(result)
    if not np.shape(result):
        return result
    return class_type(result)


def _array_repr(instance: base.ArrayBase) -> str:
    """Provides a common string representation for ``ArrayBase``
    implementations.
    """
    data_str = str(np.asarray(instance))
    data_splits = data_str.split("\n")
    first_str = data_splits.pop(0)
    class_name = instance.__class__.__name__
    idnt = " " * (len(class_name) + 1)
    dtype_str = f"dtype={np.asarray(instance).dtype}"
    if not data_splits:
        return f"{class_name}({first_str}, {dtype_str})"
    dtype_str = idnt + dtype_str
    rows = "\n".join(map(op.add, it.repeat(idnt), data_splits))
    return f"{class_name}({first_str}\n{rows},\n{dtype_str})"


def _table_repr(
    headers: ty.Tuple[str, ...],
    rows: ty.Iterable[ty.Iterable[ty.Any]],
    num_rows: int,
    html: bool,
    max_rows=60,
) -> str:
    """Provides a table representation for composite objects.

    Parameters
    ----------
    headers : tuple[str, ...]
        Header names for the table.
    rows : Iterable[Iterable[Any]]
        Each element corresponds to a row, which contains an element
        for each column defined by ``headers``.
    num_rows : int
        Length of the ``rows`` iterable.
    html : bool
        Whether or not the output string should be rendered as an HTML
        table.
    max_rows : int
        The maximum number of rows to display before truncating the
        output. Default is 60.

    Returns
    -------
    tabular_string : str
        String representation of the composite objects as a table,
        either plain or HTML formatted.
    """
    rows = iter(rows)
    if num_rows > max_rows:
        head = mit.take(5, rows)
        miss = (None,) * len(headers)
        tail = mit.tail(5, rows)
        rows = it.chain(head, [miss], tail)
    output = io.StringIO(
        tabulate(
            list(rows),
            headers=headers,
            tablefmt="html" if html else "plain",
            floatfmt=".3G",
            missingval="...",
        )
    )
    stat_line = f"{num_rows} records × {len(headers)} attributes"
    if not html:
        stat_line = f"[{stat_line}]"
    output.seek(0, io.SEEK_END)
    output.write(f"\n\n{stat_line}")
    return output.getvalue()


def _array_field(dtype: npt.DTypeLike, num_cols: int = 1):
    """Abstracts out the dataclass field constructor for wrapped arrays,
    providing standardised data cleaning, conversion, and comparison.

    Parameters
    ----------
    dtype : dtype-like
        Data type the underlying array should have.
    num_cols : int
        The number of columns the wrapped array will have.

    Returns
    -------
    field : dataclass field
    """
    dtype = np.dtype(dtype)

    def converter(values: npt.ArrayLike) -> base.AnyVector:
        if isinstance(values, base.ArrayBase):
            values = values.data
        array = np.asarray(values, dtype=dtype)
        if num_cols == 1:
            return np.ascontiguousarray(array.reshape(-1))
        array = array.reshape(-1, num_cols)
        return np.ascontiguousarray(array)

    return field(
        default=Factory(
            fn.partial(np.array, tuple(), dtype=dtype)  # type: ignore
        ),
        converter=converter,
        eq=cmp_using(np.array_equal),
        on_setattr=setters.convert,
        repr=False,
    )


def _truthy(data: ty.Sized) -> bool:
    """Defines the truthy value of the femtophi data structures."""
    return not (len(data) == 0)


def _unwrap(other: ty.Any) -> ty.Any:
    if isinstance(other, (base.ArrayBase, base.MaskBase)):
        return other.data
    return other


@define
class MaskArray(base.MaskBase, base.ArrayBase):
    """Boolean mask over femtophi data structures.

    :group: datastructure

    Parameters
    ----------
    data : sequence[bool]
        Boolean values consituting the mask.

    Examples
    --------
    Instantiating, copying, updating by index, and comparison:

        >>> import femtophi as fph
        >>> mask1 = fph.MaskArray([True, True, False])
        >>> mask2 = mask1.copy()
        >>> mask2[1] = False
        >>> mask2
        MaskArray([ True False False], dtype=bool)
        >>> mask1 & mask2
        MaskArray([ True False False], dtype=bool)
    """

    _data: base.BoolVector = _array_field("<?")
    _HANDLED_TYPES: ty.Tuple[ty.Type, ...] = field(init=False, repr=False)

    def __attrs_post_init__(self):
        self._HANDLED_TYPES = (np.ndarray, nm.Number, cla.Sequence)

    @classmethod
    def full(cls, length: int, fill_value: bool) -> "MaskArray":
        """Mask of ``length`` elements, all set to ``fill_value``."""
        return cls(np.full(length, fill_value, dtype=np.bool_))

    def __array__(self, dtype=None, copy=None) -> base.BoolVector:
        return self._data

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        return _array_ufunc(self, ufunc, method, *inputs, **kwargs)

    def __iter__(self) -> ty.Iterator[bool]:
        yield from self._data.tolist()

    def copy(self) -> "MaskArray":
        """Copies the underlying data into a new MaskArray instance."""
        return self.__class__(self._data.copy())

    def __repr__(self) -> str:
        return _array_repr(self)

    def __getitem__(self, key) -> "MaskArray":
        if isinstance(key, base.MaskBase):
            key = key.data
        return self.__class__(self._data[key])

    def __setitem__(self, key, val) -> None:
        if isinstance(key, base.MaskBase):
            key = key.data
        self._data[key] = val

    def __len__(self) -> int:
        return len(self._data)

    def __and__(self, other: base.MaskLike) -> "MaskArray":
        if not isinstance(other, (base.MaskBase, np.ndarray)):
            raise ValueError(
                "Bitwise operation only supported for femtophi "
                "or numpy arrays."
            )
        return self.__class__(np.bitwise_and(self.data, _unwrap(other)))

    def __or__(self, other: base.MaskLike) -> "MaskArray":
        if not isinstance(other, (base.MaskBase, np.ndarray)):
            raise ValueError(
                "Bitwise operation only supported for femtophi "
                "or numpy arrays."
            )
        return self.__class__(np.bitwise_or(self.data, _unwrap(other)))

    def __invert__(self) -> "MaskArray":
        return self.__class__(~self.data)

    def __eq__(self, other: base.MaskLike) -> "MaskArray":  # type: ignore
        return self.__class__(np.equal(self.data, _unwrap(other)))

    def __ne__(self, other: base.MaskLike) -> "MaskArray":  # type: ignore
        return self.__class__(np.not_equal(self.data, _unwrap(other)))

    def __bool__(self) -> bool:
        return _truthy(self)

    @property
    def data(self) -> base.BoolVector:
        """Numpy representation of the boolean mask."""
        return self._data

    @data.setter
    def data(
        self, values: ty.Union[base.BoolVector, ty.Sequence[bool]]
    ) -> None:
        self._data = values  # type: ignore

    def serialize(self) -> ty.Tuple[bool, ...]:
        """Provides a serialized version of the underlying data."""
        return tuple(self.data.tolist())


_IN_MASK_DICT = ty.Mapping[str, ty.Union[base.MaskBase, base.BoolVector]]
_MASK_DICT = ty.OrderedDict[str, MaskArray]


def _mask_dict_convert(masks: _IN_MASK_DICT) -> _MASK_DICT:
    out_masks = cl.OrderedDict()
    for key, val in masks.items():
        if isinstance(val, MaskArray):
            mask = val
        elif isinstance(val, base.MaskBase):
            mask = MaskArray(val.data)
        else:
            mask = MaskArray(val)
        out_masks[key] = mask
    return out_masks


@define(eq=False)
class MaskGroup(base.MaskBase, ty.MutableMapping[str, MaskArray]):
    """Data structure to compose named masks over particle arrays. The
    aggregated mask is the logical AND of its constituents.

    :group: datastructure

    Parameters
    ----------
    mask_arrays : dict[str, MaskLike]
        Dictionary of MaskArray objects to be composed.

    Examples
    --------
    Combining two selection outcomes:

        >>> import femtophi as fph
        >>> group = fph.MaskGroup(
        ...     {"child_type": [True, True], "cut_bits": [True, False]}
        ... )
        >>> group.data
        array([ True, False])
    """

    _mask_arrays: _MASK_DICT = field(
        repr=False, factory=dict, converter=_mask_dict_convert
    )

    def __repr__(self) -> str:
        keys = ", ".join(map(lambda name: '"' + name + '"', self.keys()))
        return f"MaskGroup(masks=[{keys}])"

    def __rich__(self) -> Tree:
        tree = Tree(f"{self.__class__.__name__}([yellow]AND[default])")
        for key, val in self._mask_arrays.items():
            passed = int(np.count_nonzero(val.data))
            tree.add(f"{key} [dim]({passed}/{len(val)})[default]")
        return tree

    def __str__(self) -> str:
        console = Console(color_system=None)
        with console.capture() as capture:
            console.print(self)
        return capture.get()

    def __iter__(self) -> ty.Iterator[str]:
        return iter(self._mask_arrays)

    def __getitem__(self, key) -> base.MaskBase:
        """Subscripting for ``MaskGroup`` object.

        Parameters
        ----------
        key : str, slice, np.ndarray[bool_], base.MaskBase
            If string, will return the ``MaskArray`` associated with a
            key of the same name. Otherwise will be treated as an
            array-like slice, returning the ``MaskGroup`` whose
            components each individually have the passed slice applied.
        """
        if not isinstance(key, str):
            masked_data = cl.OrderedDict()
            for dict_key, val in self._mask_arrays.items():
                masked_data[dict_key] = val[key]
            return self.__class__(masked_data)
        return self._mask_arrays[key]

    def __setitem__(self, key: str, mask: base.MaskLike) -> None:
        """Add a new MaskArray to the group, with given key."""
        if not isinstance(key, str):
            raise KeyError("Key must be string.")
        self._mask_arrays.update(_mask_dict_convert({key: mask}))

    def __bool__(self) -> bool:
        if len(self) == 0:
            return False
        if np.shape(self.data)[0] == 0:
            return False
        return True

    def __len__(self) -> int:
        return len(self._mask_arrays)

    def __delitem__(self, key) -> None:
        """Remove a MaskArray from the group, using given key."""
        self._mask_arrays.pop(key)

    def __array__(self, dtype=None, copy=None) -> base.BoolVector:
        return self.data

    def __and__(self, other: base.MaskLike) -> MaskArray:
        return MaskArray(self.data) & other

    def __or__(self, other: base.MaskLike) -> MaskArray:
        return MaskArray(self.data) | other

    def __invert__(self) -> MaskArray:
        return MaskArray(~self.data)

    def copy(self) -> "MaskGroup":
        """Copies the underlying data into a new MaskGroup instance."""
        mask_copies = map(op.methodcaller("copy"), self._mask_arrays.values())
        return self.__class__(
            cl.OrderedDict(zip(self._mask_arrays.keys(), mask_copies))
        )

    @property
    def data(self) -> base.BoolVector:
        """Aggregated boolean mask, the AND of every constituent."""
        if len(self) == 0:
            raise ValueError("Cannot aggregate an empty MaskGroup.")
        return np.bitwise_and.reduce(
            [child.data for child in self._mask_arrays.values()]
        )

    def failed(self) -> ty.Dict[str, int]:
        """Number of records rejected by each constituent mask."""
        return {
            key: int(np.count_nonzero(~val.data))
            for key, val in self._mask_arrays.items()
        }

    def serialize(self) -> ty.Dict[str, ty.Tuple[bool, ...]]:
        """Returns serialized data as a dictionary."""
        return {key: val.serialize() for key, val in self._mask_arrays.items()}



@define(eq=False)
class PdgArray(base.ArrayBase):
    """Data structure containing PDG integer codes, used to label the
    particle hypotheses under study.

    :group: datastructure

    Parameters
    ----------
    data : sequence[int]
        The PDG codes.

    Attributes
    ----------
    name : ndarray[object]
        String representation of particle names.
    """

    _data: base.IntVector = _array_field("<i4")
    _HANDLED_TYPES: ty.Tuple[ty.Type, ...] = field(init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        self._HANDLED_TYPES = (np.ndarray, nm.Number, cla.Sequence)

    def __repr__(self) -> str:
        return _array_repr(self)

    def __iter__(self) -> ty.Iterator[int]:
        yield from self._data.tolist()

    def __len__(self) -> int:
        return len(self._data)

    def __array__(self, dtype=None, copy=None) -> base.IntVector:
        return self._data

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        return _array_ufunc(self, ufunc, method, *inputs, **kwargs)

    def __bool__(self) -> bool:
        return _truthy(self)

    def __eq__(self, other) -> MaskArray:  # type: ignore
        return MaskArray(self._data == _unwrap(other))

    def __ne__(self, other) -> MaskArray:  # type: ignore
        return MaskArray(self._data != _unwrap(other))

    def __getitem__(self, key) -> "PdgArray":
        if isinstance(key, base.MaskBase):
            key = key.data
        return self.__class__(self._data[key])

    @property
    def data(self) -> base.IntVector:
        return self._data

    def copy(self) -> "PdgArray":
        """Copies the underlying data into a new PdgArray instance."""
        return self.__class__(self._data.copy())

    @property
    def name(self) -> base.ObjVector:
        props = _LOOKUP_TABLE.properties(self.data, ["name"])["name"]
        return props  # type: ignore


@define(eq=False)
class CutArray(base.ArrayBase):
    """Data structure containing the selection bitmasks of a particle
    table. Each bit encodes whether a record passed one of the
    predefined quality cuts upstream.

    :group: datastructure

    Parameters
    ----------
    data : sequence[int]
        Unsigned integer bitmask for each record.
    """

    _data: base.UIntVector = _array_field("<u4")
    _HANDLED_TYPES: ty.Tuple[ty.Type, ...] = field(init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        self._HANDLED_TYPES = (np.ndarray, nm.Number, cla.Sequence)

    def __repr__(self) -> str:
        return _array_repr(self)

    def __iter__(self) -> ty.Iterator[int]:
        yield from self._data.tolist()

    def __len__(self) -> int:
        return len(self._data)

    def __array__(self, dtype=None, copy=None) -> base.UIntVector:
        return self._data

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        return _array_ufunc(self, ufunc, method, *inputs, **kwargs)

    def __bool__(self) -> bool:
        return _truthy(self)

    def __eq__(self, other) -> MaskArray:  # type: ignore
        return MaskArray(self._data == _unwrap(other))

    def __ne__(self, other) -> MaskArray:  # type: ignore
        return MaskArray(self._data != _unwrap(other))

    def __getitem__(self, key) -> "CutArray":
        if isinstance(key, base.MaskBase):
            key = key.data
        return self.__class__(self._data[key])

    @property
    def data(self) -> base.UIntVector:
        return self._data

    def copy(self) -> "CutArray":
        """Copies the underlying data into a new CutArray instance."""
        return self.__class__(self._data.copy())

    def satisfies(self, mask: int) -> MaskArray:
        """Selects records for which every bit of ``mask`` is set,
        *ie.* ``(cut & mask) == mask``.

        Parameters
        ----------
        mask : int
            Required bit pattern.

        Returns
        -------
        MaskArray
            Boolean mask over the records.
        """
        required = np.uint32(mask)
        return MaskArray(np.bitwise_and(self._data, required) == required)

    def bit_set(self, bit: int) -> MaskArray:
        """Selects records with bit number ``bit`` set."""
        if not (0 <= bit < 32):
            raise ValueError(f"Bit number must be in [0, 32), got {bit}.")
        flag = np.uint32(1) << np.uint32(bit)
        return MaskArray(np.bitwise_and(self._data, flag) != 0)


@define(eq=False)
class ChildrenArray(base.ArrayBase):
    """Declared child indices of each record, stored as pairs of
    ``(positive, negative)`` global indices. Slots without a child hold
    ``-1``.

    :group: datastructure

    Parameters
    ----------
    data : ndarray[int32] or sequence of length-2 tuples of ints
        The declared child indices, with shape ``(n, 2)``.
    """

    _data: base.IntVector = _array_field("<i4", num_cols=2)
    _HANDLED_TYPES: ty.Tuple[ty.Type, ...] = field(init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        self._HANDLED_TYPES = (np.ndarray, nm.Number, cla.Sequence)

    @classmethod
    def empty(cls, length: int) -> "ChildrenArray":
        """Children array of ``length`` records, none declaring
        children.
        """
        return cls(np.full((length, 2), NO_CHILD, dtype="<i4"))

    @classmethod
    def from_lists(
        cls, children: ty.Iterable[ty.Sequence[int]]
    ) -> "ChildrenArray":
        """Builds the array from ragged per-record lists of declared
        child indices, holding at most two entries each.
        """
        rows = []
        for ids in children:
            ids = list(ids)
            if len(ids) > 2:
                raise ValueError(
                    "At most two children may be declared per record. "
                    f"Received {ids}."
                )
            rows.append(ids + [NO_CHILD] * (2 - len(ids)))
        return cls(np.array(rows, dtype="<i4").reshape(-1, 2))

    def __repr__(self) -> str:
        return _array_repr(self)

    def __iter__(self) -> ty.Iterator[ChildPair]:
        elems = map(op.methodcaller("tolist"), self._data)
        yield from it.starmap(ChildPair, elems)

    def __len__(self) -> int:
        return self._data.shape[0]

    def __array__(self, dtype=None, copy=None) -> base.IntVector:
        return self._data

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        return _array_ufunc(self, ufunc, method, *inputs, **kwargs)

    def __bool__(self) -> bool:
        return _truthy(self)

    def __eq__(self, other) -> MaskArray:  # type: ignore
        return MaskArray(np.all(self._data == _unwrap(other), axis=-1))

    def __ne__(self, other) -> MaskArray:  # type: ignore
        return ~(self == other)

    def __getitem__(self, key) -> "ChildrenArray":
        if isinstance(key, base.MaskBase):
            key = key.data
        return self.__class__(self._data[key].reshape(-1, 2))

    @property
    def data(self) -> base.IntVector:
        return self._data

    def copy(self) -> "ChildrenArray":
        """Copies the underlying data into a new ChildrenArray instance."""
        return self.__class__(self._data.copy())

    @property
    def positive(self) -> base.IntVector:
        """Declared global index of the positive child."""
        return self._data[:, 0]

    @property
    def negative(self) -> base.IntVector:
        """Declared global index of the negative child."""
        return self._data[:, 1]

    @property
    def has_children(self) -> MaskArray:
        """Records declaring at least one child."""
        return MaskArray(np.any(self._data != NO_CHILD, axis=-1))


@attr.s(kw_only=True, frozen=True, slots=True)
class Collision:
    """Descriptor of one collision (event), as written by the table
    producer.

    :group: datastructure

    Parameters
    ----------
    index : int
        Global index of the collision. Particle records refer to it
        through their ``collision_id``.
    pos_z : float
        Longitudinal position of the primary vertex, in cm.
    mult_v0m : float
        Forward multiplicity estimator.
    mult_ntr : int
        Number of tracks contributing to the primary vertex.
    sphericity : float
        Transverse sphericity of the event.
    mag_field : float
        Magnetic field during data taking, in kG.
    """

    index: int = attr.ib(converter=int)
    pos_z: float = attr.ib(default=0.0, converter=float)
    mult_v0m: float = attr.ib(default=0.0, converter=float)
    mult_ntr: int = attr.ib(default=0, converter=int)
    sphericity: float = attr.ib(default=0.0, converter=float)
    mag_field: float = attr.ib(default=0.0, converter=float)


class ParticleTableSerialized(tyx.TypedDict, total=False):
    """Typed dictionary format of a serialized ParticleTable instance.

    :group: datastructure
    """

    index: ty.Tuple[int, ...]
    collision_id: ty.Tuple[int, ...]
    part_type: ty.Tuple[int, ...]
    cut: ty.Tuple[int, ...]
    pidcut: ty.Tuple[int, ...]
    pt: ty.Tuple[float, ...]
    eta: ty.Tuple[float, ...]
    phi: ty.Tuple[float, ...]
    sign: ty.Tuple[int, ...]
    temp_fit_var: ty.Tuple[float, ...]
    mass: ty.Tuple[float, ...]
    children: ty.Tuple[ChildPair, ...]
    dca_z: ty.Tuple[float, ...]
    tpc_nclusters: ty.Tuple[int, ...]
    decay_radius: ty.Tuple[float, ...]
    daughter_dca: ty.Tuple[float, ...]


def _type_label(value: int) -> str:
    try:
        return ParticleType(value).label
    except ValueError:
        return str(value)


def _cut_converter(values: ty.Any) -> CutArray:
    return values if isinstance(values, CutArray) else CutArray(values)


def _children_converter(values: ty.Any) -> ChildrenArray:
    if isinstance(values, ChildrenArray):
        return values
    return ChildrenArray(values)


@define
class ParticleTable:
    """Composite of columnar data describing the particle records of
    one or more events, in table order.

    :group: datastructure

    Columns omitted on construction are filled with zeros, with the
    exception of ``children``, which is filled with ``-1`` (no declared
    children). All columns must otherwise share the same length.

    Parameters
    ----------
    index : sequence[int]
        Global sequence index of each record, unique and monotonically
        assigned when the table was produced.
    collision_id : sequence[int]
        Global index of the collision each record belongs to.
    part_type : sequence[int]
        ``ParticleType`` tag of each record.
    cut : CutArray
        Selection bitmask.
    pidcut : CutArray
        PID bitmask.
    pt, eta, phi : sequence[float]
        Transverse momentum, pseudorapidity and azimuth.
    sign : sequence[int]
        Charge sign.
    temp_fit_var : sequence[float]
        Temp-fit variable computed upstream.
    mass : sequence[float]
        Invariant mass of composite candidates.
    children : ChildrenArray
        Declared child indices.
    dca_z : sequence[float]
        Longitudinal distance of closest approach to the primary vertex.
    tpc_nclusters : sequence[int]
        Number of TPC clusters found.
    decay_radius : sequence[float]
        Transverse radius of the secondary vertex.
    daughter_dca : sequence[float]
        Distance of closest approach between the daughters.
    """

    index: base.IntVector = _array_field("<i4")
    collision_id: base.IntVector = _array_field("<i4")
    part_type: npt.NDArray[np.uint8] = _array_field("<u1")
    cut: CutArray = field(
        factory=CutArray,
        converter=_cut_converter,
        eq=cmp_using(np.array_equal),
        on_setattr=setters.convert,
    )
    pidcut: CutArray = field(
        factory=CutArray,
        converter=_cut_converter,
        eq=cmp_using(np.array_equal),
        on_setattr=setters.convert,
    )
    pt: base.DoubleVector = _array_field("<f8")
    eta: base.DoubleVector = _array_field("<f8")
    phi: base.DoubleVector = _array_field("<f8")
    sign: npt.NDArray[np.int8] = _array_field("<i1")
    temp_fit_var: base.DoubleVector = _array_field("<f8")
    mass: base.DoubleVector = _array_field("<f8")
    children: ChildrenArray = field(
        factory=ChildrenArray,
        converter=_children_converter,
        eq=cmp_using(np.array_equal),
        on_setattr=setters.convert,
    )
    dca_z: base.DoubleVector = _array_field("<f8")
    tpc_nclusters: npt.NDArray[np.int16] = _array_field("<i2")
    decay_radius: base.DoubleVector = _array_field("<f8")
    daughter_dca: base.DoubleVector = _array_field("<f8")

    def __attrs_post_init__(self) -> None:
        lengths = {len(getattr(self, name)) for name in self._names()}
        lengths.discard(0)
        if len(lengths) > 1:
            raise ValueError(
                "All columns of a ParticleTable must have the same length. "
                f"Received lengths {sorted(lengths)}."
            )
        num_rows = lengths.pop() if lengths else 0
        if num_rows == 0:
            return
        for name in self._names():
            if len(getattr(self, name)) != 0:
                continue
            if name == "children":
                self.children = ChildrenArray.empty(num_rows)
            else:
                dtype = np.asarray(getattr(self, name)).dtype
                setattr(self, name, np.zeros(num_rows, dtype=dtype))

    @classmethod
    def _names(cls) -> ty.Tuple[str, ...]:
        return tuple(a.name for a in attr.fields(cls))

    def _columns(self) -> ty.Iterator[ty.Tuple[str, ty.Any]]:
        for name in self._names():
            yield name, getattr(self, name)

    def __getitem__(self, key) -> "ParticleTable":
        if isinstance(key, base.MaskBase):
            key = key.data
        if isinstance(key, nm.Integral):
            key = slice(key, key + 1) if key != -1 else slice(-1, None)
        return self.__class__(
            **{name: col[key] for name, col in self._columns()}
        )

    def __len__(self) -> int:
        return len(self.index)

    def __bool__(self) -> bool:
        return _truthy(self)

    def __iter__(self) -> ty.Iterator[ParticleRecord]:
        for pos in range(len(self)):
            yield self.row(pos)

    def __repr__(self) -> str:
        return f"ParticleTable(records={len(self)})"

    def row(self, position: int) -> ParticleRecord:
        """Returns the record at row ``position`` as a named tuple.

        Raises
        ------
        IndexError
            If ``position`` is outside the table.
        """
        if not (-len(self) <= position < len(self)):
            raise IndexError(
                f"Row {position} out of range for table of {len(self)}."
            )
        values = []
        for name, col in self._columns():
            if name == "children":
                values.append(ChildPair(*col.data[position].tolist()))
            else:
                values.append(np.asarray(col)[position].item())
        return ParticleRecord(*values)

    def _table_list(
        self,
    ) -> ty.Tuple[ty.Tuple[str, ...], ty.Iterable[ty.Tuple[ty.Any, ...]]]:
        """Provides the serialised tabular data for converting into a
        string representation.
        """
        headers = (
            "index",
            "collision",
            "type",
            "cut",
            "pt",
            "eta",
            "phi",
            "sign",
            "temp_fit_var",
            "children",
        )
        type_names = map(_type_label, self.part_type.tolist())
        rows = zip(
            self.index.tolist(),
            self.collision_id.tolist(),
            type_names,
            self.cut,
            self.pt.tolist(),
            self.eta.tolist(),
            self.phi.tolist(),
            self.sign.tolist(),
            self.temp_fit_var.tolist(),
            (f"({pos}, {neg})" for pos, neg in self.children),
        )
        return headers, rows

    def _table_str(self, html: bool) -> str:
        headers, rows = self._table_list()
        return _table_repr(headers, rows, num_rows=len(self), html=html)

    def _repr_html_(self) -> str:
        return self._table_str(html=True)

    def __str__(self) -> str:
        return self._table_str(html=False)

    def copy(self) -> "ParticleTable":
        """Copies the underlying data into a new ParticleTable instance."""
        return self.__class__(
            **{name: col.copy() for name, col in self._columns()}
        )

    @property
    def p(self) -> base.DoubleVector:
        """Momentum magnitude, :math:`p = p_T \\cosh \\eta`."""
        return self.pt * np.cosh(self.eta)

    @property
    def has_children(self) -> MaskArray:
        """Records declaring at least one child."""
        return self.children.has_children

    def type_mask(self, part_type: ty.Union[int, ParticleType]) -> MaskArray:
        """Selects records with the given particle-type tag."""
        return MaskArray(self.part_type == int(part_type))

    @classmethod
    def from_numpy(
        cls,
        index: base.IntVector,
        collision_id: ty.Optional[base.IntVector] = None,
        part_type: ty.Optional[base.AnyVector] = None,
        cut: ty.Optional[base.UIntVector] = None,
        pidcut: ty.Optional[base.UIntVector] = None,
        pt: ty.Optional[base.DoubleVector] = None,
        eta: ty.Optional[base.DoubleVector] = None,
        phi: ty.Optional[base.DoubleVector] = None,
        sign: ty.Optional[base.AnyVector] = None,
        temp_fit_var: ty.Optional[base.DoubleVector] = None,
        mass: ty.Optional[base.DoubleVector] = None,
        children: ty.Optional[
            ty.Union[base.IntVector, ty.Sequence[ty.Sequence[int]]]
        ] = None,
        dca_z: ty.Optional[base.DoubleVector] = None,
        tpc_nclusters: ty.Optional[base.AnyVector] = None,
        decay_radius: ty.Optional[base.DoubleVector] = None,
        daughter_dca: ty.Optional[base.DoubleVector] = None,
    ) -> "ParticleTable":
        """Creates a ParticleTable instance directly from numpy arrays.

        Parameters
        ----------
        index : ndarray[int32]
            Global sequence index of each record.
        children : ndarray[int32] or sequence of sequences of int, optional
            Declared child indices. A ``(n, 2)`` array is used as-is,
            padded with ``-1``. Otherwise, each element lists between
            zero and two child indices for the corresponding record.
        **columns : ndarray, optional
            Remaining columns, see ``ParticleTable``.

        Returns
        -------
        ParticleTable
            Table with the omitted columns filled with defaults.
        """
        kwargs: ty.Dict[str, ty.Any] = dict(
            collision_id=collision_id,
            part_type=part_type,
            cut=cut,
            pidcut=pidcut,
            pt=pt,
            eta=eta,
            phi=phi,
            sign=sign,
            temp_fit_var=temp_fit_var,
            mass=mass,
            dca_z=dca_z,
            tpc_nclusters=tpc_nclusters,
            decay_radius=decay_radius,
            daughter_dca=daughter_dca,
        )
        kwargs = {key: val for key, val in kwargs.items() if val is not None}
        if children is not None:
            if isinstance(children, np.ndarray) and children.ndim == 2:
                kwargs["children"] = ChildrenArray(children)
            else:
                kwargs["children"] = ChildrenArray.from_lists(children)
        return cls(index=index, **kwargs)

    @classmethod
    def from_records(
        cls, records: ty.Iterable[ty.Mapping[str, ty.Any]]
    ) -> "ParticleTable":
        """Creates a ParticleTable from an iterable of mappings, one per
        record, keyed by column name. Missing keys take the column
        defaults.
        """
        records = list(records)
        columns: ty.Dict[str, ty.List[ty.Any]] = cl.defaultdict(list)
        names = cls._names()
        for record in records:
            unknown = set(record) - set(names)
            if unknown:
                raise ValueError(
                    f"Unknown particle columns {sorted(unknown)}."
                )
        for name in names:
            if not any(name in record for record in records):
                continue
            default = () if name == "children" else 0
            columns[name] = [record.get(name, default) for record in records]
        if "index" not in columns:
            raise ValueError("Particle records must provide an 'index'.")
        return cls.from_numpy(**columns)  # type: ignore

    @classmethod
    def concatenate(
        cls, tables: ty.Iterable["ParticleTable"]
    ) -> "ParticleTable":
        """Joins tables end to end, preserving their order."""
        tables = [table for table in tables if table]
        if not tables:
            return cls()
        kwargs = {}
        for name in cls._names():
            parts = [np.asarray(getattr(table, name)) for table in tables]
            kwargs[name] = np.concatenate(parts, axis=0)
        return cls(**kwargs)

    def serialize(self) -> ParticleTableSerialized:
        """Returns serialized data as a dictionary."""
        out: ty.Dict[str, ty.Any] = {}
        for name, col in self._columns():
            if name in ("cut", "pidcut", "children"):
                out[name] = tuple(col)
            else:
                out[name] = tuple(col.tolist())
        return out  # type: ignore
