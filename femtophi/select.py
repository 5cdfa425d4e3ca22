"""
``femtophi.select``
===================

Utilities for grouping particle records by event, reconstructing
parent-child candidates from the table ordering, and selecting them.
"""
import typing as ty
import warnings

import numpy as np
from attr import define, field, frozen

import femtophi as fph

from . import base
from . import calculate as calc
from .config import SelectionConfig

__all__ = [
    "EventPartition",
    "Triplet",
    "Resolution",
    "resolve_children",
    "CutEvaluator",
]


POSITIVE_OFFSET = 2
NEGATIVE_OFFSET = 1


def _param_check(
    param: ty.Any, name: str, expected: ty.Type
) -> ty.Optional[ty.NoReturn]:
    if not isinstance(param, expected):
        received = type(param)
        raise ValueError(
            f"Expected {name} to be {expected}. Received {received}."
        )


@define
class EventPartition:
    """Row positions of one event's records, grouped by particle-type
    tag. Built once per event, and queried repeatedly without rescanning
    the table.

    :group: select

    Parameters
    ----------
    particles : ParticleTable
        Records in table order. May contain records of other events,
        which are excluded.
    collision_index : int
        Global index of the event.

    Examples
    --------
    Finding the Phi candidates of collision 0:

        >>> import femtophi as fph
        >>> table = fph.ParticleTable.from_numpy(
        ...     index=[0, 1, 2],
        ...     collision_id=[0, 0, 1],
        ...     part_type=[6, 5, 5],
        ... )
        >>> part = fph.EventPartition(table, 0)
        >>> part.positions(fph.ParticleType.PHI)
        array([1])
    """

    particles: "fph.ParticleTable" = field()
    collision_index: int = field(converter=int)
    _groups: ty.Dict[int, base.LongVector] = field(
        init=False, repr=False, factory=dict
    )

    def __attrs_post_init__(self) -> None:
        _param_check(self.particles, "particles", fph.ParticleTable)
        in_event = self.particles.collision_id == self.collision_index
        rows = np.flatnonzero(in_event)
        tags = self.particles.part_type[rows]
        for tag in np.unique(tags).tolist():
            self._groups[tag] = rows[tags == tag]

    def positions(
        self, part_type: ty.Union[int, "fph.ParticleType"]
    ) -> base.LongVector:
        """Row positions of the event's records carrying ``part_type``,
        in table order.
        """
        rows = self._groups.get(int(part_type))
        if rows is None:
            return np.array([], dtype=np.intp)
        return rows.copy()

    def select(
        self, part_type: ty.Union[int, "fph.ParticleType"]
    ) -> "fph.ParticleTable":
        """Records of the event carrying ``part_type``."""
        return self.particles[self.positions(part_type)]

    def count(self, part_type: ty.Union[int, "fph.ParticleType"]) -> int:
        return len(self._groups.get(int(part_type), ()))

    @property
    def tags(self) -> ty.Tuple[int, ...]:
        """Particle-type tags present in the event."""
        return tuple(sorted(self._groups))

    def __len__(self) -> int:
        return sum(map(len, self._groups.values()))


@frozen
class Triplet:
    """Aligned parent, positive child and negative child records. Row
    ``i`` of each table belongs to the same candidate.

    :group: select
    """

    parent: "fph.ParticleTable"
    positive: "fph.ParticleTable"
    negative: "fph.ParticleTable"

    def __attrs_post_init__(self) -> None:
        if not (len(self.parent) == len(self.positive) == len(self.negative)):
            raise ValueError("Triplet tables must have the same length.")

    def __len__(self) -> int:
        return len(self.parent)

    def __bool__(self) -> bool:
        return len(self) != 0

    def __getitem__(self, key) -> "Triplet":
        return self.__class__(
            self.parent[key], self.positive[key], self.negative[key]
        )

    def __iter__(
        self,
    ) -> ty.Iterator[
        ty.Tuple[
            "fph.ParticleRecord", "fph.ParticleRecord", "fph.ParticleRecord"
        ]
    ]:
        return zip(self.parent, self.positive, self.negative)


class Resolution(ty.NamedTuple):
    """Outcome of reconstructing the candidates of one event.

    :group: select

    Attributes
    ----------
    triplets : Triplet
        Candidates whose children were found at the expected positions.
    no_children : int
        Number of candidates declaring no children.
    mismatch : int
        Number of candidates whose expected child positions hold records
        other than the declared children.
    """

    triplets: Triplet
    no_children: int
    mismatch: int


def resolve_children(
    particles: "fph.ParticleTable",
    parent_positions: ty.Union[base.AnyVector, ty.Sequence[int]],
) -> Resolution:
    """Reconstructs parent-child triplets from the table ordering. The
    positive and negative children of a parent at row ``pos`` are
    expected at rows ``pos - 2`` and ``pos - 1`` respectively, and must
    carry the global indices the parent declares.

    :group: select

    Parameters
    ----------
    particles : ParticleTable
        Records in the order written by the producer.
    parent_positions : sequence[int]
        Row positions of the parent candidates in ``particles``.

    Returns
    -------
    Resolution
        The resolved triplets, with the number of candidates rejected
        for declaring no children, and for inconsistent child indices.

    Warns
    -----
    ChildIndexMismatchWarning
        Once for every candidate whose records at the expected child
        positions do not carry the declared child indices, or whose
        expected child positions precede the start of the table.

    Notes
    -----
    The children are never searched for elsewhere in the table, and
    the positive and negative roles are never exchanged.
    """
    _param_check(particles, "particles", fph.ParticleTable)
    pos = np.asarray(parent_positions, dtype=np.intp).reshape(-1)
    num_rows = len(particles)
    if np.any((pos < 0) | (pos >= num_rows)):
        raise IndexError("Parent positions fall outside the table.")
    has_children = particles.has_children.data[pos]
    no_children = int(np.count_nonzero(~has_children))
    pos = pos[has_children]
    pos_child = pos - POSITIVE_OFFSET
    neg_child = pos - NEGATIVE_OFFSET
    declared = particles.children.data[pos]
    matched = pos_child >= 0
    in_range = np.flatnonzero(matched)
    matched[in_range] = (
        particles.index[pos_child[in_range]] == declared[in_range, 0]
    ) & (particles.index[neg_child[in_range]] == declared[in_range, 1])
    for row in pos[~matched].tolist():
        parent_index = int(particles.index[row])
        children = tuple(particles.children.data[row].tolist())
        warnings.warn(
            "Indices of Phi children do not match: candidate "
            f"{parent_index} declares children {children}, which are not "
            f"found at rows {row - POSITIVE_OFFSET} and "
            f"{row - NEGATIVE_OFFSET}.",
            base.ChildIndexMismatchWarning,
            stacklevel=2,
        )
    triplets = Triplet(
        particles[pos[matched]],
        particles[pos_child[matched]],
        particles[neg_child[matched]],
    )
    return Resolution(triplets, no_children, int(np.count_nonzero(~matched)))


class CutEvaluator:
    """Candidate selection, composed of independent predicates combined
    with logical AND. Predicates switched off in the configuration
    accept every candidate, but may still be evaluated on their own.

    :group: select

    Parameters
    ----------
    config : SelectionConfig
        Selection settings.

    Attributes
    ----------
    predicates : tuple[str, ...]
        Names of the predicates, in order of evaluation.
    """

    predicates: ty.Tuple[str, ...] = ("child_type", "cut_bits", "pid")

    def __init__(self, config: SelectionConfig) -> None:
        _param_check(config, "config", SelectionConfig)
        self.config = config

    def __repr__(self) -> str:
        enabled = ", ".join(
            f"{name}={self.enabled(name)}" for name in self.predicates
        )
        return f"CutEvaluator({enabled})"

    def enabled(self, name: str) -> bool:
        """Whether predicate ``name`` takes part in the selection."""
        if name == "child_type":
            return True
        if name == "cut_bits":
            return self.config.use_cut_bits
        if name == "pid":
            return self.config.use_pid
        raise KeyError(f"Unknown predicate {name}.")

    def child_type(self, triplet: Triplet) -> "fph.MaskArray":
        """Both children carry their expected particle-type tag."""
        child = self.config.child
        pos_ok = triplet.positive.type_mask(child.expected_type_pos)
        neg_ok = triplet.negative.type_mask(child.expected_type_neg)
        return pos_ok & neg_ok

    def cut_bits(self, triplet: Triplet) -> "fph.MaskArray":
        """Parent and children contain every bit of their required
        selection bitmask.
        """
        phi, child = self.config.phi, self.config.child
        return (
            calc.cut_bits_satisfied(triplet.parent.cut, phi.cut)
            & calc.cut_bits_satisfied(triplet.positive.cut, child.cut_pos)
            & calc.cut_bits_satisfied(triplet.negative.cut, child.cut_neg)
        )

    def pid(self, triplet: Triplet) -> "fph.MaskArray":
        """Both children pass the momentum dependent PID selection of
        their species.
        """
        child = self.config.child
        masks = []
        for table, species, nsigma in (
            (triplet.positive, child.pos_index, child.pid_nsigma_max_pos),
            (triplet.negative, child.neg_index, child.pid_nsigma_max_neg),
        ):
            masks.append(
                calc.is_full_pid_selected(
                    table.pidcut,
                    table.p,
                    child.pid_threshold,
                    species,
                    child.n_species,
                    child.pid_nsigma_max,
                    nsigma,
                )
            )
        return masks[0] & masks[1]

    def masks(self, triplet: Triplet) -> "fph.MaskGroup":
        """Outcome of every predicate, aggregated with AND."""
        group = fph.MaskGroup()
        for name in self.predicates:
            if self.enabled(name):
                group[name] = getattr(self, name)(triplet)
            else:
                group[name] = fph.MaskArray.full(len(triplet), True)
        return group

    def __call__(self, triplet: Triplet) -> "fph.MaskArray":
        """Accept (``True``) or reject (``False``) each candidate."""
        return fph.MaskArray(self.masks(triplet).data)
