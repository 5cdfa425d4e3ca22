"""
``femtophi.config``
===================

Immutable configuration groups for the Phi QA task. Each group is read
once, validated on construction, and passed explicitly to the
components which need it.
"""
import collections.abc as cla
import typing as ty

import attr
import hist
import numpy as np
from attr import field, frozen, validators

from .data import ParticleType

__all__ = ["AxisSpec", "PhiConfig", "ChildConfig", "SelectionConfig"]


def _check_edges(instance: "AxisSpec", attribute, value) -> None:
    if value is None:
        return
    if len(value) < 2:
        raise ValueError("Variable binning needs at least two edges.")
    if np.any(np.diff(value) <= 0.0):
        raise ValueError("Variable bin edges must be strictly increasing.")


def _edges_converter(
    values: ty.Optional[ty.Iterable[float]],
) -> ty.Optional[ty.Tuple[float, ...]]:
    if values is None:
        return None
    return tuple(map(float, values))


@frozen
class AxisSpec:
    """Binning of a single histogram axis.

    :group: config

    Parameters
    ----------
    bins : int
        Number of uniform bins.
    low, high : float
        Axis range.
    edges : tuple[float, ...], optional
        Explicit bin edges. If given, overrides the uniform binning.
        Prefer the ``AxisSpec.variable()`` constructor.
    """

    bins: int = field(converter=int, validator=validators.gt(0))
    low: float = field(converter=float)
    high: float = field(converter=float)
    edges: ty.Optional[ty.Tuple[float, ...]] = field(
        default=None, converter=_edges_converter, validator=_check_edges
    )

    @high.validator
    def _check_range(self, attribute, value) -> None:
        if not (self.low < value):
            raise ValueError(
                f"Axis upper edge {value} must exceed lower edge {self.low}."
            )

    @classmethod
    def variable(cls, edges: ty.Sequence[float]) -> "AxisSpec":
        """Axis with explicit, strictly increasing bin edges."""
        edges = _edges_converter(edges)
        if edges is None or len(edges) < 2:
            raise ValueError("Variable binning needs at least two edges.")
        return cls(len(edges) - 1, edges[0], edges[-1], edges)

    @classmethod
    def coerce(cls, value: ty.Any) -> "AxisSpec":
        """Builds an ``AxisSpec`` from an instance, a mapping of its
        fields, or a ``(bins, low, high)`` sequence.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, cla.Mapping):
            if "edges" in value and value["edges"] is not None:
                return cls.variable(value["edges"])
            return cls(value["bins"], value["low"], value["high"])
        return cls(*value)

    @property
    def is_variable(self) -> bool:
        return self.edges is not None

    def axis(
        self, name: str, label: str = ""
    ) -> ty.Union[hist.axis.Regular, hist.axis.Variable]:
        """Constructs the ``hist`` axis described by this binning."""
        if self.edges is not None:
            return hist.axis.Variable(self.edges, name=name, label=label)
        return hist.axis.Regular(
            self.bins, self.low, self.high, name=name, label=label
        )

    def to_dict(self) -> ty.Dict[str, ty.Any]:
        if self.edges is not None:
            return {"edges": list(self.edges)}
        return {"bins": self.bins, "low": self.low, "high": self.high}


def _species_tuple(values: ty.Iterable[float]) -> ty.Tuple[float, ...]:
    return tuple(map(float, values))


@frozen(kw_only=True)
class PhiConfig:
    """Selection and binning settings of the Phi candidate.

    :group: config
    """

    pdg_code: int = field(default=333, converter=int)
    cut: int = field(default=338, converter=int, validator=validators.ge(0))
    temp_fit_var_bins: AxisSpec = field(
        default=AxisSpec(300, 0.95, 1.0), converter=AxisSpec.coerce
    )
    temp_fit_var_pt_bins: AxisSpec = field(
        default=AxisSpec(20, 0.5, 4.05), converter=AxisSpec.coerce
    )


@frozen(kw_only=True)
class ChildConfig:
    """Selection, PID and binning settings of the positive and negative
    children of the Phi candidate.

    :group: config

    Parameters
    ----------
    pdg_code_pos, pdg_code_neg : int
        PDG code of the positive and negative child hypothesis.
    cut_pos, cut_neg : int
        Selection bitmask required of each child.
    pid_nsigma_max_pos, pid_nsigma_max_neg : float
        nSigma working point used for each child's PID selection.
    pos_index, neg_index : int
        Species index of each child in the PID bitmask.
    pid_nsigma_max : tuple[float, ...]
        nSigma working points encoded in the PID bitmask.
    n_species : int
        Number of species encoded in the PID bitmask.
    expected_type_pos, expected_type_neg : ParticleType
        Particle-type tag required of each child.
    temp_fit_var_bins, temp_fit_var_pt_bins : AxisSpec
        Binning of the child temp-fit variable and its pT axis.
    pid_threshold : float
        Momentum above which TPC+TOF PID is required, in GeV.
    """

    pdg_code_pos: int = field(default=321, converter=int)
    pdg_code_neg: int = field(default=321, converter=int)
    cut_pos: int = field(
        default=150, converter=int, validator=validators.ge(0)
    )
    cut_neg: int = field(
        default=149, converter=int, validator=validators.ge(0)
    )
    pid_nsigma_max_pos: float = field(default=3.0, converter=float)
    pid_nsigma_max_neg: float = field(default=3.0, converter=float)
    pos_index: int = field(default=1, converter=int)
    neg_index: int = field(default=0, converter=int)
    pid_nsigma_max: ty.Tuple[float, ...] = field(
        default=(4.0, 3.0), converter=_species_tuple
    )
    n_species: int = field(
        default=2, converter=int, validator=validators.gt(0)
    )
    expected_type_pos: ParticleType = field(
        default=ParticleType.PHI_CHILD, converter=ParticleType
    )
    expected_type_neg: ParticleType = field(
        default=ParticleType.PHI_CHILD, converter=ParticleType
    )
    temp_fit_var_bins: AxisSpec = field(
        default=AxisSpec(300, -0.15, 0.15), converter=AxisSpec.coerce
    )
    temp_fit_var_pt_bins: AxisSpec = field(
        default=AxisSpec(20, 0.5, 4.05), converter=AxisSpec.coerce
    )
    pid_threshold: float = field(default=999.0, converter=float)

    @pid_nsigma_max.validator
    def _check_nsigma(self, attribute, value) -> None:
        if len(value) == 0:
            raise ValueError("At least one nSigma working point is needed.")

    @n_species.validator
    def _check_species(self, attribute, value) -> None:
        for name in ("pos_index", "neg_index"):
            idx = getattr(self, name)
            if not (0 <= idx < value):
                raise ValueError(
                    f"{name}={idx} outside the {value} encoded species."
                )


def _from_group(cls: type, values: ty.Any) -> ty.Any:
    if isinstance(values, cls):
        return values
    if not isinstance(values, cla.Mapping):
        raise ValueError(
            f"{cls.__name__} must be built from a mapping, "
            f"got {type(values).__name__}."
        )
    names = {a.name for a in attr.fields(cls)}
    unknown = set(values) - names
    if unknown:
        raise ValueError(
            f"Unknown {cls.__name__} option(s): {sorted(unknown)}."
        )
    return cls(**values)


def _group_to_dict(instance: ty.Any) -> ty.Dict[str, ty.Any]:
    out = {}
    for name, val in attr.asdict(instance, recurse=False).items():
        if isinstance(val, AxisSpec):
            val = val.to_dict()
        elif isinstance(val, ParticleType):
            val = int(val)
        elif isinstance(val, tuple):
            val = list(val)
        out[name] = val
    return out


@frozen(kw_only=True)
class SelectionConfig:
    """Complete configuration of the Phi QA task.

    :group: config

    Parameters
    ----------
    phi : PhiConfig
        Settings of the Phi candidate.
    child : ChildConfig
        Settings of the two children.
    use_cut_bits : bool
        Whether the selection bitmasks are required. Default is
        ``False``.
    use_pid : bool
        Whether the children must pass the full PID selection. Default
        is ``False``.
    secondary_vertex : bool
        Whether secondary-vertex histograms are booked and filled.
    use_max : bool
        Whether the extended set of QA histograms is booked and filled.

    Examples
    --------
    Building from a plain nested mapping:

        >>> from femtophi.config import SelectionConfig
        >>> conf = SelectionConfig.from_dict(
        ...     {"phi": {"cut": 0}, "use_cut_bits": True}
        ... )
        >>> conf.phi.cut
        0
    """

    phi: PhiConfig = field(factory=PhiConfig)
    child: ChildConfig = field(factory=ChildConfig)
    use_cut_bits: bool = field(default=False, converter=bool)
    use_pid: bool = field(default=False, converter=bool)
    secondary_vertex: bool = field(default=False, converter=bool)
    use_max: bool = field(default=True, converter=bool)

    @classmethod
    def from_dict(cls, values: ty.Mapping[str, ty.Any]) -> "SelectionConfig":
        """Builds the configuration from a nested mapping, as obtained
        from a JSON or YAML document.

        Raises
        ------
        ValueError
            If any group or option is unknown, or fails validation.
        """
        values = dict(values)
        names = {a.name for a in attr.fields(cls)}
        unknown = set(values) - names
        if unknown:
            raise ValueError(
                f"Unknown configuration group(s): {sorted(unknown)}."
            )
        if "phi" in values:
            values["phi"] = _from_group(PhiConfig, values["phi"])
        if "child" in values:
            values["child"] = _from_group(ChildConfig, values["child"])
        return cls(**values)

    def to_dict(self) -> ty.Dict[str, ty.Any]:
        """Serializes the configuration into plain Python types."""
        return {
            "phi": _group_to_dict(self.phi),
            "child": _group_to_dict(self.child),
            "use_cut_bits": self.use_cut_bits,
            "use_pid": self.use_pid,
            "secondary_vertex": self.secondary_vertex,
            "use_max": self.use_max,
        }
