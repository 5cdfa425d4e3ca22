"""
``femtophi.histogram``
======================

Histogram registries and the role-keyed accumulators filled by the QA
task. Histograms are ``hist.Hist`` objects with double storage,
addressed by slash separated paths, *eg.* ``'Phi/Kinematics/hPt'``.
"""
import collections as cl
import math
import typing as ty

import hist
import numpy as np
from rich.console import Console
from rich.tree import Tree
from tabulate import tabulate

from . import base
from .config import AxisSpec
from .data import ParticleTable, ParticleType, PdgArray

__all__ = ["HistogramRegistry", "ParticleHisto", "EventHisto"]


_PT_AXIS = AxisSpec(240, 0.0, 6.0)
_ETA_AXIS = AxisSpec(200, -1.5, 1.5)
_PHI_AXIS = AxisSpec(200, 0.0, 2.0 * math.pi)
_CHARGE_AXIS = AxisSpec(5, -2.5, 2.5)
_TPC_CLUSTERS_AXIS = AxisSpec(163, -0.5, 162.5)
_DCA_Z_AXIS = AxisSpec(500, -5.0, 5.0)
_MASS_AXIS = AxisSpec(500, 0.0, 2.5)
_DECAY_RADIUS_AXIS = AxisSpec(200, 0.0, 100.0)
_DAUGHTER_DCA_AXIS = AxisSpec(100, 0.0, 10.0)

_ZVTX_AXIS = AxisSpec(300, -12.5, 12.5)
_MULT_V0M_AXIS = AxisSpec(600, 0.0, 600.0)
_MULT_NTR_AXIS = AxisSpec(200, 0.0, 200.0)
_SPHERICITY_AXIS = AxisSpec(100, 0.0, 1.0)


class HistogramRegistry(ty.Mapping[str, hist.Hist]):
    """Named collection of histograms, addressed by path.

    :group: histogram

    Parameters
    ----------
    name : str
        Name of the registry, *eg.* ``'FullPhiQA'``.

    Examples
    --------
    Booking and filling a histogram:

        >>> import hist
        >>> from femtophi.histogram import HistogramRegistry
        >>> reg = HistogramRegistry("Event")
        >>> _ = reg.add("Event/zvtxhist", hist.axis.Regular(10, -10, 10))
        >>> reg.fill("Event/zvtxhist", [0.5, 1.5])
        >>> reg.entries("Event/zvtxhist")
        2.0
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._histograms: ty.Dict[str, hist.Hist] = cl.OrderedDict()

    def __repr__(self) -> str:
        name, num = self.name, len(self)
        return f"HistogramRegistry(name={name!r}, histograms={num})"

    def __getitem__(self, path: str) -> hist.Hist:
        return self._histograms[path]

    def __iter__(self) -> ty.Iterator[str]:
        return iter(self._histograms)

    def __len__(self) -> int:
        return len(self._histograms)

    def add(
        self,
        path: str,
        *axes: ty.Any,
        title: str = "",
    ) -> hist.Hist:
        """Books a histogram with the given axes under ``path``.

        Raises
        ------
        ValueError
            If a histogram is already booked under ``path``.
        """
        if path in self._histograms:
            raise ValueError(
                f"Histogram {path} already booked in registry {self.name}."
            )
        histogram = hist.Hist(
            *axes,
            storage=hist.storage.Double(),
            name=path.rsplit("/", 1)[-1],
            label=title,
        )
        self._histograms[path] = histogram
        return histogram

    def get(self, path: str, default=None) -> ty.Optional[hist.Hist]:
        return self._histograms.get(path, default)

    def fill(self, path: str, *values: ty.Any, **kwargs: ty.Any) -> None:
        """Fills the histogram booked under ``path``.

        Raises
        ------
        KeyError
            If no histogram is booked under ``path``.
        """
        try:
            histogram = self._histograms[path]
        except KeyError as err:
            raise KeyError(
                f"No histogram {path} booked in registry {self.name}."
            ) from err
        histogram.fill(*values, **kwargs)

    def entries(self, path: str) -> float:
        """Sum of the bin contents, including under- and overflow."""
        return float(self._histograms[path].sum(flow=True))

    @property
    def folders(self) -> ty.Tuple[str, ...]:
        """Top level folders, in booking order."""
        names = (path.split("/", 1)[0] for path in self._histograms)
        return tuple(cl.OrderedDict.fromkeys(names))

    def reset(self) -> None:
        """Zeroes every booked histogram, keeping the bookings."""
        for histogram in self._histograms.values():
            histogram.reset()

    def __rich__(self) -> Tree:
        cls_name = self.__class__.__name__
        tree = Tree(f"{cls_name}([yellow]{self.name}[default])")
        branches: ty.Dict[str, Tree] = {}
        for path, histogram in self._histograms.items():
            *folders, leaf = path.split("/")
            branch = tree
            for depth in range(len(folders)):
                key = "/".join(folders[: depth + 1])
                if key not in branches:
                    branches[key] = branch.add(folders[depth])
                branch = branches[key]
            branch.add(f"{leaf} [dim]({histogram.ndim}D)[default]")
        return tree

    def __str__(self) -> str:
        console = Console(color_system=None)
        with console.capture() as capture:
            console.print(self)
        return capture.get()

    def summary(self, html: bool = False) -> str:
        """Tabulates the booked histograms with their entries."""
        rows = (
            (
                path,
                h.ndim,
                " × ".join(ax.name for ax in h.axes),
                self.entries(path),
            )
            for path, h in self._histograms.items()
        )
        return tabulate(
            list(rows),
            headers=("path", "dim", "axes", "entries"),
            tablefmt="html" if html else "plain",
            floatfmt=".6G",
        )

    def _repr_html_(self) -> str:
        return self.summary(html=True)


def _particle_name(pdg_code: int) -> str:
    try:
        return str(PdgArray([pdg_code]).name[0])
    except (KeyError, IndexError, ValueError):
        return str(pdg_code)


class ParticleHisto:
    """Accumulator of the QA histograms of one particle role.

    :group: histogram

    Parameters
    ----------
    part_type : ParticleType
        Particle type whose records are accumulated. Sets the folder
        name.
    folder_suffix : str
        Appended to the folder name, distinguishing roles of the same
        particle type, *eg.* ``'_pos'``.

    Attributes
    ----------
    folder : str
        Folder of the booked histograms in the registry.
    pdg_code : int or None
        PDG code labelling the role, set by ``init()``.
    """

    def __init__(
        self, part_type: ty.Union[int, ParticleType], folder_suffix: str = ""
    ) -> None:
        self.part_type = ParticleType(part_type)
        self.folder = f"{self.part_type.label}{folder_suffix}"
        self.pdg_code: ty.Optional[int] = None
        self._registry: ty.Optional[HistogramRegistry] = None
        self._secondary_vertex = False
        self._use_max = False

    def __repr__(self) -> str:
        return (
            f"ParticleHisto(folder={self.folder!r}, pdg_code={self.pdg_code})"
        )

    @property
    def is_booked(self) -> bool:
        return self._registry is not None

    def _path(self, group: str, name: str) -> str:
        return f"{self.folder}/{group}/{name}"

    def init(
        self,
        registry: HistogramRegistry,
        pt_bins: AxisSpec,
        var_bins: AxisSpec,
        secondary_vertex: bool,
        pdg_code: int,
        use_max: bool,
    ) -> None:
        """Books the role's histograms in ``registry``.

        Parameters
        ----------
        registry : HistogramRegistry
            Registry receiving the histograms.
        pt_bins : AxisSpec
            Transverse momentum binning of the temp-fit histogram.
        var_bins : AxisSpec
            Temp-fit variable binning.
        secondary_vertex : bool
            Whether the secondary-vertex histograms are booked.
        pdg_code : int
            PDG code of the particle hypothesis, labelling the titles.
        use_max : bool
            Whether the extended QA histograms are booked.
        """
        self.pdg_code = int(pdg_code)
        name = _particle_name(self.pdg_code)
        kin = "Kinematics"
        registry.add(
            self._path(kin, "hPt"),
            _PT_AXIS.axis("pt", "$p_T$ [GeV]"),
            title=f"{name} transverse momentum",
        )
        registry.add(
            self._path(kin, "hEta"),
            _ETA_AXIS.axis("eta", r"$\eta$"),
            title=f"{name} pseudorapidity",
        )
        registry.add(
            self._path(kin, "hPhi"),
            _PHI_AXIS.axis("phi", r"$\phi$"),
            title=f"{name} azimuth",
        )
        registry.add(
            self._path(kin, "hEtaPhi"),
            _ETA_AXIS.axis("eta", r"$\eta$"),
            _PHI_AXIS.axis("phi", r"$\phi$"),
            title=f"{name} pseudorapidity vs azimuth",
        )
        registry.add(
            self._path(kin, "hPtTempFitVar"),
            pt_bins.axis("pt", "$p_T$ [GeV]"),
            var_bins.axis("temp_fit_var", "Temp-fit variable"),
            title=f"{name} temp-fit variable",
        )
        if secondary_vertex:
            registry.add(
                self._path("SecondaryVertex", "hDecayRadius"),
                _DECAY_RADIUS_AXIS.axis("decay_radius", "$r_{xy}$ [cm]"),
                title=f"{name} decay radius",
            )
            registry.add(
                self._path("SecondaryVertex", "hDaughterDCA"),
                _DAUGHTER_DCA_AXIS.axis("daughter_dca", "DCA [cm]"),
                title=f"{name} daughter DCA",
            )
        if use_max:
            ext = "Extended"
            registry.add(
                self._path(ext, "hCharge"),
                _CHARGE_AXIS.axis("sign", "Charge"),
                title=f"{name} charge",
            )
            registry.add(
                self._path(ext, "hTPCNClusters"),
                _TPC_CLUSTERS_AXIS.axis("tpc_nclusters", "TPC clusters"),
                title=f"{name} TPC clusters found",
            )
            registry.add(
                self._path(ext, "hDCAz"),
                _DCA_Z_AXIS.axis("dca_z", "$DCA_z$ [cm]"),
                title=f"{name} longitudinal DCA",
            )
            registry.add(
                self._path(ext, "hMass"),
                _MASS_AXIS.axis("mass", "$m$ [GeV]"),
                title=f"{name} invariant mass",
            )
        self._registry = registry
        self._secondary_vertex = bool(secondary_vertex)
        self._use_max = bool(use_max)

    def fill(
        self,
        particles: ParticleTable,
        secondary_vertex: bool,
        use_max: bool,
    ) -> None:
        """Adds the records of ``particles`` to the booked histograms.
        The task passes one accepted record per call.

        Raises
        ------
        RuntimeError
            If called before ``init()``, or requesting a histogram
            group which was not booked.
        """
        registry = self._registry
        if registry is None:
            raise RuntimeError(
                f"Histograms of {self.folder} filled before being booked."
            )
        if (secondary_vertex and not self._secondary_vertex) or (
            use_max and not self._use_max
        ):
            raise RuntimeError(
                f"Histogram group requested for {self.folder} was not booked."
            )
        kin = "Kinematics"
        registry.fill(self._path(kin, "hPt"), pt=particles.pt)
        registry.fill(self._path(kin, "hEta"), eta=particles.eta)
        registry.fill(self._path(kin, "hPhi"), phi=particles.phi)
        registry.fill(
            self._path(kin, "hEtaPhi"), eta=particles.eta, phi=particles.phi
        )
        registry.fill(
            self._path(kin, "hPtTempFitVar"),
            pt=particles.pt,
            temp_fit_var=particles.temp_fit_var,
        )
        if secondary_vertex:
            registry.fill(
                self._path("SecondaryVertex", "hDecayRadius"),
                decay_radius=particles.decay_radius,
            )
            registry.fill(
                self._path("SecondaryVertex", "hDaughterDCA"),
                daughter_dca=particles.daughter_dca,
            )
        if use_max:
            ext = "Extended"
            registry.fill(self._path(ext, "hCharge"), sign=particles.sign)
            registry.fill(
                self._path(ext, "hTPCNClusters"),
                tpc_nclusters=particles.tpc_nclusters,
            )
            registry.fill(self._path(ext, "hDCAz"), dca_z=particles.dca_z)
            registry.fill(self._path(ext, "hMass"), mass=particles.mass)


class EventHisto:
    """Accumulator of the per-event QA histograms.

    :group: histogram
    """

    folder = "Event"

    def __init__(self) -> None:
        self._registry: ty.Optional[HistogramRegistry] = None

    @property
    def is_booked(self) -> bool:
        return self._registry is not None

    def init(self, registry: HistogramRegistry) -> None:
        """Books the event histograms in ``registry``."""
        registry.add(
            f"{self.folder}/zvtxhist",
            _ZVTX_AXIS.axis("pos_z", "$V_z$ [cm]"),
            title="Primary vertex position",
        )
        registry.add(
            f"{self.folder}/MultV0M",
            _MULT_V0M_AXIS.axis("mult_v0m", "V0M multiplicity"),
            title="Forward multiplicity",
        )
        registry.add(
            f"{self.folder}/MultNTr",
            _MULT_NTR_AXIS.axis("mult_ntr", "$N_{tracks}$"),
            title="Track multiplicity",
        )
        registry.add(
            f"{self.folder}/MultNTrVSMultV0M",
            _MULT_V0M_AXIS.axis("mult_v0m", "V0M multiplicity"),
            _MULT_NTR_AXIS.axis("mult_ntr", "$N_{tracks}$"),
            title="Track vs forward multiplicity",
        )
        registry.add(
            f"{self.folder}/Sphericity",
            _SPHERICITY_AXIS.axis("sphericity", "$S_T$"),
            title="Transverse sphericity",
        )
        self._registry = registry

    def fill(self, collision: base.CollisionInterface) -> None:
        """Adds ``collision`` to every booked event histogram once.

        Raises
        ------
        RuntimeError
            If called before ``init()``.
        """
        registry = self._registry
        if registry is None:
            raise RuntimeError("Event histograms filled before being booked.")
        pos_z = np.array([collision.pos_z], dtype=np.float64)
        mult_v0m = np.array([collision.mult_v0m], dtype=np.float64)
        mult_ntr = np.array([collision.mult_ntr], dtype=np.float64)
        sphericity = np.array([collision.sphericity], dtype=np.float64)
        registry.fill(f"{self.folder}/zvtxhist", pos_z=pos_z)
        registry.fill(f"{self.folder}/MultV0M", mult_v0m=mult_v0m)
        registry.fill(f"{self.folder}/MultNTr", mult_ntr=mult_ntr)
        registry.fill(
            f"{self.folder}/MultNTrVSMultV0M",
            mult_v0m=mult_v0m,
            mult_ntr=mult_ntr,
        )
        registry.fill(f"{self.folder}/Sphericity", sphericity=sphericity)
