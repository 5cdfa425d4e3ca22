"""
``femtophi.task``
=================

Per-event QA task for Phi candidates decaying into two charged
daughters. For every event, the event histograms are filled, the Phi
candidates are paired with their children from the table ordering, and
the accepted candidates are routed to the histograms of their role.
"""
import typing as ty

from attr import define

from . import base
from .config import SelectionConfig
from .data import ParticleTable, ParticleType, Role
from .histogram import EventHisto, HistogramRegistry, ParticleHisto
from .select import CutEvaluator, EventPartition, resolve_children

__all__ = ["ProcessingSummary", "DebugPhiTask"]


EVENT_REGISTRY = "Event"
PARTICLE_REGISTRY = "FullPhiQA"


@define
class ProcessingSummary:
    """Running counters of the processed events and candidates.

    :group: task

    Attributes
    ----------
    events : int
        Number of events processed.
    candidates : int
        Number of Phi candidates encountered.
    no_children : int
        Candidates skipped for declaring no children.
    mismatch : int
        Candidates skipped because the records at the expected child
        positions are not their declared children.
    rejected : int
        Candidates failing the selection.
    accepted : int
        Candidates passing the selection, and filled.
    """

    events: int = 0
    candidates: int = 0
    no_children: int = 0
    mismatch: int = 0
    rejected: int = 0
    accepted: int = 0


class DebugPhiTask:
    """QA task filling the Phi candidate and daughter histograms.

    :group: task

    Parameters
    ----------
    config : SelectionConfig, optional
        Selection and binning settings. Defaults are used if omitted.

    Attributes
    ----------
    event_registry : HistogramRegistry
        Registry ``'Event'``, holding the event histograms.
    registry : HistogramRegistry
        Registry ``'FullPhiQA'``, holding the Phi and daughter
        histograms.
    summary : ProcessingSummary
        Counters accumulated over the processed events.

    Examples
    --------
    Processing a single event with one Phi candidate:

        >>> import femtophi as fph
        >>> task = fph.DebugPhiTask()
        >>> task.init()
        >>> table = fph.ParticleTable.from_numpy(
        ...     index=[5, 6, 7],
        ...     part_type=[6, 6, 5],
        ...     children=[[], [], [5, 6]],
        ... )
        >>> task.process(fph.Collision(index=0), table)
        >>> task.summary.accepted
        1
    """

    def __init__(self, config: ty.Optional[SelectionConfig] = None) -> None:
        self.config = SelectionConfig() if config is None else config
        self.event_registry = HistogramRegistry(EVENT_REGISTRY)
        self.registry = HistogramRegistry(PARTICLE_REGISTRY)
        self.event_histo: base.EventSinkInterface = EventHisto()
        self.histos: ty.Dict[Role, base.ParticleSinkInterface] = {
            Role.PARENT: ParticleHisto(ParticleType.PHI, Role.PARENT.suffix),
            Role.POSITIVE_CHILD: ParticleHisto(
                ParticleType.PHI_CHILD, Role.POSITIVE_CHILD.suffix
            ),
            Role.NEGATIVE_CHILD: ParticleHisto(
                ParticleType.PHI_CHILD, Role.NEGATIVE_CHILD.suffix
            ),
        }
        self.evaluator = CutEvaluator(self.config)
        self.summary = ProcessingSummary()
        self._initialised = False

    def __repr__(self) -> str:
        return f"DebugPhiTask(initialised={self._initialised})"

    def init(self) -> None:
        """Books the event histograms, and the histograms of the
        positive child, negative child, and Phi candidate, in that
        order.
        """
        conf = self.config
        self.event_histo.init(self.event_registry)
        bookings = (
            (
                Role.POSITIVE_CHILD,
                conf.child.temp_fit_var_pt_bins,
                conf.child.temp_fit_var_bins,
                conf.child.pdg_code_pos,
            ),
            (
                Role.NEGATIVE_CHILD,
                conf.child.temp_fit_var_pt_bins,
                conf.child.temp_fit_var_bins,
                conf.child.pdg_code_neg,
            ),
            (
                Role.PARENT,
                conf.phi.temp_fit_var_pt_bins,
                conf.phi.temp_fit_var_bins,
                conf.phi.pdg_code,
            ),
        )
        for role, pt_bins, var_bins, pdg_code in bookings:
            self.histos[role].init(
                self.registry,
                pt_bins,
                var_bins,
                conf.secondary_vertex,
                pdg_code,
                conf.use_max,
            )
        self._initialised = True

    def process(
        self, collision: base.CollisionInterface, particles: ParticleTable
    ) -> None:
        """Processes one event.

        Parameters
        ----------
        collision : Collision
            Descriptor of the event.
        particles : ParticleTable
            Particle records in table order, covering at least the
            records of this event and the rows preceding its Phi
            candidates.

        Raises
        ------
        RuntimeError
            If called before ``init()``.
        """
        if not self._initialised:
            raise RuntimeError("DebugPhiTask processed before init().")
        conf = self.config
        self.event_histo.fill(collision)
        self.summary.events += 1
        partition = EventPartition(particles, collision.index)
        parents = partition.positions(ParticleType.PHI)
        self.summary.candidates += len(parents)
        resolution = resolve_children(particles, parents)
        self.summary.no_children += resolution.no_children
        self.summary.mismatch += resolution.mismatch
        triplets = resolution.triplets
        accepted = self.evaluator(triplets)
        num_accepted = int(accepted.data.sum())
        self.summary.accepted += num_accepted
        self.summary.rejected += len(triplets) - num_accepted
        if num_accepted == 0:
            return
        selected = triplets[accepted]
        for i in range(num_accepted):
            for role, table in (
                (Role.PARENT, selected.parent),
                (Role.POSITIVE_CHILD, selected.positive),
                (Role.NEGATIVE_CHILD, selected.negative),
            ):
                self.histos[role].fill(
                    table[i], conf.secondary_vertex, conf.use_max
                )

    def run(
        self,
        events: ty.Iterable[
            ty.Tuple[base.CollisionInterface, ParticleTable]
        ],
    ) -> ProcessingSummary:
        """Processes ``(collision, particles)`` pairs in order, booking
        the histograms first if needed.
        """
        if not self._initialised:
            self.init()
        for collision, particles in events:
            self.process(collision, particles)
        return self.summary
