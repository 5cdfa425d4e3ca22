from .data import (
    ChildPair,
    ChildrenArray,
    Collision,
    CutArray,
    MaskArray,
    MaskGroup,
    ParticleRecord,
    ParticleTable,
    ParticleType,
    PdgArray,
    Role,
)

from . import base, calculate, config, histogram, select  # isort: skip
from .config import AxisSpec, ChildConfig, PhiConfig, SelectionConfig
from .histogram import EventHisto, HistogramRegistry, ParticleHisto
from .select import CutEvaluator, EventPartition, Triplet, resolve_children
from .task import DebugPhiTask, ProcessingSummary  # isort: skip

__all__ = [
    "MaskArray",
    "MaskGroup",
    "PdgArray",
    "CutArray",
    "ChildrenArray",
    "ChildPair",
    "ParticleType",
    "Role",
    "Collision",
    "ParticleRecord",
    "ParticleTable",
    "AxisSpec",
    "PhiConfig",
    "ChildConfig",
    "SelectionConfig",
    "EventPartition",
    "Triplet",
    "resolve_children",
    "CutEvaluator",
    "HistogramRegistry",
    "ParticleHisto",
    "EventHisto",
    "DebugPhiTask",
    "ProcessingSummary",
    "base",
    "calculate",
    "config",
    "histogram",
    "select",
]
