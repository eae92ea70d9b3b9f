from importlib.metadata import metadata

from . import (
    units,
    log,
    diagnostics,
    parameters,
    elastance,
    timing,
    valves,
    vessels,
    ecg,
    history,
    state,
    metrics,
    engine,
    sweep,
)
from .engine import Simulator
from .sweep import BalanceCurveClient, BalancePoint, SweepWorker, compute_balance_curve

meta = metadata("cardiosim")
__version__ = meta["Version"]
__author__ = meta["Author-email"]

__all__ = [
    "units",
    "log",
    "diagnostics",
    "parameters",
    "elastance",
    "timing",
    "valves",
    "vessels",
    "ecg",
    "history",
    "state",
    "metrics",
    "engine",
    "sweep",
    "Simulator",
    "BalanceCurveClient",
    "BalancePoint",
    "SweepWorker",
    "compute_balance_curve",
]
