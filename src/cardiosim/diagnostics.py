"""Non-fatal model consistency reports.

The engine never raises on numerical anomalies. Instead it hands them to a
reporter object with a single :meth:`DiagnosticReporter.report` method, so
callers can decide whether to log, collect or ignore them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Protocol
import logging


logger = logging.getLogger(__name__)

#: Instantaneous elastance exceeded the end-systolic elastance ``Ees``
ELASTANCE_ABOVE_EES = "elastance_above_ees"
#: Chamber pressure exceeded the ESPVR prediction ``Ees * (V - V0)``
PRESSURE_ABOVE_ESPVR = "pressure_above_espvr"


class DiagnosticReporter(Protocol):
    def report(self, kind: str, context: dict[str, Any]) -> None: ...


class LoggingReporter:
    """Send every report to the module logger, as warnings by default"""

    def __init__(self, level: int = logging.WARNING):
        self.level = level

    def report(self, kind: str, context: dict[str, Any]) -> None:
        if not logger.isEnabledFor(self.level):
            return
        details = ", ".join(
            f"{k}={v:.4f}" if isinstance(v, float) else f"{k}={v}" for k, v in context.items()
        )
        logger.log(self.level, f"{kind}: {details}")


@dataclass
class CollectingReporter:
    """Keep reports in memory, mostly useful for testing"""

    reports: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def report(self, kind: str, context: dict[str, Any]) -> None:
        self.reports.append((kind, dict(context)))

    def kinds(self) -> set[str]:
        return {kind for kind, _ in self.reports}

    def clear(self) -> None:
        self.reports.clear()
