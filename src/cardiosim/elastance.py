r"""Time-varying elastance chamber model.

Each chamber is described by its end-diastolic pressure volume relation
(EDPVR)

.. math::
    P_{ED}(V) = \alpha \left(e^{\beta (V - V_0)} - 1\right)

and its end-systolic elastance :math:`E_{es}`. The instantaneous elastance
moves between the EDPVR elastance :math:`P_{ED}(V) / (V - V_0)` and
:math:`E_{es}` according to the phase of the chamber, and the chamber pressure
is :math:`P = \max(0, E (V - V_0))`.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Union
import math

from . import diagnostics

#: Smallest volume above ``V0`` used in the EDPVR elastance (mL)
VOLUME_EPSILON = 0.1
#: Steepness of the sigmoid contraction curve
SIGMOID_STEEPNESS = 10.0
#: Rate of the exponential relaxation curve
EXPONENTIAL_RATE = 5.0
#: Convective pressure drop coefficient, ΔP = 4 v² with v in m/s and Q/A in cm/s
BERNOULLI_COEFFICIENT = 0.0004
#: Largest exponent used by the exponential pressure volume relations
MAX_EXPONENT = 50.0


@dataclass(frozen=True)
class Passive:
    """Chamber follows its EDPVR"""


@dataclass(frozen=True)
class Contracting:
    phase: float


@dataclass(frozen=True)
class Relaxing:
    phase: float


ChamberPhase = Union[Passive, Contracting, Relaxing]

PASSIVE = Passive()


def edpvr_pressure(volume: float, alpha: float, beta: float, V0: float) -> float:
    dV = max(VOLUME_EPSILON, volume - V0)
    return alpha * (math.exp(min(MAX_EXPONENT, beta * dV)) - 1)


def edpvr_elastance(volume: float, alpha: float, beta: float, V0: float) -> float:
    """Elastance placing ``P = E (V - V0)`` on the EDPVR curve"""
    dV = max(VOLUME_EPSILON, volume - V0)
    return alpha * (math.exp(min(MAX_EXPONENT, beta * dV)) - 1) / dV


def smooth_transition(phase: float, k: float = SIGMOID_STEEPNESS) -> float:
    """Normalized sigmoid going from 0 at ``phase = 0`` to 1 at ``phase = 1``"""
    if phase <= 0:
        return 0.0
    if phase >= 1:
        return 1.0
    sigmoid = 1 / (1 + math.exp(-k * (phase - 0.5)))
    lo = 1 / (1 + math.exp(0.5 * k))
    hi = 1 / (1 + math.exp(-0.5 * k))
    return (sigmoid - lo) / (hi - lo)


def exponential_transition(phase: float, k: float = EXPONENTIAL_RATE) -> float:
    """Normalized exponential, fast initial change and slow tail"""
    if phase <= 0:
        return 0.0
    if phase >= 1:
        return 1.0
    return (1 - math.exp(-k * phase)) / (1 - math.exp(-k))


def fill_weight(volume: float, V_min: float, V_reservoir: float) -> float:
    """Fraction of the atrial reservoir currently filled, clipped to [0, 1]"""
    if V_reservoir <= V_min:
        return 1.0
    w = (volume - V_min) / (V_reservoir - V_min)
    return max(0.0, min(1.0, w))


def bernoulli_drop(flow: float, area: float) -> float:
    if flow <= 0 or area <= 0:
        return 0.0
    return BERNOULLI_COEFFICIENT * (flow / area) ** 2


class Chamber:
    """Elastance state machine of one heart chamber

    Parameters
    ----------
    name : str
        Chamber name, one of ``"LA"``, ``"LV"``, ``"RA"``, ``"RV"``
    atrial : bool
        Atria raise their contraction onset elastance to the current EDPVR
        elastance and track the volume range used by the conduit regime.
    reporter : diagnostics.DiagnosticReporter
        Receives non-fatal model inconsistencies
    """

    def __init__(
        self,
        name: str,
        atrial: bool = False,
        reporter: diagnostics.DiagnosticReporter | None = None,
    ):
        self.name = name
        self.atrial = atrial
        self.reporter = reporter if reporter is not None else diagnostics.LoggingReporter()
        self.reset()

    def reset(self, E: float = 0.0, V_min: float = 25.0, V_reservoir: float = 50.0) -> None:
        self.phase: ChamberPhase = PASSIVE
        self.E = E
        self.onset_E = 0.0
        self.V_min = V_min
        self.V_reservoir = V_reservoir

    @property
    def contracting(self) -> bool:
        return isinstance(self.phase, Contracting)

    @property
    def relaxing(self) -> bool:
        return isinstance(self.phase, Relaxing)

    @property
    def passive(self) -> bool:
        return isinstance(self.phase, Passive)

    def enter(self, phase: ChamberPhase, volume: float, p: Mapping[str, Any]) -> None:
        """Move to ``phase``, snapshotting the onset elastance and volume range

        ``p`` are the parameters of this chamber.
        """
        if isinstance(phase, Contracting) and not self.contracting:
            self.onset_E = self.E or edpvr_elastance(volume, p["alpha"], p["beta"], p["V0"])
        if self.atrial and self.contracting and not isinstance(phase, Contracting):
            self.V_min = volume
        self.phase = phase

    def elastance(self, volume: float, p: Mapping[str, Any]) -> float:
        E_min = edpvr_elastance(volume, p["alpha"], p["beta"], p["V0"])
        Ees = p["Ees"]

        if isinstance(self.phase, Contracting):
            if self.atrial:
                start = max(self.onset_E, E_min)
            else:
                start = min(self.onset_E, Ees)
            return start + (Ees - start) * smooth_transition(self.phase.phase)
        if isinstance(self.phase, Relaxing):
            return Ees - (Ees - E_min) * exponential_transition(self.phase.phase)
        return E_min

    def update(self, volume: float, p: Mapping[str, Any]) -> float:
        """Recompute the elastance for ``volume`` and return the chamber pressure"""
        self.E = self.elastance(volume, p)
        if self.E > p["Ees"]:
            self.reporter.report(
                diagnostics.ELASTANCE_ABOVE_EES,
                {"chamber": self.name, "E": self.E, "Ees": p["Ees"], "phase": self.phase},
            )
        pressure = max(0.0, self.E * (volume - p["V0"]))
        if not self.atrial:
            espvr = p["Ees"] * (volume - p["V0"])
            if pressure > espvr:
                self.reporter.report(
                    diagnostics.PRESSURE_ABOVE_ESPVR,
                    {"chamber": self.name, "p": pressure, "p_ESPVR": espvr, "V": volume},
                )
        return pressure

    def conduit_pressure(
        self,
        volume: float,
        p: Mapping[str, Any],
        p_ventricle: float,
        forward_flow: float,
        area: float,
    ) -> float:
        """Atrial pressure while the chamber passively conducts flow into its ventricle

        Blends the EDPVR pressure and the ventricular pressure by the reservoir
        fill fraction and subtracts the convective pressure drop. The result
        may be negative.
        """
        w = fill_weight(volume, self.V_min, self.V_reservoir)
        p_edpvr = max(0.0, self.E * (volume - p["V0"]))
        return w * p_edpvr + (1 - w) * p_ventricle - bernoulli_drop(forward_flow, area)
