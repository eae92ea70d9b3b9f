r"""Valve flow model.

Forward flow through an open, competent valve follows a resistance-inertance
relation

.. math::
    L \frac{dQ}{dt} = \Delta P - R Q

integrated with the same explicit Euler step as the rest of the model. A
stenotic valve uses the Gorlin relation :math:`Q = c A \sqrt{\Delta P}`
instead. Regurgitation is modelled as flow through a fixed orifice,
:math:`Q = C_d A \sqrt{2 \Delta P / \rho}`, and is driven only by the reverse
pressure gradient.
"""

from __future__ import annotations
from typing import Any, Mapping
import math

from . import units

#: Lower bound on the valve resistance (mmHg·s/mL)
MIN_RESISTANCE = 1e-6


def orifice_flow(dp: float, area: float, Cd: float) -> float:
    """Flow in mL/s through an orifice of ``area`` cm² for a gradient ``dp`` in mmHg"""
    if dp <= 0 or area <= 0 or Cd <= 0:
        return 0.0
    return Cd * area * units.ORIFICE_COEFFICIENT * math.sqrt(dp)


def gorlin_flow(dp: float, area: float, coefficient: float) -> float:
    if dp <= 0:
        return 0.0
    return coefficient * max(0.0, area) * math.sqrt(dp)


def effective_area(p: Mapping[str, Any]) -> float:
    """Opening area used for the convective pressure drop"""
    return p["stenosis_area"] if p["stenosis"] else p["area"]


def required_gradient(flow: float, p: Mapping[str, Any]) -> float:
    """Steady state forward gradient (mmHg) needed to sustain ``flow`` (mL/s)

    Inverts the Gorlin relation for a stenotic valve and the resistive part of
    the R-L relation otherwise.
    """
    if flow <= 0:
        return 0.0
    if p["stenosis"]:
        area = max(0.0, p["stenosis_area"])
        if area == 0:
            return math.inf
        return (flow / (p["gorlin"] * area)) ** 2
    return max(MIN_RESISTANCE, p["R"]) * flow


class Valve:
    """Flow state of one valve

    The forward flow is kept between steps since the R-L relation integrates it.
    """

    def __init__(self, name: str):
        self.name = name
        self.reset()

    def reset(self) -> None:
        self.open = False
        self.forward_flow = 0.0
        self.flow = 0.0

    def forward(self, p_up: float, p_down: float, dt: float, p: Mapping[str, Any]) -> float:
        dp = p_up - p_down
        if not self.open or dp <= 0:
            return 0.0
        if p["stenosis"]:
            return gorlin_flow(dp, p["stenosis_area"], p["gorlin"])

        R = max(MIN_RESISTANCE, p["R"])
        L = p["L"]
        if L > 0:
            dQ_dt = (dp - R * self.forward_flow) / L
            return self.forward_flow + dQ_dt * dt
        return dp / R

    def regurgitant(self, p_up: float, p_down: float, p: Mapping[str, Any]) -> float:
        if not p["regurgitation"]:
            return 0.0
        return orifice_flow(p_down - p_up, max(0.0, p["EROA"]), max(0.0, p["Cd"]))

    def update(self, p_up: float, p_down: float, dt: float, p: Mapping[str, Any]) -> float:
        """Compute and store the forward and net flow, returning the net flow

        ``p_up`` is the pressure on the upstream (forward) side of the valve.
        """
        self.forward_flow = max(0.0, self.forward(p_up, p_down, dt, p))
        self.flow = self.forward_flow - self.regurgitant(p_up, p_down, p)
        return self.flow
