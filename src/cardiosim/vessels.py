r"""Vascular reservoirs and pulse wave terms.

All reservoirs are single compartment Windkessels

.. math::
    C \frac{dP}{dt} = Q_{in} - Q_{out}

The systemic arterial pressure seen by the left ventricle additionally
contains a water hammer term :math:`\rho c Q / A`, with the pulse wave
velocity :math:`c = k / \sqrt{C}`, and a reflected wave arriving after the
round trip time :math:`2 d / c`.
"""

from __future__ import annotations
from typing import Any, Callable, Mapping
import math

from . import units
from .elastance import MAX_EXPONENT

FIXED = "fixed"
DYNAMIC = "dynamic"
VENOUS_MODES = (FIXED, DYNAMIC)

#: Smallest cross sectional area used by the water hammer term (cm²)
MIN_AREA = 0.1
#: Lower bound on vascular resistances (mmHg·s/mL)
MIN_RESISTANCE = 1e-3
#: Lower bound on compliances (mL/mmHg)
MIN_COMPLIANCE = 1e-3
#: Lower bound on the pulmonary venous stiffness alpha·beta (mmHg/mL)
MIN_STIFFNESS = 1e-9


def windkessel_step(p: float, inflow: float, outflow: float, C: float, dt: float) -> float:
    """Explicit Euler step of a Windkessel reservoir, floored at zero"""
    return max(0.0, p + (inflow - outflow) / max(MIN_COMPLIANCE, C) * dt)


def runoff(p: float, R_dyn: float, p_downstream: float = 0.0) -> float:
    """Outflow (mL/s) through a resistance given in dyn·s·cm⁻⁵"""
    R = max(MIN_RESISTANCE, units.dyn_to_mmHg_s_per_mL(R_dyn))
    return (p - p_downstream) / R


def venous_pressure(SYS: Mapping[str, Any], volume: float) -> float:
    """Systemic venous pressure

    In ``"fixed"`` mode the pressure is held at the target ``p_VEN``, i.e. a
    fixed mean systemic filling pressure that does not move with the systemic
    resistance. In ``"dynamic"`` mode the target is the pressure at the
    equilibrium volume ``V_VEN_eq`` and the reservoir compliance adds
    ``(V - V_VEN_eq) / C_VEN`` on top of it.
    """
    if SYS["venous_mode"] == DYNAMIC:
        C = max(MIN_COMPLIANCE, SYS["C_VEN"])
        return max(0.0, SYS["p_VEN"] + (volume - SYS["V_VEN_eq"]) / C)
    return max(0.0, SYS["p_VEN"])


def venous_return(p_ven: float, p_atrium: float, R: float) -> float:
    return (p_ven - p_atrium) / max(MIN_RESISTANCE, R)


def pulmonary_venous_pressure(PUL: Mapping[str, Any], volume: float) -> float:
    dV = volume - PUL["V0_VEN"]
    return PUL["alpha_VEN"] * (math.exp(min(MAX_EXPONENT, PUL["beta_VEN"] * dV)) - 1)


def pulmonary_venous_compliance(PUL: Mapping[str, Any], volume: float) -> float:
    """dV/dP of the pulmonary venous EDPVR at ``volume``"""
    dV = volume - PUL["V0_VEN"]
    stiffness = max(MIN_STIFFNESS, PUL["alpha_VEN"] * PUL["beta_VEN"])
    return 1.0 / (stiffness * math.exp(min(MAX_EXPONENT, PUL["beta_VEN"] * dV)))


def pulse_wave_velocity(C: float, k: float = 2.5) -> float:
    """Pulse wave velocity (m/s), stiffer vessels conduct faster"""
    return k / math.sqrt(max(MIN_COMPLIANCE, C))


def water_hammer_pressure(flow: float, area_cm2: float, pwv: float, rho: float = 1060.0) -> float:
    """Pressure rise (mmHg) of a forward flow ``flow`` (mL/s) into a vessel"""
    if flow <= 0:
        return 0.0
    area_m2 = max(MIN_AREA, area_cm2) * 1e-4
    flow_m3_s = flow * 1e-6
    return units.Pa_to_mmHg(rho * pwv * flow_m3_s / area_m2)


def reflection_coefficient(SVR: float, pw: Mapping[str, Any]) -> float:
    """Reflection coefficient, growing with the systemic resistance"""
    delta = (SVR - pw["SVR_normal"]) / max(MIN_RESISTANCE, pw["gamma_scaling"])
    gamma = pw["gamma_base"] * (1 + math.tanh(delta) * 0.3)
    return min(0.8, max(0.2, gamma))


def central_reflection_gain(SVR: float, pw: Mapping[str, Any]) -> float:
    """Gain applied to the water hammer of the delayed flow in the central aorta"""
    ratio = max(0.3, SVR / max(MIN_RESISTANCE, pw["SVR_normal"]))
    strength = min(1.4, max(0.7, ratio**0.5))
    base = min(0.22, max(0.05, reflection_coefficient(SVR, pw) * 0.25))
    return min(0.26, max(0.04, base * strength))


def round_trip_delay(pwv: float, distance: float) -> float:
    return 2 * distance / max(0.1, pwv)


def reflected_pressure(
    SYS: Mapping[str, Any],
    pw: Mapping[str, Any],
    t: float,
    flow_at: Callable[[float], float],
) -> float:
    """Reflected wave in the central aorta

    ``flow_at`` returns the aortic valve flow at an earlier time.
    """
    pwv = pulse_wave_velocity(SYS["C_AR"], pw["k_PWV"])
    delayed_flow = flow_at(t - round_trip_delay(pwv, pw["reflection_distance"]))
    if delayed_flow <= 0:
        return 0.0
    gain = central_reflection_gain(SYS["R_AR"], pw)
    return gain * water_hammer_pressure(delayed_flow, SYS["area_AR"], pwv, pw["rho"])


def low_pass(value: float, target: float, tau: float, dt: float) -> float:
    """First order low pass filter step"""
    if tau <= 0:
        return target
    return value + (target - value) * min(1.0, dt / tau)


def retrograde_gate(p_mean: float, PUL: Mapping[str, Any]) -> float:
    """Logistic gate opening the LA to PA transmission at high mean LA pressure"""
    width = max(1e-6, PUL["retro_gate_w"])
    z = (p_mean - PUL["retro_gate_p"]) / width
    return 1 / (1 + math.exp(-max(-MAX_EXPONENT, min(MAX_EXPONENT, z))))


def retrograde_pressure(p_lpf_delayed: float, p_mean: float, PUL: Mapping[str, Any]) -> float:
    """Pulsatile part of the LA pressure transmitted backwards into the PA"""
    return PUL["retro_gain"] * retrograde_gate(p_mean, PUL) * (p_lpf_delayed - p_mean)
