"""Cardiac cycle timing.

Contraction and relaxation windows are scheduled from the heart rate and the
PR interval. The ventricular phase on the other hand is not scheduled but
derived from the pressures on both sides of the ventricle.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping

from .elastance import ChamberPhase, Contracting, Relaxing, PASSIVE

FILLING = "filling"
ISOVOLUMIC_CONTRACTION = "isovolumic_contraction"
EJECTION = "ejection"
ISOVOLUMIC_RELAXATION = "isovolumic_relaxation"

#: Lower bound on the heart rate (beats per minute)
MIN_HEART_RATE = 1.0


@dataclass(frozen=True)
class Window:
    """Active window of one chamber within the cycle"""

    start: float
    TC: float
    TR: float
    enabled: bool = True


@dataclass(frozen=True)
class CycleTimings:
    cycle_duration: float
    LV: Window
    RV: Window
    LA: Window
    RA: Window


def cycle_duration(HR: float) -> float:
    """Length of one beat in seconds, with the heart rate floored at ``MIN_HEART_RATE``"""
    return 60.0 / max(MIN_HEART_RATE, HR)


def cycle_timings(parameters: Mapping[str, Any]) -> CycleTimings:
    """Contraction windows for the current heart rate

    Ventricular contraction starts at cycle time 0 (QRS onset). Atrial
    contraction starts one PR interval earlier, i.e. at the end of the
    previous cycle, so its window usually wraps over the cycle boundary.
    """
    duration = cycle_duration(parameters["HR"])
    chambers = parameters["chambers"]
    atrial_start = duration - parameters["PR"]
    LV = chambers["LV"]
    RV = chambers["RV"]
    LA = chambers["LA"]
    RA = chambers["RA"]
    return CycleTimings(
        cycle_duration=duration,
        LV=Window(0.0, LV["TC"], LV["TR"]),
        RV=Window(0.0, RV["TC"], RV["TR"]),
        LA=Window(atrial_start, LA["TC"], LA["TR"], enabled=bool(LA["contraction"])),
        RA=Window(atrial_start, RA["TC"], RA["TR"], enabled=bool(RA["contraction"])),
    )


def elapsed_in_window(cycle_time: float, window: Window, cycle_duration: float) -> float:
    """Time since the window started, wrapping across the cycle boundary"""
    return (cycle_time - window.start) % cycle_duration


def chamber_phase(cycle_time: float, window: Window, cycle_duration: float) -> ChamberPhase:
    if not window.enabled:
        return PASSIVE
    elapsed = elapsed_in_window(cycle_time, window, cycle_duration)
    if elapsed < window.TC:
        return Contracting(elapsed / window.TC)
    if elapsed < window.TC + window.TR:
        return Relaxing((elapsed - window.TC) / window.TR)
    return PASSIVE


def ventricular_phase(
    phase: ChamberPhase,
    p_upstream: float,
    p_ventricle: float,
    p_downstream: float,
) -> tuple[str, bool, bool]:
    """Derive the ventricular phase and valve states from the pressures

    Returns
    -------
    tuple[str, bool, bool]
        The phase name, whether the inflow valve is open and whether the
        outflow valve is open
    """
    inflow_should_open = p_upstream > p_ventricle
    outflow_should_open = p_ventricle > p_downstream
    contracting = isinstance(phase, Contracting)

    if contracting or isinstance(phase, Relaxing):
        if outflow_should_open:
            name = EJECTION
        elif inflow_should_open:
            name = FILLING
        elif contracting:
            name = ISOVOLUMIC_CONTRACTION
        else:
            name = ISOVOLUMIC_RELAXATION
    elif inflow_should_open:
        name = FILLING
    else:
        # Waiting for the atrial pressure to exceed the ventricular one
        name = ISOVOLUMIC_RELAXATION

    inflow_open = inflow_should_open and not contracting and name == FILLING
    outflow_open = outflow_should_open and name == EJECTION
    return name, inflow_open, outflow_open
