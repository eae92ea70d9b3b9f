from __future__ import annotations
import math

from .timing import CycleTimings, elapsed_in_window

QRS_DURATION = 0.08
T_WAVE_DURATION = 0.16


def p_wave(cycle_time: float, timings: CycleTimings) -> float:
    """Atrial depolarization, a half sine over 80% of the atrial contraction"""
    if not timings.LA.enabled:
        return 0.0
    duration = timings.LA.TC * 0.8
    elapsed = elapsed_in_window(cycle_time, timings.LA, timings.cycle_duration)
    if elapsed < duration:
        return 0.25 * math.sin(math.pi * elapsed / duration)
    return 0.0


def qrs_complex(cycle_time: float) -> float:
    if cycle_time >= QRS_DURATION:
        return 0.0
    phase = cycle_time / QRS_DURATION
    if phase < 0.15:
        return -0.1 * math.sin(math.pi * phase / 0.15)
    if phase < 0.5:
        return 1.0 * math.sin(math.pi * (phase - 0.15) / 0.35)
    if phase < 0.7:
        return -0.2 * math.sin(math.pi * (phase - 0.5) / 0.2)
    return 0.0


def t_wave(cycle_time: float, timings: CycleTimings) -> float:
    start = timings.LV.TC * 0.8
    if start <= cycle_time < start + T_WAVE_DURATION:
        return 0.3 * math.sin(math.pi * (cycle_time - start) / T_WAVE_DURATION)
    return 0.0


def ecg(cycle_time: float, timings: CycleTimings) -> float:
    """Synthetic single lead ECG sample (mV) at ``cycle_time`` seconds into the cycle"""
    return p_wave(cycle_time, timings) + qrs_complex(cycle_time) + t_wave(cycle_time, timings)
