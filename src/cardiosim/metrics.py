from __future__ import annotations
from dataclasses import dataclass, asdict

import numpy as np

from .history import History


@dataclass(frozen=True)
class BeatMetrics:
    """Hemodynamic summary of one beat

    Volumes in mL, pressures in mmHg, cardiac output in L/min, elastances in
    mmHg/mL and the ejection fraction in percent.
    """

    SV: float
    EDV: float
    ESV: float
    EF: float
    CO: float
    Ea: float
    Ees: float
    p_AR_SYS_max: float
    p_AR_SYS_min: float
    MAP: float
    p_LA_max: float
    p_LA_min: float
    p_LA_mean: float
    p_LV_max: float
    p_LV_min: float
    p_LV_mean: float
    LV_EDP: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def cardiac_output(SV: float, HR: float) -> float:
    """Cardiac output (L/min) from the stroke volume (mL) and heart rate (bpm)"""
    return SV * HR / 1000.0


def beat_metrics(
    history: History,
    samples_per_beat: int,
    HR: float,
    Ees: float,
    LV_EDP: float | None = None,
) -> BeatMetrics:
    """Compute the metrics over the last ``samples_per_beat`` recorded samples

    The stroke volume is the swing of the LV volume, the mean arterial pressure
    is the diastolic pressure plus a third of the pulse pressure, and the
    arterial elastance uses the peak LV pressure as end-systolic pressure.
    """
    if len(history) == 0:
        raise ValueError("No history recorded yet")

    V_LV = history.tail("V_LV", samples_per_beat)
    p_LV = history.tail("p_LV", samples_per_beat)
    p_LA = history.tail("p_LA", samples_per_beat)
    p_AR = history.tail("p_AR_SYS", samples_per_beat)

    EDV = float(V_LV.max())
    ESV = float(V_LV.min())
    SV = EDV - ESV
    p_sys = float(p_AR.max())
    p_dia = float(p_AR.min())
    ESP = float(p_LV.max())

    if LV_EDP is None:
        LV_EDP = float(p_LV[int(np.argmax(V_LV))])

    return BeatMetrics(
        SV=SV,
        EDV=EDV,
        ESV=ESV,
        EF=SV / EDV * 100 if EDV > 0 else 0.0,
        CO=cardiac_output(SV, HR),
        Ea=ESP / SV if SV > 0 else 0.0,
        Ees=Ees,
        p_AR_SYS_max=p_sys,
        p_AR_SYS_min=p_dia,
        MAP=p_dia + (p_sys - p_dia) / 3,
        p_LA_max=float(p_LA.max()),
        p_LA_min=float(p_LA.min()),
        p_LA_mean=float(p_LA.mean()),
        p_LV_max=ESP,
        p_LV_min=float(p_LV.min()),
        p_LV_mean=float(p_LV.mean()),
        LV_EDP=LV_EDP,
    )
