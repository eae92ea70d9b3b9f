from __future__ import annotations
from dataclasses import dataclass, asdict, fields
from typing import Any

from . import units

mL = units.ureg("mL")
mmHg = units.ureg("mmHg")


def default_initial_conditions() -> dict[str, Any]:
    return {
        "V_LA": 40.0 * mL,
        "p_LA": 8.0 * mmHg,
        "V_LV": 120.0 * mL,
        "p_LV": 8.0 * mmHg,
        "V_RA": 40.0 * mL,
        "p_RA": 5.0 * mmHg,
        "V_RV": 140.0 * mL,
        "p_RV": 5.0 * mmHg,
        "V_VEN_SYS": 400.0 * mL,
        "p_VEN_SYS": 8.0 * mmHg,
        "p_AR_SYS": 80.0 * mmHg,
        "p_AR_SYS_res": 80.0 * mmHg,
        "p_AR_PUL": 15.0 * mmHg,
        "p_AR_PUL_res": 15.0 * mmHg,
        "V_VEN_PUL": 175.0 * mL,
        "p_VEN_PUL": 8.0 * mmHg,
        "p_LA_lpf": 8.0 * mmHg,
        "p_LA_mean": 8.0 * mmHg,
        "LV_EDP": 8.0 * mmHg,
    }


@dataclass
class SimulationState:
    """Instantaneous state of the circulation

    Volumes ``V_*`` are in mL, pressures ``p_*`` in mmHg, elastances ``E_*``
    in mmHg/mL and flows ``Q_*`` in mL/s. Valve flows are net flows, the
    ``*_fwd`` fields hold the forward component only.
    """

    time: float = 0.0
    cycle_count: int = 0
    cycle_phase: float = 0.0

    V_LA: float = 0.0
    p_LA: float = 0.0
    E_LA: float = 0.0
    V_LV: float = 0.0
    p_LV: float = 0.0
    E_LV: float = 0.0
    V_RA: float = 0.0
    p_RA: float = 0.0
    E_RA: float = 0.0
    V_RV: float = 0.0
    p_RV: float = 0.0
    E_RV: float = 0.0

    Q_TV: float = 0.0
    Q_TV_fwd: float = 0.0
    Q_MV: float = 0.0
    Q_MV_fwd: float = 0.0
    Q_PV: float = 0.0
    Q_PV_fwd: float = 0.0
    Q_AV: float = 0.0
    Q_AV_fwd: float = 0.0

    Q_VEN_SYS: float = 0.0
    Q_VEN_PUL: float = 0.0
    Q_AR_SYS: float = 0.0
    Q_AR_PUL: float = 0.0

    V_VEN_SYS: float = 0.0
    p_VEN_SYS: float = 0.0
    p_AR_SYS: float = 0.0
    p_AR_SYS_res: float = 0.0
    p_AR_PUL: float = 0.0
    p_AR_PUL_res: float = 0.0
    p_wh_PUL: float = 0.0
    V_VEN_PUL: float = 0.0
    p_VEN_PUL: float = 0.0
    C_VEN_PUL: float = 0.0
    p_LA_lpf: float = 0.0
    p_LA_mean: float = 0.0

    ecg: float = 0.0
    LV_EDP: float = 0.0

    @classmethod
    def from_initial_conditions(cls, initial: dict[str, float]) -> "SimulationState":
        names = {f.name for f in fields(cls)}
        unknown = set(initial) - names
        if unknown:
            raise KeyError(f"Unknown initial state(s): {sorted(unknown)}")
        return cls(**initial)

    def as_dict(self) -> dict[str, float]:
        return asdict(self)
