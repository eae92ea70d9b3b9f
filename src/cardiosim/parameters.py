from __future__ import annotations
from types import MappingProxyType
from typing import Any, Mapping
import copy

from rich.table import Table

from . import units

mL = units.ureg("mL")
mmHg = units.ureg("mmHg")
s = units.ureg("s")
cm2 = units.ureg("cm**2")
dyn_R = units.ureg("dyn * s / cm**5")
bpm = units.ureg("1/minute")


def remove_units(parameters: Mapping[str, Any]) -> dict[str, Any]:
    d = {}
    for k, v in parameters.items():
        if isinstance(v, units.pint.Quantity):
            d[k] = v.magnitude
        elif isinstance(v, Mapping):
            d[k] = remove_units(v)
        else:
            d[k] = v
    return d


def deep_update(d, u):
    for k, v in u.items():
        if isinstance(v, Mapping):
            d[k] = deep_update(d.get(k, {}), v)
        else:
            d[k] = v
    return d


def freeze(d: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return a read-only view of a nested parameter dict"""
    return MappingProxyType(
        {k: freeze(v) if isinstance(v, Mapping) else v for k, v in d.items()}
    )


def thaw(d: Mapping[str, Any]) -> dict[str, Any]:
    """Plain (picklable) nested dict copy of a possibly frozen parameter set"""
    return {k: thaw(v) if isinstance(v, Mapping) else copy.copy(v) for k, v in d.items()}


def recursive_table(d: Mapping[str, Any], table: Table, prefix: str = ""):
    for k, v in d.items():
        if isinstance(v, Mapping):
            recursive_table(v, table, prefix=f"{prefix}.{k}")
        else:
            table.add_row(f"{prefix}.{k}".lstrip("."), str(v))


def _atrium(Ees, alpha, beta):
    return {
        "Ees": Ees * mmHg / mL,
        "alpha": alpha * mmHg,
        "beta": beta / mL,
        "V0": 0.0 * mL,
        "TC": 0.10 * s,
        "TR": 0.08 * s,
        "contraction": True,
    }


def _ventricle(Ees, alpha, beta):
    return {
        "Ees": Ees * mmHg / mL,
        "alpha": alpha * mmHg,
        "beta": beta / mL,
        "V0": 0.0 * mL,
        "TC": 0.30 * s,
        "TR": 0.15 * s,
    }


def _valve(R, area, gorlin, stenosis_area, EROA, Cd):
    return {
        "R": R * mmHg * s / mL,
        "L": 1e-4 * mmHg * s**2 / mL,
        "area": area * cm2,
        "stenosis": False,
        "stenosis_area": stenosis_area * cm2,
        "gorlin": gorlin,
        "regurgitation": False,
        "EROA": EROA * cm2,
        "Cd": Cd,
    }


def default_parameters() -> dict[str, Any]:
    r"""Default parameters of the four chamber model

    Resistances of the vascular beds are given in dyn·s·cm⁻⁵ and converted
    to mmHg·s/mL by the vessel models. Gorlin coefficients are 37.7 for the
    atrioventricular valves and 44.3 for the semilunar valves.
    """
    return {
        "HR": 75.0 * bpm,
        "PR": 0.15 * s,
        "chambers": {
            "LA": _atrium(0.2, 0.12, 0.05),
            "LV": _ventricle(2.5, 0.03, 0.05),
            "RA": _atrium(0.17, 0.08, 0.04),
            "RV": _ventricle(0.4, 0.02, 0.04),
        },
        "valves": {
            "TV": _valve(0.01, 7.0, 37.7, 1.5, 0.2, 0.75),
            "MV": _valve(0.01, 4.0, 37.7, 1.5, 0.2, 0.75),
            "PV": _valve(0.01, 3.0, 44.3, 1.5, 0.2, 0.75),
            "AV": _valve(0.02, 3.0, 44.3, 1.5, 0.3, 0.88),
        },
        "circulation": {
            "SYS": {
                "C_AR": 1.5 * mL / mmHg,
                "R_AR": 1000.0 * dyn_R,
                "area_AR": 8.0 * cm2,
                "p_VEN": 8.0 * mmHg,
                "R_VEN": 0.05 * mmHg * s / mL,
                "C_VEN": 20.0 * mL / mmHg,
                "V_VEN_eq": 400.0 * mL,
                "venous_mode": "fixed",
            },
            "PUL": {
                "C_AR": 4.0 * mL / mmHg,
                "R_AR": 100.0 * dyn_R,
                "R_VEN": 20.0 * dyn_R,
                "area_AR": 5.0 * cm2,
                "alpha_VEN": 0.25 * mmHg,
                "beta_VEN": 0.02 / mL,
                "V0_VEN": 0.0 * mL,
                "wh_tau": 0.02 * s,
                "retro_gain": 0.5,
                "retro_tau": 0.06 * s,
                "retro_mean_tau": 0.5 * s,
                "retro_delay": 0.16 * s,
                "retro_gate_p": 6.0 * mmHg,
                "retro_gate_w": 2.0 * mmHg,
            },
        },
        "pulse_wave": {
            "k_PWV": 2.5,
            "rho": 1060.0 * units.ureg("kg / m**3"),
            "reflection_distance": 0.60 * units.ureg("m"),
            "SVR_normal": 1200.0 * dyn_R,
            "gamma_base": 0.5,
            "gamma_scaling": 500.0 * dyn_R,
        },
    }
