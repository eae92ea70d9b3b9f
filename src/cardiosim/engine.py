from __future__ import annotations
from typing import Any, Protocol
from pathlib import Path
import dataclasses
import json
import logging
import time

import numpy as np
import numpy.typing as npt
from rich.table import Table

from . import log
from . import diagnostics
from . import metrics
from . import parameters as params
from . import state as state_
from .ecg import ecg
from .elastance import Chamber, VOLUME_EPSILON
from .history import History
from . import timing
from .timing import FILLING, chamber_phase, cycle_timings, ventricular_phase
from .valves import Valve, effective_area
from . import vessels


logger = logging.getLogger(__name__)

HISTORY_CHANNELS = [
    "time",
    "ecg",
    "V_LA",
    "p_LA",
    "E_LA",
    "V_LV",
    "p_LV",
    "E_LV",
    "V_RA",
    "p_RA",
    "E_RA",
    "V_RV",
    "p_RV",
    "E_RV",
    "p_AR_SYS",
    "p_AR_PUL",
    "p_VEN_SYS",
    "p_VEN_PUL",
    "Q_TV",
    "Q_MV",
    "Q_PV",
    "Q_AV",
    "Q_VEN_SYS",
    "Q_VEN_PUL",
    "p_LA_lpf",
]

#: Atrium, atrioventricular valve and ventricle of each side of the heart
SIDES = (("RA", "TV", "RV"), ("LA", "MV", "LV"))


class CallBack(Protocol):
    def __call__(self, model: "Simulator", i: int = 0, t: float = 0, **kwargs) -> None: ...


def dummy_callback(model: "Simulator", i: int = 0, t: float = 0, **kwargs) -> None:
    pass


class Simulator:
    """Four chamber circulation driven by a fixed step explicit Euler scheme

    The simulator only advances when :meth:`step` is called. Pulmonary and
    systemic arterial beds are Windkessel reservoirs, the pulmonary veins a
    reservoir with an exponential pressure volume relation, and the systemic
    veins either a fixed pressure source or a compliant reservoir, see
    :func:`cardiosim.vessels.venous_pressure`.

    Parameters
    ----------
    parameters : dict[str, Any] | None, optional
        Nested (partial) parameters merged into :meth:`default_parameters`,
        by default None. Values may carry ``pint`` units, which are stripped.
    initial_state : dict[str, float] | None, optional
        Overrides of :meth:`default_initial_conditions`, by default None
    dt : float, optional
        Time step in seconds, by default 1e-3
    history_duration : float, optional
        Length of the recorded history in seconds, by default 10.0
    reporter : diagnostics.DiagnosticReporter | None, optional
        Receives non-fatal model inconsistencies, by default a
        :class:`cardiosim.diagnostics.LoggingReporter`
    callback : CallBack | None, optional
        Called after every step taken by :meth:`solve`, by default None
    verbose : bool, optional
        Print additional information, by default False
    """

    def __init__(
        self,
        parameters: dict[str, Any] | None = None,
        initial_state: dict[str, float] | None = None,
        dt: float = 1e-3,
        history_duration: float = 10.0,
        reporter: diagnostics.DiagnosticReporter | None = None,
        callback: CallBack | None = None,
        verbose: bool = False,
    ):
        self._parameters = params.remove_units(type(self).default_parameters())
        if parameters is not None:
            params.deep_update(self._parameters, params.remove_units(parameters))
        self._refresh_parameters()

        self._initial_state = params.remove_units(type(self).default_initial_conditions())
        self.update_initial_state(initial_state)

        if logger.isEnabledFor(logging.DEBUG):
            table = Table(title=f"Circulation model parameters ({type(self).__name__})")
            table.add_column("Parameter")
            table.add_column("Value")
            params.recursive_table(self._parameters, table)
            logger.debug(f"\n{log.log_table(table)}")

        self.dt = dt
        self.reporter = reporter if reporter is not None else diagnostics.LoggingReporter()

        if callback is not None:
            assert callable(callback), "callback must be callable"
            self.callback = callback
        else:
            self.callback = dummy_callback

        self._verbose = verbose
        loglevel = logging.DEBUG if verbose else logging.INFO
        log.setup_logging(level=loglevel)

        self.chambers = {
            "LA": Chamber("LA", atrial=True, reporter=self.reporter),
            "LV": Chamber("LV", reporter=self.reporter),
            "RA": Chamber("RA", atrial=True, reporter=self.reporter),
            "RV": Chamber("RV", reporter=self.reporter),
        }
        self.valves = {name: Valve(name) for name in ("TV", "MV", "PV", "AV")}
        self.history = History.for_duration(HISTORY_CHANNELS, history_duration, dt)
        self.reset()

    @staticmethod
    def default_parameters() -> dict[str, Any]:
        return params.default_parameters()

    @staticmethod
    def default_initial_conditions() -> dict[str, Any]:
        return state_.default_initial_conditions()

    @property
    def parameters(self):
        """Read-only view of the current parameters"""
        return self._snapshot

    @property
    def HR(self) -> float:
        """Heart rate in beats per minute"""
        return self._snapshot["HR"]

    @property
    def cycle_duration(self) -> float:
        return timing.cycle_duration(self.HR)

    @property
    def steps_per_beat(self) -> int:
        return max(1, int(self.cycle_duration / self.dt + 1e-9))

    def _refresh_parameters(self) -> None:
        venous_mode = self._parameters["circulation"]["SYS"]["venous_mode"]
        if venous_mode not in vessels.VENOUS_MODES:
            logger.warning(
                f"Unknown venous mode {venous_mode!r}, expected one of {vessels.VENOUS_MODES}. "
                "Using a fixed venous pressure."
            )
        self._snapshot = params.freeze(self._parameters)

    def update_params(self, partial: dict[str, Any]) -> None:
        """Merge (nested) parameter values into the live parameter set

        Values are not validated beyond the numerical guards in the models.
        """
        params.deep_update(self._parameters, params.remove_units(partial))
        self._refresh_parameters()

    def update_initial_state(self, initial_state: dict[str, float] | None = None) -> None:
        if initial_state is not None:
            self._initial_state.update(params.remove_units(initial_state))
        # Fail early on unknown names
        state_.SimulationState.from_initial_conditions(self._initial_state)

    def reset(self) -> None:
        """Restore the initial state and clear the history, keeping the parameters"""
        self.state = state_.SimulationState.from_initial_conditions(self._initial_state)
        for chamber in self.chambers.values():
            chamber.reset()
        for valve in self.valves.values():
            valve.reset()
        # Diastole: atrioventricular valves open, semilunar valves closed
        self.valves["TV"].open = True
        self.valves["MV"].open = True
        self._was_open = {name: False for name in self.valves}
        self.ventricular_phases = {"LV": FILLING, "RV": FILLING}
        self._cycle_max_V_LV = self.state.V_LV
        self._cycle_max_p_LV = self.state.p_LV
        self.history.clear()

    def get_state(self) -> state_.SimulationState:
        return dataclasses.replace(self.state)

    def get_history(self) -> dict[str, npt.NDArray[np.float64]]:
        """Live, read-only views of the history channels"""
        return self.history.views()

    def _floor_volume(self, volume: float, chamber: str) -> float:
        return max(volume, self._snapshot["chambers"][chamber]["V0"] + VOLUME_EPSILON)

    def _delayed_aortic_flow(self, t: float) -> float:
        return self.history.value_at("Q_AV", t, 0.0)

    def step(self) -> None:
        """Advance the model by one time step"""
        dt = self.dt
        p = self._snapshot
        s = self.state
        chambers = p["chambers"]
        valves = p["valves"]
        SYS = p["circulation"]["SYS"]
        PUL = p["circulation"]["PUL"]
        pw = p["pulse_wave"]
        timings = cycle_timings(p)

        # Time and cycle phase
        s.time += dt
        s.cycle_phase += dt / timings.cycle_duration
        wrapped = False
        if s.cycle_phase >= 1:
            s.cycle_phase -= 1
            s.cycle_count += 1
            wrapped = True
        cycle_time = s.cycle_phase * timings.cycle_duration

        # Contraction windows
        for name in self.chambers:
            phase = chamber_phase(cycle_time, getattr(timings, name), timings.cycle_duration)
            self.chambers[name].enter(phase, getattr(s, f"V_{name}"), chambers[name])

        # Valve states from the pressures of the previous step
        LV, MV, AV = self.chambers["LV"], self.valves["MV"], self.valves["AV"]
        self.ventricular_phases["LV"], MV.open, AV.open = ventricular_phase(
            LV.phase, s.p_LA, s.p_LV, s.p_AR_SYS
        )
        RV, TV, PV = self.chambers["RV"], self.valves["TV"], self.valves["PV"]
        self.ventricular_phases["RV"], TV.open, PV.open = ventricular_phase(
            RV.phase, s.p_RA, s.p_RV, s.p_AR_PUL
        )

        # Flows
        s.p_VEN_SYS = vessels.venous_pressure(SYS, s.V_VEN_SYS)
        s.Q_TV = TV.update(s.p_RA, s.p_RV, dt, valves["TV"])
        s.Q_MV = MV.update(s.p_LA, s.p_LV, dt, valves["MV"])
        s.Q_PV = PV.update(s.p_RV, s.p_AR_PUL, dt, valves["PV"])
        s.Q_AV = AV.update(s.p_LV, s.p_AR_SYS, dt, valves["AV"])
        s.Q_TV_fwd = TV.forward_flow
        s.Q_MV_fwd = MV.forward_flow
        s.Q_PV_fwd = PV.forward_flow
        s.Q_AV_fwd = AV.forward_flow
        s.Q_VEN_SYS = vessels.venous_return(s.p_VEN_SYS, s.p_RA, SYS["R_VEN"])
        s.Q_VEN_PUL = vessels.runoff(s.p_VEN_PUL, PUL["R_VEN"], s.p_LA)
        s.Q_AR_SYS = vessels.runoff(s.p_AR_SYS_res, SYS["R_AR"])
        s.Q_AR_PUL = vessels.runoff(s.p_AR_PUL_res, PUL["R_AR"], s.p_VEN_PUL)

        # Volumes and reservoirs
        s.V_RA = self._floor_volume(s.V_RA + (s.Q_VEN_SYS - s.Q_TV) * dt, "RA")
        s.V_RV = self._floor_volume(s.V_RV + (s.Q_TV - s.Q_PV) * dt, "RV")
        s.V_LA = self._floor_volume(s.V_LA + (s.Q_VEN_PUL - s.Q_MV) * dt, "LA")
        s.V_LV = self._floor_volume(s.V_LV + (s.Q_MV - s.Q_AV) * dt, "LV")
        # A fixed venous pressure is a source, its volume is not tracked
        if SYS["venous_mode"] == vessels.DYNAMIC:
            s.V_VEN_SYS = max(0.0, s.V_VEN_SYS + (s.Q_AR_SYS - s.Q_VEN_SYS) * dt)
        s.V_VEN_PUL = max(
            PUL["V0_VEN"] + VOLUME_EPSILON, s.V_VEN_PUL + (s.Q_AR_PUL - s.Q_VEN_PUL) * dt
        )
        s.p_AR_SYS_res = vessels.windkessel_step(s.p_AR_SYS_res, s.Q_AV, s.Q_AR_SYS, SYS["C_AR"], dt)
        s.p_AR_PUL_res = vessels.windkessel_step(s.p_AR_PUL_res, s.Q_PV, s.Q_AR_PUL, PUL["C_AR"], dt)

        for atrium, valve, _ in SIDES:
            is_open = self.valves[valve].open
            if self._was_open[valve] and not is_open:
                self.chambers[atrium].V_reservoir = getattr(s, f"V_{atrium}")
            self._was_open[valve] = is_open

        # Elastances and chamber pressures
        for atrium, valve, ventricle in SIDES:
            p_ventricle = self.chambers[ventricle].update(getattr(s, f"V_{ventricle}"), chambers[ventricle])
            setattr(s, f"p_{ventricle}", p_ventricle)
            setattr(s, f"E_{ventricle}", self.chambers[ventricle].E)

            chamber = self.chambers[atrium]
            V_atrium = getattr(s, f"V_{atrium}")
            p_atrium = chamber.update(V_atrium, chambers[atrium])
            if self.valves[valve].open and chamber.passive:
                p_atrium = chamber.conduit_pressure(
                    V_atrium,
                    chambers[atrium],
                    p_ventricle,
                    self.valves[valve].forward_flow,
                    effective_area(valves[valve]),
                )
            setattr(s, f"p_{atrium}", p_atrium)
            setattr(s, f"E_{atrium}", chamber.E)

        # End diastolic pressure is the pressure at the largest volume of the cycle
        if wrapped:
            s.LV_EDP = self._cycle_max_p_LV
            self._cycle_max_V_LV = s.V_LV
            self._cycle_max_p_LV = s.p_LV
        elif s.V_LV > self._cycle_max_V_LV:
            self._cycle_max_V_LV = s.V_LV
            self._cycle_max_p_LV = s.p_LV

        # Vascular pressures
        pwv_SYS = vessels.pulse_wave_velocity(SYS["C_AR"], pw["k_PWV"])
        s.p_AR_SYS = max(
            0.0,
            s.p_AR_SYS_res
            + vessels.water_hammer_pressure(s.Q_AV, SYS["area_AR"], pwv_SYS, pw["rho"])
            + vessels.reflected_pressure(SYS, pw, s.time, self._delayed_aortic_flow),
        )

        s.p_VEN_PUL = vessels.pulmonary_venous_pressure(PUL, s.V_VEN_PUL)
        s.C_VEN_PUL = vessels.pulmonary_venous_compliance(PUL, s.V_VEN_PUL)

        pwv_PUL = vessels.pulse_wave_velocity(PUL["C_AR"], pw["k_PWV"])
        water_hammer = vessels.water_hammer_pressure(s.Q_PV, PUL["area_AR"], pwv_PUL, pw["rho"])
        s.p_wh_PUL = vessels.low_pass(s.p_wh_PUL, water_hammer, PUL["wh_tau"], dt)
        s.p_LA_lpf = vessels.low_pass(s.p_LA_lpf, s.p_LA, PUL["retro_tau"], dt)
        s.p_LA_mean = vessels.low_pass(s.p_LA_mean, s.p_LA, PUL["retro_mean_tau"], dt)
        p_LA_delayed = self.history.value_at("p_LA_lpf", s.time - PUL["retro_delay"], s.p_LA_lpf)
        s.p_AR_PUL = max(
            0.0,
            s.p_AR_PUL_res + s.p_wh_PUL + vessels.retrograde_pressure(p_LA_delayed, s.p_LA_mean, PUL),
        )

        s.ecg = ecg(cycle_time, timings)

        self.history.append(vars(s))

    def solve(self, num_beats: int | None = None, T: float | None = None):
        """Step the model for a number of beats or a total time

        Returns
        -------
        dict[str, np.ndarray]
            Copy of the recorded history
        """
        if num_beats is None and T is None:
            raise ValueError("Need to specify either number of beats or total time")

        elif T is not None:
            if num_beats is not None:
                logger.warning("Ignoring num_beats, using T instead")
            num_beats = 1
            steps_one_beat = int(round(T / self.dt))
        else:
            steps_one_beat = self.steps_per_beat

        logger.info("Running circulation model")
        time_start = time.perf_counter()

        for beat in range(num_beats):
            logger.debug(f"Solving beat {beat}")
            for i in range(steps_one_beat):
                self.step()
                self.callback(self, beat * steps_one_beat + i, self.state.time)
            if self._verbose:
                self.print_info()

        duration = time.perf_counter() - time_start
        logger.info(f"Done running circulation model in {duration:.2f} s")
        return self.history.to_dict()

    def metrics(self) -> metrics.BeatMetrics:
        """Statistics of the most recent beat"""
        return metrics.beat_metrics(
            self.history,
            self.steps_per_beat,
            HR=self.HR,
            Ees=self._snapshot["chambers"]["LV"]["Ees"],
            LV_EDP=self.state.LV_EDP,
        )

    @property
    def volumes(self) -> dict[str, float]:
        s = self.state
        volumes = {
            "V_LA": s.V_LA,
            "V_LV": s.V_LV,
            "V_RA": s.V_RA,
            "V_RV": s.V_RV,
            "V_VEN_PUL": s.V_VEN_PUL,
        }
        if self._snapshot["circulation"]["SYS"]["venous_mode"] == vessels.DYNAMIC:
            volumes["V_VEN_SYS"] = s.V_VEN_SYS
        volumes["Heart"] = s.V_LA + s.V_LV + s.V_RA + s.V_RV
        return volumes

    @property
    def pressures(self) -> dict[str, float]:
        s = self.state
        return {
            "p_LA": s.p_LA,
            "p_LV": s.p_LV,
            "p_RA": s.p_RA,
            "p_RV": s.p_RV,
            "p_AR_SYS": s.p_AR_SYS,
            "p_VEN_SYS": s.p_VEN_SYS,
            "p_AR_PUL": s.p_AR_PUL,
            "p_VEN_PUL": s.p_VEN_PUL,
        }

    @property
    def flows(self) -> dict[str, float]:
        s = self.state
        return {
            "Q_MV": s.Q_MV,
            "Q_AV": s.Q_AV,
            "Q_TV": s.Q_TV,
            "Q_PV": s.Q_PV,
            "Q_AR_SYS": s.Q_AR_SYS,
            "Q_VEN_SYS": s.Q_VEN_SYS,
            "Q_AR_PUL": s.Q_AR_PUL,
            "Q_VEN_PUL": s.Q_VEN_PUL,
        }

    def print_info(self):
        msg = []
        for attr, title in [
            (self.volumes, "Volumes"),
            (self.pressures, "Pressures"),
            (self.flows, "Flows"),
        ]:
            msg.append(f"\n{log.log_table(log.dict_table(title, attr))}")
        logger.info("".join(msg))

    def save(self, outdir: Path) -> None:
        """Write parameters, initial conditions and the recorded history to ``outdir``"""
        outdir.mkdir(exist_ok=True, parents=True)
        (outdir / "parameters.json").write_text(
            json.dumps(params.thaw(self._snapshot), indent=2)
        )
        (outdir / "initial_conditions.json").write_text(json.dumps(self._initial_state, indent=2))
        history = self.history.to_dict()
        np.savetxt(
            outdir / "history.txt",
            np.column_stack([history[name] for name in self.history.channels]),
            header=" ".join(self.history.channels),
        )
        np.savetxt(outdir / "state.txt", np.array(list(self.state.as_dict().values()), dtype=float))
        np.savetxt(outdir / "state_names.txt", list(self.state.as_dict()), fmt="%s")
