import json
import logging
import math

import numpy as np
import pytest

import cardiosim
from cardiosim import diagnostics
from cardiosim.elastance import VOLUME_EPSILON


def run_beats(model, beats):
    for _ in range(beats * model.steps_per_beat):
        model.step()
    return model


def test_initial_state_constructor():
    model = cardiosim.Simulator(initial_state={"V_LV": 150.0})
    assert model.state.V_LV == 150.0
    assert model.state.time == 0.0
    assert len(model.history) == 0


def test_solve_requires_duration():
    model = cardiosim.Simulator()
    with pytest.raises(ValueError):
        model.solve()


def test_solve_records_every_step():
    calls = []
    model = cardiosim.Simulator(callback=lambda model, i, t: calls.append(i))
    results = model.solve(T=0.1)

    assert len(calls) == 100
    assert calls[-1] == 99
    for k, v in results.items():
        assert len(v) == len(results["time"]), k
    assert results["time"][-1] == pytest.approx(0.1)


def test_metrics_need_history():
    with pytest.raises(ValueError):
        cardiosim.Simulator().metrics()


def test_left_heart_after_six_beats():
    model = run_beats(cardiosim.Simulator(parameters={"HR": 75.0}), 6)

    metrics = model.metrics()
    assert metrics.SV > 0
    assert metrics.SV < metrics.EDV
    assert 0 < metrics.EF < 100
    assert math.isfinite(metrics.CO)
    assert metrics.CO > 0
    assert metrics.CO == pytest.approx(metrics.SV * 75.0 / 1000)
    assert metrics.p_AR_SYS_max > metrics.p_AR_SYS_min
    assert metrics.LV_EDP > 0


@pytest.mark.parametrize(
    "parameters",
    [
        {},
        {"HR": 150.0},
        {"valves": {"MV": {"regurgitation": True}, "AV": {"stenosis": True, "stenosis_area": 0.5}}},
        {"chambers": {"LV": {"V0": 20.0}, "LA": {"V0": 5.0}}},
    ],
)
def test_volumes_stay_above_V0(parameters):
    model = run_beats(cardiosim.Simulator(parameters=parameters, history_duration=5.0), 3)
    history = model.get_history()
    for chamber in ("LA", "LV", "RA", "RV"):
        V0 = model.parameters["chambers"][chamber]["V0"]
        assert history[f"V_{chamber}"].min() >= V0 + VOLUME_EPSILON - 1e-12, chamber
    for name in ("p_AR_SYS", "p_AR_PUL", "p_VEN_SYS"):
        assert history[name].min() >= 0.0, name


def test_forward_only_flows_are_non_negative():
    model = run_beats(cardiosim.Simulator(), 2)
    s = model.state
    assert min(s.Q_TV_fwd, s.Q_MV_fwd, s.Q_PV_fwd, s.Q_AV_fwd) >= 0.0
    history = model.get_history()
    # Competent valves never carry net backward flow
    for name in ("Q_TV", "Q_MV", "Q_PV", "Q_AV"):
        assert history[name].min() >= 0.0, name


def test_runs_are_deterministic():
    a = run_beats(cardiosim.Simulator(), 1).history.to_dict()
    b = run_beats(cardiosim.Simulator(), 1).history.to_dict()
    for name in a:
        assert np.array_equal(a[name], b[name]), name


def test_elastance_is_continuous():
    model = run_beats(cardiosim.Simulator(), 3)
    for chamber in ("LV", "RV", "LA", "RA"):
        E = model.get_history()[f"E_{chamber}"]
        assert np.abs(np.diff(E)).max() < 0.15, chamber


def test_history_channels_have_equal_length():
    model = cardiosim.Simulator(history_duration=0.5)
    run_beats(model, 1)
    history = model.get_history()
    assert {len(v) for v in history.values()} == {500}
    assert np.all(np.diff(history["time"]) > 0)


def test_reset_keeps_parameters():
    model = run_beats(cardiosim.Simulator(parameters={"HR": 60.0}, initial_state={"V_LV": 130.0}), 1)
    model.reset()
    assert model.HR == 60.0
    assert model.state.V_LV == 130.0
    assert model.state.time == 0.0
    assert len(model.history) == 0


def test_get_state_is_a_copy():
    model = run_beats(cardiosim.Simulator(), 1)
    state = model.get_state()
    state.V_LV = -1.0
    assert model.state.V_LV > 0


def test_update_params_takes_effect_on_next_step():
    model = run_beats(cardiosim.Simulator(), 1)
    model.update_params({"HR": 120.0})
    assert model.steps_per_beat == 500
    before = model.state.cycle_phase
    model.step()
    assert (model.state.cycle_phase - before) % 1 == pytest.approx(1e-3 * 120 / 60)


def test_fixed_and_dynamic_venous_pressure():
    fixed = cardiosim.Simulator(initial_state={"V_VEN_SYS": 500.0})
    fixed.step()
    assert fixed.state.p_VEN_SYS == pytest.approx(8.0)

    dynamic = cardiosim.Simulator(
        parameters={"circulation": {"SYS": {"venous_mode": "dynamic"}}},
        initial_state={"V_VEN_SYS": 500.0},
    )
    dynamic.step()
    assert dynamic.state.p_VEN_SYS == pytest.approx(8.0 + 100.0 / 20.0)


def test_unknown_venous_mode_warns(caplog):
    with caplog.at_level(logging.WARNING):
        cardiosim.Simulator(parameters={"circulation": {"SYS": {"venous_mode": "guyton"}}})
    assert "Unknown venous mode" in caplog.text


def test_diagnostics_go_to_reporter():
    reporter = diagnostics.CollectingReporter()
    model = cardiosim.Simulator(initial_state={"V_LA": 400.0}, reporter=reporter)
    model.step()
    assert diagnostics.ELASTANCE_ABOVE_EES in reporter.kinds()
    assert any(context["chamber"] == "LA" for _, context in reporter.reports)


def test_save(tmp_path):
    model = cardiosim.Simulator()
    model.solve(T=0.05)
    outdir = tmp_path / "results"
    model.save(outdir)

    assert json.loads((outdir / "parameters.json").read_text())["HR"] == 75.0
    assert json.loads((outdir / "initial_conditions.json").read_text())["V_LV"] == 120.0
    history = np.loadtxt(outdir / "history.txt")
    assert history.shape == (50, len(model.history.channels))
    names = (outdir / "state_names.txt").read_text().split()
    assert "V_LV" in names


@pytest.mark.parametrize(
    "parameters",
    [
        {"circulation": {"SYS": {"R_AR": 0.0}}},
        {"circulation": {"SYS": {"C_AR": 0.0}}},
        {"circulation": {"SYS": {"R_VEN": 0.0}}},
        {"circulation": {"PUL": {"R_VEN": 0.0}}},
        {"circulation": {"PUL": {"alpha_VEN": 0.0}}},
        {"HR": 0.0},
    ],
)
def test_zero_vascular_parameters_are_guarded(parameters):
    model = cardiosim.Simulator(history_duration=1.0)
    model.update_params(parameters)
    for _ in range(50):
        model.step()
    for name, value in model.get_state().as_dict().items():
        assert math.isfinite(value), name


def test_fixed_venous_volume_is_not_tracked():
    fixed = run_beats(cardiosim.Simulator(), 1)
    assert fixed.state.V_VEN_SYS == 400.0
    assert "V_VEN_SYS" not in fixed.volumes

    dynamic = run_beats(
        cardiosim.Simulator(parameters={"circulation": {"SYS": {"venous_mode": "dynamic"}}}), 1
    )
    assert dynamic.state.V_VEN_SYS != 400.0
    assert "V_VEN_SYS" in dynamic.volumes


def test_parameter_table_only_rendered_for_debug(monkeypatch, caplog):
    calls = []
    monkeypatch.setattr(cardiosim.parameters, "recursive_table", lambda *args, **kwargs: calls.append(args))

    with caplog.at_level(logging.INFO, logger="cardiosim.engine"):
        cardiosim.Simulator()
    assert calls == []

    with caplog.at_level(logging.DEBUG, logger="cardiosim.engine"):
        cardiosim.Simulator()
    assert len(calls) == 1
