import numpy as np
import pytest

from cardiosim import ecg, parameters, timing


def sample_cycle(contraction: bool):
    p = parameters.remove_units(parameters.default_parameters())
    p["chambers"]["LA"]["contraction"] = contraction
    timings = timing.cycle_timings(p)
    t = np.arange(0, timings.cycle_duration, 1e-3)
    return timings, t, np.array([ecg.ecg(ti, timings) for ti in t])


def test_disabling_atrial_contraction_removes_p_wave():
    timings, t, with_p = sample_cycle(True)
    _, _, without_p = sample_cycle(False)

    p_wave = np.array([ecg.p_wave(ti, timings) for ti in t])
    assert np.abs(p_wave).max() > 0.2
    assert np.allclose(with_p - without_p, p_wave)

    qrs_t = np.array([ecg.qrs_complex(ti) + ecg.t_wave(ti, timings) for ti in t])
    assert np.allclose(without_p, qrs_t)


def test_qrs_starts_the_cycle():
    peak = (0.15 + 0.35 / 2) * ecg.QRS_DURATION
    assert ecg.qrs_complex(peak) == pytest.approx(1.0)
    assert ecg.qrs_complex(ecg.QRS_DURATION) == 0.0


def test_p_wave_precedes_qrs():
    p = parameters.remove_units(parameters.default_parameters())
    timings = timing.cycle_timings(p)
    start = timings.LA.start
    assert ecg.p_wave(start + 0.04, timings) == pytest.approx(0.25)
    assert ecg.p_wave(start - 0.01, timings) == 0.0
