from concurrent.futures import Future, ThreadPoolExecutor
import math
import threading

import numpy as np
import pytest

from cardiosim import sweep
from cardiosim.sweep import BalanceCurveClient, BalancePoint, SweepRequest, SweepResponse


PARAMS = {"HR": 75.0}


class ManualWorker:
    """Worker whose replies are resolved by the test"""

    def __init__(self, running=True):
        self.running = running
        self.posted = []

    def post(self, message):
        future = Future()
        if self.running:
            future.set_running_or_notify_cancel()
        self.posted.append((message, future))
        return future


class BrokenWorker:
    def post(self, message):
        raise RuntimeError("cannot schedule new futures after shutdown")


def reply(message, y):
    return SweepResponse(message["token"], [BalancePoint(0.0, y)]).to_message()


def test_request_from_message():
    request = SweepRequest.from_message({"token": 3, "params": PARAMS, "xMax": 12})
    assert request.token == 3
    assert request.x_max == 12.0
    assert (request.points, request.beats, request.sample_beats) == (25, 6, 1)

    message = request.to_message()
    assert message["xMax"] == 12.0
    assert message["sampleBeats"] == 1


@pytest.mark.parametrize(
    "message",
    [
        None,
        "sweep",
        {"token": 1, "xMax": 10.0},
        {"token": 1, "params": PARAMS},
        {"token": 1, "params": PARAMS, "xMax": None},
        {"token": 1, "params": PARAMS, "xMax": "high"},
        {"token": 1, "params": PARAMS, "xMax": 10.0, "points": -2},
    ],
)
def test_malformed_requests_are_ignored(message):
    assert SweepRequest.from_message(message) is None
    assert sweep.handle_request(message) is None


def test_single_point_at_zero():
    response = sweep.handle_request({"token": 7, "params": PARAMS, "xMax": 0, "points": 1, "beats": 1})
    assert response["token"] == 7
    assert [p["x"] for p in response["results"]] == [0.0]
    assert math.isfinite(response["results"][0]["y"])


def test_balance_curve_targets():
    curve = sweep.compute_balance_curve(PARAMS, 12.0, points=4, beats=1)
    xs = [p.x for p in curve]
    assert xs == pytest.approx([0.0, 4.0, 8.0, 12.0])
    assert np.all(np.diff(xs) >= 0)
    assert all(math.isfinite(p.y) for p in curve)


def test_zero_range_gives_repeated_target():
    curve = sweep.compute_balance_curve(PARAMS, 0.0, points=2, beats=1)
    assert [p.x for p in curve] == [0.0, 0.0]


def test_output_grows_with_venous_pressure():
    low, high = sweep.compute_balance_curve(PARAMS, 12.0, points=2, beats=3)
    assert high.y > low.y


def test_executor_gives_same_curve():
    expected = sweep.compute_balance_curve(PARAMS, 10.0, points=2, beats=1)
    with ThreadPoolExecutor(max_workers=2) as executor:
        curve = sweep.compute_balance_curve(PARAMS, 10.0, points=2, beats=1, executor=executor)
    assert curve == expected


def test_chunked_curve_matches_direct_computation():
    request = SweepRequest(token=1, params=PARAMS, x_max=10.0, points=2, beats=1)
    chunked = sweep.ChunkedBalanceCurve(request)
    assert not chunked.advance(300)
    assert chunked.results == []
    assert chunked.run(chunk_steps=300) == sweep.compute_balance_curve(PARAMS, 10.0, points=2, beats=1)
    assert chunked.done


def test_stale_replies_are_discarded():
    worker = ManualWorker()
    received = []
    client = BalanceCurveClient(worker, timeout=60.0, on_result=lambda token, _: received.append(token))

    first = client.request(PARAMS, 10.0, points=1)
    second = client.request(PARAMS, 10.0, points=1)
    assert second != first
    assert client.latest_token == second

    # Resolve out of order
    (m1, f1), (m2, f2) = worker.posted
    f2.set_result(reply(m2, 2.0))
    f1.set_result(reply(m1, 1.0))

    assert client.poll()
    assert client.results == [BalancePoint(0.0, 2.0)]
    assert received == [second]
    assert not client.using_fallback
    assert not client.receive(reply(m1, 1.0))


def test_superseded_request_is_cancelled():
    worker = ManualWorker(running=False)
    client = BalanceCurveClient(worker, timeout=60.0)
    client.request(PARAMS, 10.0, points=1)
    client.request(PARAMS, 10.0, points=1)
    (_, f1), (_, f2) = worker.posted
    assert f1.cancelled()
    assert not f2.cancelled()
    assert client.results is None


def test_fallback_when_worker_is_unavailable():
    client = BalanceCurveClient(BrokenWorker(), chunk_steps=500)
    client.request(PARAMS, 0.0, points=1, beats=1)
    assert client.using_fallback
    results = client.wait()
    assert [p.x for p in results] == [0.0]


def test_fallback_without_worker():
    client = BalanceCurveClient(None, chunk_steps=500)
    client.request(PARAMS, 0.0, points=1, beats=1)
    assert client.wait() == sweep.compute_balance_curve(PARAMS, 0.0, points=1, beats=1)


def test_fallback_when_worker_fails():
    worker = ManualWorker()
    client = BalanceCurveClient(worker, timeout=60.0, chunk_steps=100)
    client.request(PARAMS, 0.0, points=1, beats=1)
    worker.posted[0][1].set_exception(RuntimeError("worker crashed"))

    # One beat is 800 steps, so the first chunk cannot finish the curve
    assert not client.poll()
    assert client.using_fallback
    assert len(client.wait()) == 1


def test_fallback_after_timeout_ignores_late_reply():
    worker = ManualWorker()
    client = BalanceCurveClient(worker, timeout=0.0, chunk_steps=2000)
    token = client.request(PARAMS, 0.0, points=1, beats=1)
    results = client.wait()
    assert client.results is results

    message, future = worker.posted[0]
    future.set_result(reply(message, 123.0))
    assert client.results is results
    assert client.latest_token == token


def test_thread_worker():
    with ThreadPoolExecutor(max_workers=1) as executor:
        worker = sweep.SweepWorker(executor)
        client = BalanceCurveClient(worker, timeout=60.0)
        client.request(PARAMS, 5.0, points=2, beats=1)
        results = client.wait()
        worker.shutdown()
    assert [p.x for p in results] == [0.0, 5.0]
    assert not client.using_fallback


def test_equilibrium_point():
    curve = [BalancePoint(float(x), 0.5 * x) for x in range(11)]
    point = sweep.equilibrium_point(curve, p_msf=7.0, R_VR=1.0)
    assert point.x == pytest.approx(14.0 / 3.0)
    assert point.y == pytest.approx(7.0 / 3.0)

    assert sweep.equilibrium_point(curve, p_msf=100.0, R_VR=1.0) is None
    assert sweep.equilibrium_point(curve[:1], p_msf=7.0, R_VR=1.0) is None


def test_reply_is_checked_after_parsing(monkeypatch):
    worker = ManualWorker()
    client = BalanceCurveClient(worker, timeout=60.0)
    client.request(PARAMS, 10.0, points=1)
    superseding = []
    parse = SweepResponse.from_message

    def parse_and_supersede(message):
        response = parse(message)
        if not superseding:
            # A new request arrives while the old reply is being handled
            superseding.append(client.request(PARAMS, 10.0, points=1))
        return response

    monkeypatch.setattr(SweepResponse, "from_message", staticmethod(parse_and_supersede))
    message, future = worker.posted[0]
    future.set_result(reply(message, 99.0))

    assert not client.poll()
    assert client.latest_token == superseding[0]
    assert client.results is None


def test_finished_reply_is_dropped_by_a_newer_request():
    worker = ManualWorker()
    client = BalanceCurveClient(worker, timeout=60.0)
    client.request(PARAMS, 10.0, points=1)
    message, future = worker.posted[0]
    future.set_result(reply(message, 99.0))

    # Not collected yet, so nothing is shown before the next poll
    assert client.results is None
    client.request(PARAMS, 10.0, points=1)
    assert not client.poll()
    assert client.results is None


def test_results_arrive_on_the_calling_thread():
    threads = []
    with ThreadPoolExecutor(max_workers=1) as executor:
        client = BalanceCurveClient(
            sweep.SweepWorker(executor),
            timeout=60.0,
            on_result=lambda token, results: threads.append(threading.get_ident()),
        )
        client.request(PARAMS, 0.0, points=1, beats=1)
        client.wait()
    assert threads == [threading.get_ident()]
