"""Balance curve: steady state cardiac output as a function of venous pressure.

Every point of the curve is an independent simulation with its own
:class:`~cardiosim.engine.Simulator`, so points can be computed in parallel.
Sweeps are long running and are therefore normally posted to a
:class:`SweepWorker` as request messages::

    {"token": 3, "params": {...}, "xMax": 20.0, "points": 25, "beats": 6, "sampleBeats": 1}

and answered with::

    {"token": 3, "results": [{"x": 0.0, "y": 0.1}, ...]}

:class:`BalanceCurveClient` only honors the reply to its most recent request,
and computes the curve itself in bounded chunks when the worker is missing,
fails or does not answer in time.
"""

from __future__ import annotations
from concurrent.futures import Executor, Future, ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping
import concurrent.futures
import itertools
import logging
import time

import numpy as np
from scipy.optimize import brentq

from . import diagnostics
from . import parameters as params
from .engine import Simulator


logger = logging.getLogger(__name__)

DEFAULT_POINTS = 25
DEFAULT_BEATS = 6
DEFAULT_SAMPLE_BEATS = 1


@dataclass(frozen=True)
class BalancePoint:
    """Venous pressure target ``x`` (mmHg) and mean aortic outflow ``y`` (L/min)"""

    x: float
    y: float

    def to_message(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class SweepRequest:
    token: int | None
    params: dict[str, Any] = field(repr=False)
    x_max: float
    points: int = DEFAULT_POINTS
    beats: int = DEFAULT_BEATS
    sample_beats: int = DEFAULT_SAMPLE_BEATS

    def targets(self) -> np.ndarray:
        return np.linspace(0.0, self.x_max, self.points)

    def to_message(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "params": params.thaw(self.params),
            "xMax": self.x_max,
            "points": self.points,
            "beats": self.beats,
            "sampleBeats": self.sample_beats,
        }

    @classmethod
    def from_message(cls, message: Any) -> "SweepRequest | None":
        """Parse a request message, returning None when it is malformed"""
        if not isinstance(message, Mapping):
            return None
        parameters = message.get("params")
        x_max = message.get("xMax")
        if not isinstance(parameters, Mapping) or x_max is None:
            return None
        try:
            request = cls(
                token=message.get("token"),
                params=params.remove_units(parameters),
                x_max=float(x_max),
                points=int(message.get("points") or DEFAULT_POINTS),
                beats=int(message.get("beats") or DEFAULT_BEATS),
                sample_beats=int(message.get("sampleBeats") or DEFAULT_SAMPLE_BEATS),
            )
        except (TypeError, ValueError):
            return None
        if request.points < 1 or request.beats < 1 or request.sample_beats < 1:
            return None
        return request


@dataclass(frozen=True)
class SweepResponse:
    token: int | None
    results: list[BalancePoint]

    def to_message(self) -> dict[str, Any]:
        return {"token": self.token, "results": [p.to_message() for p in self.results]}

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> "SweepResponse":
        return cls(
            token=message.get("token"),
            results=[BalancePoint(float(p["x"]), float(p["y"])) for p in message["results"]],
        )


def point_simulator(parameters: Mapping[str, Any], target: float, sample_beats: int = 1) -> Simulator:
    """Fresh simulator with the systemic venous pressure set to ``target``"""
    sim = Simulator(
        parameters=parameters,
        reporter=diagnostics.LoggingReporter(level=logging.DEBUG),
    )
    sim.update_params({"circulation": {"SYS": {"p_VEN": float(target)}}})
    window = (sample_beats + 1) * sim.cycle_duration
    if window > sim.history.capacity * sim.dt:
        logger.warning(
            f"Sampling window of {sample_beats} beats exceeds the recorded history, "
            "only the most recent samples are averaged"
        )
    return sim


def sample(sim: Simulator, target: float, sample_beats: int = 1) -> BalancePoint:
    """Mean aortic valve flow over the last ``sample_beats`` beats, in L/min"""
    flow = sim.history.tail("Q_AV", sim.steps_per_beat * sample_beats)
    y = float(flow.mean()) * 60 / 1000 if len(flow) else 0.0
    return BalancePoint(x=float(target), y=y)


def simulate_point(
    parameters: Mapping[str, Any],
    target: float,
    beats: int = DEFAULT_BEATS,
    sample_beats: int = DEFAULT_SAMPLE_BEATS,
) -> BalancePoint:
    sim = point_simulator(parameters, target, sample_beats)
    for _ in range(sim.steps_per_beat * beats):
        sim.step()
    return sample(sim, target, sample_beats)


def compute_balance_curve(
    parameters: Mapping[str, Any],
    x_max: float,
    points: int = DEFAULT_POINTS,
    beats: int = DEFAULT_BEATS,
    sample_beats: int = DEFAULT_SAMPLE_BEATS,
    executor: Executor | None = None,
) -> list[BalancePoint]:
    """Balance curve for venous pressure targets evenly spaced on [0, x_max]

    Parameters
    ----------
    parameters : Mapping[str, Any]
        Parameter snapshot shared by all points (the venous target is replaced)
    x_max : float
        Largest venous pressure target (mmHg)
    points : int, optional
        Number of points, by default 25
    beats : int, optional
        Beats simulated per point before sampling, by default 6
    sample_beats : int, optional
        Number of final beats the outflow is averaged over, by default 1
    executor : Executor | None, optional
        Executor used to compute the points in parallel, by default None
        which computes them one after the other in the calling thread

    Returns
    -------
    list[BalancePoint]
        Points ordered by increasing venous pressure target
    """
    parameters = params.remove_units(parameters)
    targets = [float(x) for x in np.linspace(0.0, x_max, points)]
    if executor is None:
        return [simulate_point(parameters, x, beats, sample_beats) for x in targets]
    futures = [executor.submit(simulate_point, parameters, x, beats, sample_beats) for x in targets]
    return [future.result() for future in futures]


def handle_request(message: Any) -> dict[str, Any] | None:
    """Worker entry point: answer a request message, or return None if it is malformed"""
    request = SweepRequest.from_message(message)
    if request is None:
        logger.debug("Ignoring malformed sweep request")
        return None
    results = compute_balance_curve(
        request.params,
        request.x_max,
        points=request.points,
        beats=request.beats,
        sample_beats=request.sample_beats,
    )
    return SweepResponse(request.token, results).to_message()


class SweepWorker:
    """Runs sweep requests out of line

    Parameters
    ----------
    executor : Executor | None, optional
        Executor running :func:`handle_request`, by default a new
        ``ProcessPoolExecutor`` owned (and shut down) by the worker
    max_workers : int | None, optional
        Size of the default process pool, by default None
    """

    def __init__(self, executor: Executor | None = None, max_workers: int | None = None):
        self._owns_executor = executor is None
        self.executor = executor if executor is not None else ProcessPoolExecutor(max_workers=max_workers)

    def post(self, message: dict[str, Any]) -> Future:
        return self.executor.submit(handle_request, message)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "SweepWorker":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()


class ChunkedBalanceCurve:
    """Balance curve computed a bounded number of integration steps at a time"""

    def __init__(self, request: SweepRequest):
        self.request = request
        self.token = request.token
        self.results: list[BalancePoint] = []
        self._targets = [float(x) for x in request.targets()]
        self._sim: Simulator | None = None
        self._remaining = 0

    @property
    def done(self) -> bool:
        return len(self.results) == len(self._targets)

    def advance(self, max_steps: int) -> bool:
        """Take at most ``max_steps`` integration steps, return True when all points are done"""
        budget = max(1, int(max_steps))
        request = self.request
        while budget > 0 and not self.done:
            target = self._targets[len(self.results)]
            if self._sim is None:
                self._sim = point_simulator(request.params, target, request.sample_beats)
                self._remaining = self._sim.steps_per_beat * request.beats
            n = min(budget, self._remaining)
            for _ in range(n):
                self._sim.step()
            self._remaining -= n
            budget -= n
            if self._remaining == 0:
                self.results.append(sample(self._sim, target, request.sample_beats))
                self._sim = None
        return self.done

    def run(self, chunk_steps: int = 2000) -> list[BalancePoint]:
        while not self.advance(chunk_steps):
            pass
        return self.results


class BalanceCurveClient:
    """Caller side of the sweep protocol

    Each :meth:`request` supersedes the previous one: replies carrying an older
    token are discarded. Worker replies are only picked up by :meth:`poll` and
    :meth:`wait`, so results and ``on_result`` calls stay on the calling thread.
    If the worker is missing or fails, or no reply arrives
    within ``timeout`` seconds, :meth:`poll` computes the curve locally,
    ``chunk_steps`` integration steps per call.

    Parameters
    ----------
    worker : SweepWorker | None, optional
        Anything with a ``post(message) -> Future`` method, by default None
        which always computes locally
    timeout : float, optional
        Seconds to wait for the worker before falling back, by default 1.0
    chunk_steps : int, optional
        Integration steps per :meth:`poll` in fallback mode, by default 2000
    on_result : Callable[[int, list[BalancePoint]], None] | None, optional
        Called with the token and results when the latest request completes
    """

    def __init__(
        self,
        worker: Any = None,
        timeout: float = 1.0,
        chunk_steps: int = 2000,
        on_result: Callable[[int, list[BalancePoint]], None] | None = None,
    ):
        self.worker = worker
        self.timeout = timeout
        self.chunk_steps = chunk_steps
        self.on_result = on_result
        self._tokens = itertools.count(1)
        self._latest: int | None = None
        self._request: SweepRequest | None = None
        self._future: Future | None = None
        self._deadline = 0.0
        self._worker_failed = False
        self._fallback: ChunkedBalanceCurve | None = None
        self._results: list[BalancePoint] | None = None

    @property
    def latest_token(self) -> int | None:
        return self._latest

    @property
    def results(self) -> list[BalancePoint] | None:
        """Results of the most recent request, None while it is pending"""
        return self._results

    @property
    def using_fallback(self) -> bool:
        return self._fallback is not None

    def request(
        self,
        parameters: Mapping[str, Any],
        x_max: float,
        points: int = DEFAULT_POINTS,
        beats: int = DEFAULT_BEATS,
        sample_beats: int = DEFAULT_SAMPLE_BEATS,
    ) -> int:
        """Issue a new sweep and return its token"""
        if self._future is not None:
            self._future.cancel()

        token = next(self._tokens)
        self._latest = token
        self._request = SweepRequest(
            token, params.remove_units(parameters), float(x_max), points, beats, sample_beats
        )
        self._future = None
        self._results = None
        self._fallback = None
        self._worker_failed = False
        self._deadline = time.monotonic() + self.timeout

        if self.worker is None:
            logger.info("No sweep worker, computing balance curve locally")
            self._fallback = ChunkedBalanceCurve(self._request)
            return token

        try:
            future = self.worker.post(self._request.to_message())
        except RuntimeError as e:
            logger.warning(f"Sweep worker unavailable ({e}), computing balance curve locally")
            self._fallback = ChunkedBalanceCurve(self._request)
            return token

        self._future = future
        return token

    def _collect(self, future: Future) -> None:
        """Read a finished worker future on the calling thread"""
        if future.cancelled():
            return
        try:
            message = future.result()
        except Exception as e:
            logger.warning(f"Sweep worker failed on request {self._latest}: {e!r}")
            self._worker_failed = True
            return
        if message is None:
            logger.warning(f"Sweep worker rejected request {self._latest}")
            self._worker_failed = True
            return
        self.receive(message)

    def receive(self, message: Mapping[str, Any]) -> bool:
        """Handle a reply message, return True if it was accepted

        Must be called from the thread that issues the requests.
        """
        response = SweepResponse.from_message(message)
        if response.token != self._latest:
            logger.debug(f"Discarding stale sweep result {response.token} (latest is {self._latest})")
            return False
        if self._results is not None:
            return False
        self._accept(response.token, response.results)
        return True

    def _accept(self, token: int, results: list[BalancePoint]) -> None:
        self._results = results
        self._fallback = None
        logger.debug(f"Balance curve {token} completed with {len(results)} points")
        if self.on_result is not None:
            self.on_result(token, results)

    def poll(self) -> bool:
        """Make progress on the latest request, return True once its results are available"""
        if self._request is None:
            return False
        if self._results is not None:
            return True

        future = self._future
        if future is not None and future.done():
            self._future = None
            self._collect(future)
            if self._results is not None:
                return True

        if self._fallback is None and (self._worker_failed or time.monotonic() >= self._deadline):
            logger.info("Sweep worker did not reply, computing balance curve locally")
            self._fallback = ChunkedBalanceCurve(self._request)

        fallback = self._fallback
        if fallback is not None and fallback.advance(self.chunk_steps):
            if self._results is None and fallback.token == self._latest:
                self._accept(fallback.token, fallback.results)
        return self._results is not None

    def wait(self) -> list[BalancePoint] | None:
        """Block until the latest request has results"""
        if self._request is None:
            return None
        while not self.poll():
            if self._fallback is None and self._future is not None:
                remaining = self._deadline - time.monotonic()
                if remaining > 0:
                    concurrent.futures.wait([self._future], timeout=remaining)
        return self._results


def venous_return(x: np.ndarray | float, p_msf: float, R_VR: float):
    """Linear venous return (L/min) for filling pressure ``x`` (mmHg)

    ``p_msf`` is the mean systemic filling pressure (mmHg) and ``R_VR`` the
    resistance to venous return (mmHg·min/L).
    """
    return np.maximum(0.0, (p_msf - np.asarray(x, dtype=float)) / R_VR)


def equilibrium_point(curve: list[BalancePoint], p_msf: float, R_VR: float) -> BalancePoint | None:
    """Intersection of the balance curve with a venous return line

    Returns None when the two curves do not cross on the swept range.
    """
    if len(curve) < 2:
        return None
    xs = np.array([p.x for p in curve])
    ys = np.array([p.y for p in curve])

    def mismatch(x):
        return float(np.interp(x, xs, ys) - venous_return(x, p_msf, R_VR))

    a, b = float(xs[0]), float(xs[-1])
    fa, fb = mismatch(a), mismatch(b)
    if fa == 0:
        x = a
    elif fb == 0:
        x = b
    elif fa * fb > 0:
        return None
    else:
        x = brentq(mismatch, a, b)
    return BalancePoint(x=float(x), y=float(np.interp(x, xs, ys)))
