"""Call metrics and node health for the SIP bridge."""

from __future__ import annotations

import math
import threading
import time
from datetime import timedelta
from enum import Enum, IntEnum
from typing import Callable, Iterable, Mapping

import psutil

NAMESPACE = "livekit"

# Durations are in seconds.
DUR_BUCKETS_OP = (0.1, 0.5, 1, 2.5, 5, 10, 20, 30, 60, 3 * 60)
DUR_BUCKETS_LONG = (1, 10, 60, 10 * 60, 30 * 60, 3600, 6 * 3600, 12 * 3600, 24 * 3600)
SIZE_BUCKETS = (100, 250, 500, 750, 1000, 1250, 1500)


class CallDir(Enum):
    """Direction of a call."""

    INBOUND = "in"
    OUTBOUND = "out"

    def __str__(self) -> str:
        return self.value


class HealthStatus(IntEnum):
    OK = 0
    NOT_STARTED = 1
    STOPPED = 2
    UNDER_LOAD = 3
    DISABLED = 4

    def __str__(self) -> str:
        return _HEALTH_NAMES[self]


_HEALTH_NAMES = {
    HealthStatus.OK: "OK",
    HealthStatus.NOT_STARTED: "NotStarted",
    HealthStatus.STOPPED: "Stopped",
    HealthStatus.UNDER_LOAD: "UnderLoad",
    HealthStatus.DISABLED: "Disabled",
}

Labels = Mapping[str, str] | None


class _Metric:
    """Common naming and label handling of all metrics."""

    def __init__(
        self,
        name: str,
        help: str = "",
        label_names: Iterable[str] = (),
        const_labels: Mapping[str, str] | None = None,
    ) -> None:
        self.name = name
        self.help = help
        self.label_names = tuple(label_names)
        self.const_labels = dict(const_labels or {})
        self._lock = threading.Lock()

    def _key(self, labels: Labels) -> tuple[str, ...]:
        given = dict(labels or {})
        if set(given) != set(self.label_names):
            raise ValueError(
                f"metric {self.name}: expected labels {sorted(self.label_names)}, got {sorted(given)}"
            )
        return tuple(str(given[n]) for n in self.label_names)


class Counter(_Metric):
    """A monotonically increasing count per label set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._values: dict[tuple[str, ...], float] = {}

    def inc(self, labels: Labels = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + 1

    def value(self, labels: Labels = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)


class Gauge(_Metric):
    """A value that may go up and down, per label set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._values: dict[tuple[str, ...], float] = {}

    def _add(self, labels: Labels, delta: float) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + delta

    def inc(self, labels: Labels = None) -> None:
        self._add(labels, 1)

    def dec(self, labels: Labels = None) -> None:
        self._add(labels, -1)

    def set(self, value: float, labels: Labels = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = float(value)

    def value(self, labels: Labels = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)


class _GaugeFunc(_Metric):
    """A gauge whose value is computed on demand."""

    def __init__(self, func: Callable[[], float], *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._func = func

    def value(self, labels: Labels = None) -> float:
        self._key(labels)
        return float(self._func())


class Histogram(_Metric):
    """Observations sorted into buckets by upper bound, per label set."""

    def __init__(self, *args, buckets: Iterable[float] = DUR_BUCKETS_OP, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.buckets = tuple(sorted(float(b) for b in buckets))
        self._counts: dict[tuple[str, ...], list[int]] = {}
        self._sums: dict[tuple[str, ...], float] = {}

    def observe(self, value: float, labels: Labels = None) -> None:
        key = self._key(labels)
        with self._lock:
            counts = self._counts.setdefault(key, [0] * (len(self.buckets) + 1))
            index = next((i for i, b in enumerate(self.buckets) if value <= b), len(self.buckets))
            counts[index] += 1
            self._sums[key] = self._sums.get(key, 0.0) + value

    def bucket_counts(self, labels: Labels = None) -> dict[float, int]:
        """Return cumulative counts by upper bound, ending with infinity."""
        key = self._key(labels)
        with self._lock:
            counts = list(self._counts.get(key, [0] * (len(self.buckets) + 1)))
        result: dict[float, int] = {}
        total = 0
        for bound, n in zip((*self.buckets, math.inf), counts):
            total += n
            result[bound] = total
        return result

    def count(self, labels: Labels = None) -> int:
        key = self._key(labels)
        with self._lock:
            return sum(self._counts.get(key, ()))

    def sum(self, labels: Labels = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._sums.get(key, 0.0)


def _psutil_idle() -> float:
    cpus = psutil.cpu_count() or 1
    return cpus * (1 - psutil.cpu_percent(interval=None) / 100)


class Monitor:
    """Node-wide metrics and health of the SIP bridge."""

    def __init__(
        self,
        node_id: str,
        max_utilization: float,
        cpu_idle: Callable[[], float] | None = None,
        num_cpu: float | None = None,
    ) -> None:
        self.node_id = node_id
        self.max_utilization = max_utilization
        self._cpu_idle = cpu_idle or _psutil_idle
        self._num_cpu = float(num_cpu if num_cpu is not None else (psutil.cpu_count() or 1))
        self._started = threading.Event()
        self._shutdown = threading.Event()
        self.metrics: dict[str, _Metric] = {}
        self._invite_req_raw: Counter | None = None
        self._invite_req: Counter | None = None
        self._invite_accept: Counter | None = None
        self._invite_err: Counter | None = None
        self._calls_active: Gauge | None = None
        self._calls_terminated: Counter | None = None
        self._packets_rtp: Counter | None = None
        self._dur_session: Histogram | None = None
        self._dur_call: Histogram | None = None
        self._dur_join: Histogram | None = None
        self._sdp_size: Histogram | None = None
        self._node_available: _GaugeFunc | None = None
        self._cpu_load: Gauge | None = None

    def _register(self, metric):
        self.metrics[metric.name] = metric
        return metric

    def start(self) -> None:
        """Create and register all metrics; the node then reports as started."""
        node = {"node_id": self.node_id}
        sip = f"{NAMESPACE}_sip_"

        def counter(name, help, labels=()):
            return self._register(Counter(sip + name, help, labels, node))

        def histogram(name, help, labels, buckets):
            return self._register(Histogram(sip + name, help, labels, node, buckets=buckets))

        self._invite_req_raw = counter(
            "invite_requests_raw", "Number of unvalidated SIP INVITE requests received"
        )
        self._invite_req = counter(
            "invite_requests", "Number of valid SIP INVITE requests received", ["dir"]
        )
        self._invite_accept = counter(
            "invite_accepted",
            "Number of accepted SIP INVITE requests (that matched a trunk and passed auth)",
            ["dir", "to"],
        )
        self._invite_err = counter(
            "invite_error", "Number of rejected SIP INVITE requests", ["dir", "to", "reason"]
        )
        self._calls_active = self._register(
            Gauge(sip + "calls_active", "Number of currently active SIP calls", ["dir", "to"], node)
        )
        self._calls_terminated = counter(
            "calls_terminated", "Number of calls terminated by SIP bridge", ["dir", "to", "reason"]
        )
        self._packets_rtp = counter(
            "packets_rtp",
            "Number of RTP packets sent or received by SIP bridge",
            ["dir", "to", "op", "payload"],
        )
        self._dur_session = histogram(
            "dur_session_sec", "SIP session duration (from INVITE to closed)", ["dir"], DUR_BUCKETS_LONG
        )
        self._dur_call = histogram(
            "dur_call_sec", "SIP call duration (from successful pin to closed)", ["dir"], DUR_BUCKETS_LONG
        )
        self._dur_join = histogram(
            "dur_join_sec", "SIP room join duration (from INVITE to mixed room audio)", ["dir"], DUR_BUCKETS_OP
        )
        self._sdp_size = histogram("sdp_size_bytes", "SDP size in bytes", ["type"], SIZE_BUCKETS)
        self._node_available = self._register(
            _GaugeFunc(
                lambda: 1.0 if self.health() == HealthStatus.OK else 0.0,
                sip + "available",
                "Whether node can accept new requests",
                (),
                node,
            )
        )
        self._cpu_load = self._register(
            Gauge(f"{NAMESPACE}_node_cpu_load", "", (), {**node, "node_type": "SIP"})
        )
        self._started.set()

    def shutdown(self) -> None:
        self._shutdown.set()

    def stop(self) -> None:
        """Unregister all metrics."""
        self.metrics = {}

    def health(self) -> HealthStatus:
        if not self._started.is_set():
            return HealthStatus.NOT_STARTED
        if self._shutdown.is_set():
            return HealthStatus.STOPPED
        if self.idle_cpu() < self._num_cpu * (1 - self.max_utilization):
            return HealthStatus.UNDER_LOAD
        return HealthStatus.OK

    def idle_cpu(self) -> float:
        """Return the idle CPU capacity, in CPUs, and update the load gauge."""
        idle = float(self._cpu_idle())
        if self._started.is_set() and self._cpu_load is not None:
            self._cpu_load.set(1 - idle / self._num_cpu)
        return idle

    def _require(self, metric):
        if metric is None:
            raise RuntimeError("monitor not started")
        return metric

    def invite_req_raw(self, direction: CallDir) -> None:
        self._require(self._invite_req_raw).inc()

    def new_call(self, direction: CallDir, from_host: str, to_host: str) -> CallMonitor:
        return CallMonitor(self, direction, from_host, to_host)


class CallMonitor:
    """Metrics of a single call."""

    def __init__(self, monitor: Monitor, direction: CallDir, from_host: str, to_host: str) -> None:
        self._m = monitor
        self.direction = direction
        self.from_host = from_host
        self.to_host = to_host
        self._lock = threading.Lock()
        self._started = False
        self._terminated = False

    def _labels_short(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        return {"dir": str(self.direction), **(extra or {})}

    def _labels(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        return {"dir": str(self.direction), "to": self.to_host, **(extra or {})}

    def invite_req(self) -> None:
        self._m._require(self._m._invite_req).inc(self._labels_short())

    def invite_accept(self) -> None:
        self._m._require(self._m._invite_accept).inc(self._labels())

    def invite_error_short(self, reason: str) -> None:
        self._m._require(self._m._invite_err).inc(
            self._labels_short({"reason": reason, "to": "unknown"})
        )

    def invite_error(self, reason: str) -> None:
        self._m._require(self._m._invite_err).inc(self._labels({"reason": reason}))

    def call_start(self) -> None:
        """Count the call as active; repeated calls have no effect."""
        with self._lock:
            if self._started:
                return
            self._started = True
        self._m._require(self._m._calls_active).inc(self._labels())

    def call_end(self) -> None:
        """Count the call as no longer active, if it was started."""
        with self._lock:
            if not self._started:
                return
            self._started = False
        self._m._require(self._m._calls_active).dec(self._labels())

    def call_terminate(self, reason: str) -> None:
        """Record the termination reason; only the first one counts."""
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
        self._m._require(self._m._calls_terminated).inc(self._labels({"reason": reason}))

    def rtp_packet_send(self, payload_type: str) -> None:
        self._m._require(self._m._packets_rtp).inc(self._labels({"op": "send", "payload": payload_type}))

    def rtp_packet_recv(self, payload_type: str) -> None:
        self._m._require(self._m._packets_rtp).inc(self._labels({"op": "recv", "payload": payload_type}))

    def _timer(self, histogram: Histogram | None) -> Callable[[], timedelta]:
        histogram = self._m._require(histogram)
        labels = self._labels_short()
        start = time.monotonic()

        def observe() -> timedelta:
            elapsed = time.monotonic() - start
            histogram.observe(elapsed, labels)
            return timedelta(seconds=elapsed)

        return observe

    def session_dur(self) -> Callable[[], timedelta]:
        """Start timing the session; call the result to record the duration."""
        return self._timer(self._m._dur_session)

    def call_dur(self) -> Callable[[], timedelta]:
        return self._timer(self._m._dur_call)

    def join_dur(self) -> Callable[[], timedelta]:
        return self._timer(self._m._dur_join)

    def sdp_size(self, size: int, is_offer: bool) -> None:
        kind = "offer" if is_offer else "answer"
        self._m._require(self._m._sdp_size).observe(float(size), {"type": kind})