import math
from datetime import timedelta

import pytest

from sipbridge.monitor import (
    DUR_BUCKETS_LONG,
    SIZE_BUCKETS,
    CallDir,
    Counter,
    Gauge,
    HealthStatus,
    Histogram,
    Monitor,
)


def make_monitor(idle=4.0, cpus=4, util=0.9):
    state = {"idle": idle}
    m = Monitor("node", util, cpu_idle=lambda: state["idle"], num_cpu=cpus)
    return m, state


def test_call_dir_labels():
    m, _ = make_monitor()
    m.start()
    m.new_call(CallDir.INBOUND, "a", "b").invite_req()
    m.new_call(CallDir.OUTBOUND, "a", "b").invite_req()
    m.new_call(CallDir.OUTBOUND, "a", "b").invite_req()
    reqs = m.metrics["livekit_sip_invite_requests"]
    assert reqs.value({"dir": "in"}) == 1
    assert reqs.value({"dir": "out"}) == 2


def test_health_status_names():
    m, state = make_monitor()
    assert str(m.health()) == "NotStarted"
    m.start()
    state["idle"] = 0.0
    assert str(m.health()) == "UnderLoad"


def test_health_lifecycle():
    m, state = make_monitor()
    assert m.health() == HealthStatus.NOT_STARTED
    m.start()
    assert m.health() == HealthStatus.OK
    state["idle"] = 0.0
    assert m.health() == HealthStatus.UNDER_LOAD
    m.shutdown()
    assert m.health() == HealthStatus.STOPPED


def test_node_available_follows_health():
    m, state = make_monitor()
    m.start()
    gauge = m.metrics["livekit_sip_available"]
    assert gauge.value() == 1.0
    state["idle"] = 0.0
    assert gauge.value() == 0.0


def test_idle_cpu_updates_load():
    m, _ = make_monitor(idle=4.0, cpus=4)
    m.start()
    assert m.idle_cpu() == 4.0
    assert m.metrics["livekit_node_cpu_load"].value() == 0.0


def test_const_labels():
    m, _ = make_monitor()
    m.start()
    load = m.metrics["livekit_node_cpu_load"]
    assert load.const_labels == {"node_id": "node", "node_type": "SIP"}


def test_invite_req_raw_counts():
    m, _ = make_monitor()
    m.start()
    m.invite_req_raw(CallDir.INBOUND)
    m.invite_req_raw(CallDir.OUTBOUND)
    assert m.metrics["livekit_sip_invite_requests_raw"].value() == 2


def test_call_methods_need_start():
    m, _ = make_monitor()
    call = m.new_call(CallDir.INBOUND, "a", "b")
    with pytest.raises(RuntimeError):
        call.invite_req()


def test_invite_metrics_labels():
    m, _ = make_monitor()
    m.start()
    call = m.new_call(CallDir.INBOUND, "from.example.com", "to.example.com")
    call.invite_req()
    call.invite_accept()
    call.invite_error("auth")
    call.invite_error_short("flood")
    assert m.metrics["livekit_sip_invite_requests"].value({"dir": "in"}) == 1
    assert m.metrics["livekit_sip_invite_accepted"].value({"dir": "in", "to": "to.example.com"}) == 1
    errs = m.metrics["livekit_sip_invite_error"]
    assert errs.value({"dir": "in", "to": "to.example.com", "reason": "auth"}) == 1
    assert errs.value({"dir": "in", "to": "unknown", "reason": "flood"}) == 1


def test_call_start_end_idempotent():
    m, _ = make_monitor()
    m.start()
    call = m.new_call(CallDir.OUTBOUND, "a", "dest")
    active = m.metrics["livekit_sip_calls_active"]
    labels = {"dir": "out", "to": "dest"}
    call.call_end()
    assert active.value(labels) == 0
    call.call_start()
    call.call_start()
    assert active.value(labels) == 1
    call.call_end()
    call.call_end()
    assert active.value(labels) == 0


def test_call_terminate_once():
    m, _ = make_monitor()
    m.start()
    call = m.new_call(CallDir.INBOUND, "a", "dest")
    call.call_terminate("hangup")
    call.call_terminate("other")
    term = m.metrics["livekit_sip_calls_terminated"]
    assert term.value({"dir": "in", "to": "dest", "reason": "hangup"}) == 1
    assert term.value({"dir": "in", "to": "dest", "reason": "other"}) == 0


def test_rtp_packets():
    m, _ = make_monitor()
    m.start()
    call = m.new_call(CallDir.INBOUND, "a", "dest")
    call.rtp_packet_send("pcmu")
    call.rtp_packet_recv("pcmu")
    call.rtp_packet_recv("pcmu")
    pk = m.metrics["livekit_sip_packets_rtp"]
    base = {"dir": "in", "to": "dest", "payload": "pcmu"}
    assert pk.value({**base, "op": "send"}) == 1
    assert pk.value({**base, "op": "recv"}) == 2


def test_sdp_size_types():
    m, _ = make_monitor()
    m.start()
    call = m.new_call(CallDir.INBOUND, "a", "dest")
    call.sdp_size(300, True)
    call.sdp_size(300, False)
    call.sdp_size(2000, False)
    h = m.metrics["livekit_sip_sdp_size_bytes"]
    assert h.count({"type": "offer"}) == 1
    assert h.count({"type": "answer"}) == 2
    assert list(h.bucket_counts({"type": "answer"}))[:-1] == [float(b) for b in SIZE_BUCKETS]


def test_timers_observe():
    m, _ = make_monitor()
    m.start()
    call = m.new_call(CallDir.OUTBOUND, "a", "dest")
    for stop, name in [
        (call.session_dur(), "livekit_sip_dur_session_sec"),
        (call.call_dur(), "livekit_sip_dur_call_sec"),
        (call.join_dur(), "livekit_sip_dur_join_sec"),
    ]:
        elapsed = stop()
        assert elapsed >= timedelta(0)
        assert m.metrics[name].count({"dir": "out"}) == 1


def test_stop_unregisters():
    m, _ = make_monitor()
    m.start()
    assert "livekit_sip_calls_active" in m.metrics
    m.stop()
    assert m.metrics == {}


def test_counter_rejects_wrong_labels():
    c = Counter("c", "", ["dir"])
    with pytest.raises(ValueError):
        c.inc({"to": "x"})
    with pytest.raises(ValueError):
        c.inc()


def test_gauge_set_inc_dec():
    g = Gauge("g", "", ["dir"])
    g.set(5, {"dir": "in"})
    g.inc({"dir": "in"})
    g.dec({"dir": "in"})
    g.dec({"dir": "in"})
    assert g.value({"dir": "in"}) == 4
    assert g.value({"dir": "out"}) == 0


def test_histogram_cumulative():
    h = Histogram("h", "", [], buckets=DUR_BUCKETS_LONG)
    for v in (0.5, 30, 1e9):
        h.observe(v)
    counts = h.bucket_counts()
    values = list(counts.values())
    assert values == sorted(values)
    assert counts[math.inf] == h.count() == 3
    assert counts[1.0] == 1
    assert h.sum() == 0.5 + 30 + 1e9