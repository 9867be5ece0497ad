import json
from datetime import datetime, timezone

import pytest

from logshipper.events import (
    CONTAINER_NAME,
    EventLog,
    event_is_newer,
    format_duration,
    get_pod_started_at,
    select_oldest_pod,
)


def _event(**overrides):
    event = {
        "type": "Normal",
        "reason": "Started",
        "message": "Started container nginx",
        "count": 3,
        "source": {"host": "node-a", "component": "kubelet"},
        "involvedObject": {
            "kind": "Pod",
            "name": "web-1",
            "namespace": "default",
            "fieldPath": "spec.containers{nginx}",
        },
        "firstTimestamp": "2021-06-01T10:00:00Z",
        "lastTimestamp": "2021-06-01T10:01:30Z",
    }
    event.update(overrides)
    return event


def _pod(name, started, generation=None, ready=True, container=CONTAINER_NAME):
    labels = {} if generation is None else {"pod-template-generation": str(generation)}
    return {
        "metadata": {"name": name, "labels": labels},
        "status": {
            "containerStatuses": [
                {
                    "name": container,
                    "ready": ready,
                    "state": {"running": {"startedAt": started}},
                }
            ]
        },
    }


def test_format_duration_values():
    assert format_duration(90) == "1m 30s"
    assert format_duration(3661) == "1h 1m 1s"


def test_format_duration_rejects_negative():
    with pytest.raises(ValueError):
        format_duration(-1)


def test_pod_event_host_and_app():
    event_log = EventLog.from_event(_event())
    assert event_log.host == "web-1"
    assert event_log.app == "nginx"
    assert event_log.level == "Normal"


def test_pod_event_message_includes_count_and_age():
    event_log = EventLog.from_event(_event())
    expected = f"Started  (x3 {format_duration(90)})  Started container nginx"
    assert event_log.line["message"] == expected
    assert event_log.line["kube"]["age"] == 90
    assert event_log.line["kube"]["count"] == 3


def test_non_pod_event_host_is_kind_and_name():
    event = _event(involvedObject={"kind": "Node", "name": "node-1"})
    event_log = EventLog.from_event(event)
    assert event_log.host == "Node/node-1"
    assert event_log.app == "kubelet"


def test_event_without_kind_uses_component():
    event = _event(involvedObject={})
    event_log = EventLog.from_event(event)
    assert event_log.host is None
    assert event_log.app == "kubelet"


def test_equal_timestamps_are_just_now():
    event = _event(lastTimestamp="2021-06-01T10:00:00Z")
    event_log = EventLog.from_event(event)
    assert event_log.line["message"] == "Started  (x3 just now)  Started container nginx"
    assert event_log.line["kube"]["age"] == 0


def test_last_before_first_has_no_age_or_summary():
    event = _event(lastTimestamp="2021-06-01T09:00:00Z")
    event_log = EventLog.from_event(event)
    assert "message" not in event_log.line
    assert "age" not in event_log.line["kube"]


def test_event_time_summary_and_time():
    event = _event(
        count=None,
        firstTimestamp=None,
        lastTimestamp=None,
        eventTime="2021-06-01T10:00:00.123456Z",
    )
    event_log = EventLog.from_event(event)
    assert event_log.line["message"] == "Started  Started container nginx"
    assert event_log.line["kube"]["time"] == "2021-06-01T10:00:00Z"
    assert "first_time" not in event_log.line["kube"]


def test_to_line_round_trip():
    event_log = EventLog.from_event(_event())
    line = event_log.to_line()
    assert line.host == event_log.host
    assert line.app == event_log.app
    assert line.level == "Normal"
    body = json.loads(line.line)
    assert body == event_log.line
    assert body["kube"]["type"] == "event"
    assert body["kube"]["resource"] == "Pod"
    assert body["kube"]["node"] == "node-a"
    assert body["kube"]["time"] == "2021-06-01T10:01:30Z"
    assert None not in body["kube"].values()


def test_get_pod_started_at_ready_container():
    started = get_pod_started_at(_pod("a", "2021-06-01T10:00:00Z"))
    assert started == datetime(2021, 6, 1, 10, 0, 0, tzinfo=timezone.utc)


def test_get_pod_started_at_not_ready_or_other_container():
    assert get_pod_started_at(_pod("a", "2021-06-01T10:00:00Z", ready=False)) is None
    assert get_pod_started_at(_pod("a", "2021-06-01T10:00:00Z", container="other")) is None
    assert get_pod_started_at({"metadata": {"name": "a"}}) is None


def test_select_oldest_pod_empty_and_unqualified():
    assert select_oldest_pod([]) is None
    assert select_oldest_pod([_pod("a", "2021-06-01T10:00:00Z", ready=False)]) is None


def test_select_oldest_pod_single():
    assert select_oldest_pod([_pod("only", "2021-06-01T10:00:00Z")]) == "only"


def test_select_oldest_pod_is_order_independent():
    pods = [
        _pod("a", "2021-06-01T10:00:00Z", generation=2),
        _pod("b", "2021-06-01T09:00:00Z", generation=1),
        _pod("c", "2021-06-01T11:00:00Z", generation=2),
        _pod("d", "2021-06-01T08:00:00Z", ready=False),
    ]
    chosen = select_oldest_pod(pods)
    assert chosen in {"a", "b", "c"}
    assert select_oldest_pod(list(reversed(pods))) == chosen


def test_event_is_newer_without_cutoff():
    assert event_is_newer(_event(), None) is True
    assert event_is_newer(_event(lastTimestamp=None), 1_000) is True


def test_event_is_newer_compares_last_timestamp():
    last = datetime(2021, 6, 1, 10, 1, 30, tzinfo=timezone.utc)
    stamp = int(last.timestamp())
    assert event_is_newer(_event(), stamp - 1) is True
    assert event_is_newer(_event(), stamp) is False
    assert event_is_newer(_event(), stamp + 1) is False