"""Turning Kubernetes events into log lines, and choosing which agent pod reports them."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Union

from logshipper.line import Line

log = logging.getLogger(__name__)

CONTAINER_NAME = "logdna-agent"
GENERATION_LABEL = "pod-template-generation"

_APP_PATTERN = re.compile(r"\{(.+?)\}")
_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1

_YEAR = 31_557_600
_MONTH = 2_630_016
_DAY = 86_400

TimeLike = Union[str, datetime]


def _parse_time(value: TimeLike | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _plural(count: int, name: str) -> str:
    return f"{count}{name}{'s' if count > 1 else ''}"


def format_duration(seconds: float | int | timedelta) -> str:
    """Render a duration the way a human reads it, e.g. ``1h 2m 3s``."""
    if isinstance(seconds, timedelta):
        total_nanos = (
            (seconds.days * _DAY + seconds.seconds) * 10**9 + seconds.microseconds * 1000
        )
    elif isinstance(seconds, int):
        total_nanos = seconds * 10**9
    else:
        total_nanos = round(seconds * 10**9)
    if total_nanos < 0:
        raise ValueError("duration must not be negative")

    secs, nanos = divmod(total_nanos, 10**9)
    if secs == 0 and nanos == 0:
        return "0s"

    years, rest = divmod(secs, _YEAR)
    months, rest = divmod(rest, _MONTH)
    days, rest = divmod(rest, _DAY)
    hours, rest = divmod(rest, 3600)
    minutes, secs_left = divmod(rest, 60)
    millis, rest_nanos = divmod(nanos, 10**6)
    micros, nanos_left = divmod(rest_nanos, 1000)

    parts = []
    for count, name, plural in (
        (years, "year", True),
        (months, "month", True),
        (days, "day", True),
        (hours, "h", False),
        (minutes, "m", False),
        (secs_left, "s", False),
        (millis, "ms", False),
        (micros, "us", False),
        (nanos_left, "ns", False),
    ):
        if count:
            parts.append(_plural(count, name) if plural else f"{count}{name}")
    return " ".join(parts)


def _strip_none(mapping: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


@dataclass
class EventLog:
    """A Kubernetes event shaped as a log line body plus its line metadata."""

    line: dict[str, Any] = field(default_factory=dict)
    host: str | None = None
    app: str | None = None
    level: str | None = None

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> EventLog:
        """Build from an event object shaped like the Kubernetes API's JSON."""
        involved = event.get("involvedObject") or {}
        kind = involved.get("kind")
        name = involved.get("name")
        namespace = involved.get("namespace")
        field_path = involved.get("fieldPath")

        source = event.get("source")
        if source:
            node = source.get("host")
            component = source.get("component")
        else:
            node = component = None

        host: str | None = None
        app: str | None = None
        if kind is not None:
            if kind == "Pod":
                host = name
                if field_path is not None:
                    match = _APP_PATTERN.search(field_path)
                    if match is not None:
                        app = match.group(1)
            elif name is not None:
                host = f"{kind}/{name}"
        if app is None:
            app = component

        last = _parse_time(event.get("lastTimestamp"))
        first = _parse_time(event.get("firstTimestamp"))
        event_time = _parse_time(event.get("eventTime"))

        age: timedelta | None = None
        if last is not None and first is not None and last >= first:
            age = last - first

        duration: str | None = None
        if age is not None:
            duration = format_duration(age) if age > timedelta(0) else "just now"

        reason = event.get("reason")
        count = event.get("count")
        message = event.get("message")

        summary: str | None = None
        if (
            reason is not None
            and count is not None
            and duration is not None
            and message is not None
        ):
            summary = f"{reason}  (x{count} {duration})  {message}"
        elif (
            reason is not None
            and count is None
            and duration is None
            and event_time is not None
            and message is not None
        ):
            summary = f"{reason}  {message}"

        age_secs: int | None = None
        if age is not None:
            secs = int(age.total_seconds())
            if _I32_MIN <= secs <= _I32_MAX:
                age_secs = secs
            else:
                log.warning("age too large, could not fit %s into i32", age)

        time_value = last if last is not None else event_time

        kube = _strip_none(
            {
                "type": "event",
                "action": event.get("action"),
                "resource": kind,
                "name": name,
                "namespace": namespace,
                "reason": reason,
                "message": message,
                "component": component,
                "node": node,
                "first_time": None if first is None else _format_time(first),
                "time": None if time_value is None else _format_time(time_value),
                "age": age_secs,
                "count": count,
            }
        )
        body = _strip_none({"message": summary, "kube": kube})
        return cls(line=body, host=host, app=app, level=event.get("type"))

    def to_line(self) -> Line:
        """Serialize the event body as JSON into a log line."""
        text = json.dumps(self.line, separators=(",", ":"), ensure_ascii=False)
        log.debug("logging event: %s", text)
        return Line(line=text, host=self.host, app=self.app, level=self.level)


def get_pod_started_at(pod: Mapping[str, Any]) -> datetime | None:
    """When the first ready agent container of ``pod`` started running, if known."""
    status = pod.get("status") or {}
    for container in status.get("containerStatuses") or []:
        if container.get("name") == CONTAINER_NAME and container.get("ready"):
            running = (container.get("state") or {}).get("running") or {}
            return _parse_time(running.get("startedAt"))
    return None


def _cmp(a: Any, b: Any) -> int:
    if a is None or b is None:
        return (a is not None) - (b is not None)
    return (a > b) - (a < b)


def _generation(pod: Mapping[str, Any]) -> int | None:
    labels = (pod.get("metadata") or {}).get("labels")
    if labels is None:
        return None
    raw = labels.get(GENERATION_LABEL)
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def select_oldest_pod(pods: Iterable[Mapping[str, Any]]) -> str | None:
    """Pick the pod that should report events; None if no pod qualifies.

    Only pods with a name and a started agent container take part. Later
    template generations sort before earlier ones, then start time, then name.
    """
    best: tuple[int | None, datetime, str] | None = None
    for pod in pods:
        started = get_pod_started_at(pod)
        name = (pod.get("metadata") or {}).get("name")
        if started is None or name is None:
            continue
        candidate = (_generation(pod), started, name)
        if best is None:
            best = candidate
            continue
        order = -_cmp(best[0], candidate[0])
        if order == 0:
            order = _cmp(best[1], candidate[1])
        if order == 0:
            order = _cmp(best[2], candidate[2])
        if order < 0:
            best = candidate
    return None if best is None else best[2]


def event_is_newer(event: Mapping[str, Any], earliest: int | None) -> bool:
    """Whether an event's last timestamp is after ``earliest`` (unix seconds).

    Events are kept when there is no cut-off or the event has no timestamp.
    """
    if not earliest:
        return True
    last = _parse_time(event.get("lastTimestamp"))
    if last is None:
        return True
    return datetime.fromtimestamp(earliest, tz=timezone.utc) < last