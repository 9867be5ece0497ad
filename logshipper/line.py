"""A single log line as sent to the ingest API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any


@dataclass
class Line:
    """One log line with its optional ingest metadata."""

    line: str | None = None
    app: str | None = None
    host: str | None = None
    level: str | None = None
    file: str | None = None
    timestamp: int | None = None
    env: str | None = None
    category: str | None = None
    meta: Any = None
    annotations: dict[str, str] | None = None
    labels: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the line as a JSON-ready mapping, leaving out unset fields."""
        result: dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            if isinstance(value, dict):
                value = dict(value)
            result[field.name] = value
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Line:
        """Build a line from a mapping; keys that are not line fields are ignored."""
        if not isinstance(data, Mapping):
            raise TypeError(f"expected a mapping, got {type(data).__name__}")
        names = {field.name for field in fields(cls)}
        values = {key: value for key, value in data.items() if key in names}
        for key in ("annotations", "labels"):
            if isinstance(values.get(key), Mapping):
                values[key] = dict(values[key])
        return cls(**values)