"""Kubernetes settings, pod-path parsing and pod metadata enrichment of log lines."""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from logshipper.line import Line

_CONTAINER_PATH = re.compile(
    r"/var/log/containers/([a-z0-9A-Z\-.]+)_([a-z0-9A-Z\-.]+)_([a-z0-9A-Z\-.]+)-([a-z0-9]{64}).log"
)


class K8sTrackingConf(enum.Enum):
    """Whether Kubernetes tracking is switched on."""

    ALWAYS = "always"
    NEVER = "never"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> K8sTrackingConf:
        """Parse ``always`` or ``never``, ignoring case and surrounding space."""
        try:
            return cls(text.strip().lower())
        except ValueError:
            raise ValueError(f"failed to parse {text}") from None


class K8sError(Exception):
    """Raised for Kubernetes data that cannot be used."""


class PodMissingMetaError(K8sError):
    """A pod lacks a metadata field that is required."""

    def __init__(self, field: str) -> None:
        super().__init__(f"pod missing {field}")
        self.field = field


@dataclass(frozen=True)
class ParseResult:
    """The pod a container log file belongs to."""

    pod_name: str
    pod_namespace: str


def parse_container_path(path: str) -> ParseResult | None:
    """Return the pod name and namespace of a container log path, or None."""
    match = _CONTAINER_PATH.fullmatch(path)
    if match is None:
        return None
    return ParseResult(pod_name=match.group(1), pod_namespace=match.group(2))


@dataclass
class PodMetadata:
    """The parts of a pod that are attached to its log lines."""

    name: str
    namespace: str
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None

    @classmethod
    def from_pod(cls, pod: Mapping[str, Any]) -> PodMetadata:
        """Build from a pod object shaped like the Kubernetes API's JSON."""
        meta = pod.get("metadata") or {}
        name = meta.get("name")
        if name is None:
            raise PodMissingMetaError("metadata.name")
        namespace = meta.get("namespace")
        if namespace is None:
            raise PodMissingMetaError("metadata.namespace")
        labels = meta.get("labels")
        annotations = meta.get("annotations")
        return cls(
            name=str(name),
            namespace=str(namespace),
            labels=None if labels is None else dict(labels),
            annotations=None if annotations is None else dict(annotations),
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)


class WatchEvent(enum.Enum):
    """Kinds of pod watch events."""

    APPLIED = "applied"
    DELETED = "deleted"
    RESTARTED = "restarted"


PodLike = Union[PodMetadata, Mapping[str, Any]]


def _to_meta(pod: PodLike) -> PodMetadata:
    if isinstance(pod, PodMetadata):
        return pod
    return PodMetadata.from_pod(pod)


class K8sMetadata:
    """Keeps known pods and adds their labels and annotations to log lines."""

    def __init__(self, pods: Iterable[PodLike] = ()) -> None:
        self._store: dict[tuple[str, str], PodMetadata] = {}
        self.creates = 0
        self.deletes = 0
        for pod in pods:
            meta = _to_meta(pod)
            self._store[meta.key] = meta

    def __len__(self) -> int:
        return len(self._store)

    def get(self, name: str, namespace: str) -> PodMetadata | None:
        """The known pod with this name in this namespace, if any."""
        return self._store.get((namespace, name))

    def handle_event(self, kind: WatchEvent | str, pod: Any) -> None:
        """Apply a watch event; for ``restarted`` ``pod`` is the full list of pods."""
        kind = WatchEvent(kind)
        if kind is WatchEvent.APPLIED:
            meta = _to_meta(pod)
            if meta.key not in self._store:
                self.creates += 1
            self._store[meta.key] = meta
        elif kind is WatchEvent.DELETED:
            self.deletes += 1
            meta = _to_meta(pod)
            self._store.pop(meta.key, None)
        else:
            metas = [_to_meta(item) for item in pod]
            self.creates += len(metas)
            self._store = {meta.key: meta for meta in metas}

    def process(self, line: Line) -> Line:
        """Attach the labels and annotations of the line's pod, when known."""
        if line.file is None:
            return line
        parsed = parse_container_path(line.file)
        if parsed is None:
            return line
        meta = self.get(parsed.pod_name, parsed.pod_namespace)
        if meta is None:
            return line
        if meta.annotations is not None:
            line.annotations = dict(meta.annotations)
        if meta.labels is not None:
            line.labels = dict(meta.labels)
        return line