# logshipper

Building blocks for an agent that collects log lines from journald and
Kubernetes and prepares them for shipping. The package needs nothing
beyond the Python standard library (3.11 or later).

## Modules

| Module                  | Purpose |
|-------------------------|---------|
| `logshipper.line`       | `Line`, a log record with optional `app`, `host`, `level`, `file`, `timestamp`, `env`, `category`, `meta`, `annotations` and `labels`; `to_dict` leaves out unset fields and `from_dict` ignores unknown keys. |
| `logshipper.limit`      | `RateLimiter`, which hands out at most `max_slots` numbered `Slot`s at once and waits with an exponential `Backoff` (`2 ** step * 10` ms) while all are taken. |
| `logshipper.journalctl` | `JournaldExportDecoder` for the journald export format, `process_default_record`, `field_to_string` and `create_journalctl_source`. |
| `logshipper.k8s`        | `K8sTrackingConf`, `parse_container_path`, `PodMetadata` and `K8sMetadata`, which adds pod labels and annotations to lines. |
| `logshipper.events`     | `EventLog` for turning Kubernetes event objects into log lines, with `format_duration`, `get_pod_started_at`, `select_oldest_pod` and `event_is_newer`. |

## journald

`JournaldExportDecoder` accepts input in chunks of any size through
`feed` and returns one complete record per `decode` call, or `None` when
more input is needed. Text fields (`KEY=value`) become `str`; binary
fields (key, newline, 64-bit little-endian length, data) become `bytes`.
After a malformed record the decoder skips to the next blank line.
`decode_all` decodes a whole sequence of chunks and raises
`JournalCtlError` if bytes are left over at the end.

```python
from logshipper.journalctl import JournaldExportDecoder, process_default_record

decoder = JournaldExportDecoder()
chunks = [b"MESSAGE=Journal started\n_SYSTEMD_UNIT=sys", b"temd-journald.service\n\n"]
for record in decoder.decode_all(chunks):
    line = process_default_record(record)
    # line.line == "Journal started", line.file == "systemd-journald.service"
```

`process_default_record` names the line's file after `CONTAINER_NAME`,
then `_SYSTEMD_UNIT`, then `SYSLOG_IDENTIFIER`, falling back to
`UNKNOWN_SYSTEMD_APP`. A record without `MESSAGE` raises
`RecordMissingField`.

`create_journalctl_source` starts `journalctl -b -f -o export` and
returns an async iterator of `Line`s; records that cannot be parsed or
used are logged and skipped:

```python
from logshipper.journalctl import create_journalctl_source

async def follow():
    async for line in await create_journalctl_source():
        print(line.file, line.line)
```

## Kubernetes

```python
from logshipper.k8s import K8sMetadata, K8sTrackingConf, parse_container_path
from logshipper.line import Line

conf = K8sTrackingConf.parse(" Always ")   # K8sTrackingConf.ALWAYS

path = "/var/log/containers/web_default_app-" + "0" * 64 + ".log"
result = parse_container_path(path)        # ParseResult(pod_name="web", pod_namespace="default")

metadata = K8sMetadata([
    {"metadata": {"name": "web", "namespace": "default", "labels": {"tier": "front"}}},
])
line = metadata.process(Line(line="hello", file=path))   # line.labels == {"tier": "front"}
```

`parse_container_path` returns `None` for paths that are not container
logs, and `K8sMetadata.process` leaves such lines, and lines of unknown
pods, unchanged. `K8sMetadata.handle_event` applies `"applied"`,
`"deleted"` and `"restarted"` watch events (the last with the full list of
pods) and counts creates and deletes. Pod objects without a name or
namespace raise `PodMissingMetaError`.

`EventLog.from_event` takes an event object shaped like the Kubernetes
API's JSON and `to_line` serializes it into a `Line` whose host, app and
level come from the event. `select_oldest_pod` picks, among pods with a
ready `logdna-agent` container, the one of the latest template generation
that started first.

## Rate limiting

```python
from logshipper.limit import RateLimiter

limiter = RateLimiter(10)

async def send(body):
    with await limiter.get_slot(body) as slot:
        ...  # at most ten bodies are held at once
```

A slot is released when its `with` block ends, on `release()`, or on
`into_inner()`, which also returns the carried item.

## What the package does not do

It sends nothing over the network: there is no ingest client, no
grouping of lines into request bodies, and no on-disk spooling of failed
requests for a later retry. It does not talk to a Kubernetes API server
either; pod and event objects and watch events are handed in by the
caller. There is no command-line program.

## Tests

The test suite uses pytest and pytest-asyncio, available through the
`test` extra.