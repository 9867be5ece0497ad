"""Decoding of the journald export format and a journalctl-backed line source."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Iterator, Mapping
from typing import Union

from logshipper.line import Line

log = logging.getLogger(__name__)

JOURNALCTL_CMD = "journalctl"
KEY_MESSAGE = "MESSAGE"
KEY_SYSTEMD_UNIT = "_SYSTEMD_UNIT"
KEY_SYSLOG_IDENTIFIER = "SYSLOG_IDENTIFIER"
KEY_CONTAINER_NAME = "CONTAINER_NAME"
DEFAULT_APP = "UNKNOWN_SYSTEMD_APP"

FieldValue = Union[str, bytes]
JournalRecord = dict[str, FieldValue]

_NEWLINE = ord("\n")
_EQUALS = ord("=")
_KEY_BYTES = frozenset(
    b"abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_"
)
_READ_SIZE = 64 * 1024


class JournalCtlError(Exception):
    """Raised for journald records that cannot be decoded or used."""


class RecordMissingField(JournalCtlError):
    """A journald record lacks a field that is required."""

    def __init__(self, field: str) -> None:
        super().__init__(f"missing journald field {field}")
        self.field = field


class _ParseFailure(Exception):
    def __init__(self, position: int) -> None:
        super().__init__(position)
        self.position = position


def field_to_string(value: FieldValue) -> str:
    """Return a field value as text, replacing bytes that are not valid UTF-8."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _parse_record(buf: bytearray) -> tuple[JournalRecord, int] | None:
    """Parse one record from the start of ``buf``.

    Returns the record and the number of bytes it used, or None when more
    input is needed. Raises _ParseFailure with the offending position.
    """
    record: JournalRecord = {}
    size = len(buf)
    pos = 0
    while True:
        if pos >= size:
            return None
        byte = buf[pos]
        if byte == _NEWLINE:
            if not record:
                raise _ParseFailure(pos)
            return record, pos + 1
        if byte not in _KEY_BYTES:
            raise _ParseFailure(pos)

        key_start = pos
        while pos < size and buf[pos] in _KEY_BYTES:
            pos += 1
        if pos >= size:
            return None
        key = bytes(buf[key_start:pos]).decode("ascii")

        separator = buf[pos]
        if separator == _EQUALS:
            value_start = pos + 1
            value_end = buf.find(b"\n", value_start)
            if value_end < 0:
                return None
            try:
                value: FieldValue = bytes(buf[value_start:value_end]).decode("utf-8")
            except UnicodeDecodeError:
                raise _ParseFailure(value_start) from None
            pos = value_end + 1
        elif separator == _NEWLINE:
            length_start = pos + 1
            if size < length_start + 8:
                return None
            length = int.from_bytes(buf[length_start : length_start + 8], "little")
            value_start = length_start + 8
            value_end = value_start + length
            if size <= value_end:
                return None
            if buf[value_end] != _NEWLINE:
                raise _ParseFailure(value_end)
            value = bytes(buf[value_start:value_end])
            pos = value_end + 1
        else:
            raise _ParseFailure(pos)

        record[key] = value


class JournaldExportDecoder:
    """Incremental decoder for the journald export format.

    Bytes are fed in as they arrive; complete records are handed out one at
    a time. After a malformed record the decoder skips to the next blank
    line separating records.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._skipping = False

    def feed(self, data: bytes) -> None:
        """Append raw input."""
        self._buffer.extend(data)

    def _skip_to_next_record(self) -> bool:
        """Drop input up to the next record boundary; False if more input is needed."""
        buf = self._buffer
        newline = buf.find(b"\n")
        if newline < 0:
            buf.clear()
            return False
        if newline + 1 >= len(buf):
            del buf[:newline]
            return False
        self._skipping = False
        if buf[newline + 1] == _NEWLINE:
            del buf[: newline + 2]
            return True
        rest = bytes(buf[: newline + 1]).decode("utf-8", errors="replace")
        del buf[: newline + 1]
        raise JournalCtlError(
            f"Error scanning for next record in input: `{rest}`"
        )

    def decode(self) -> JournalRecord | None:
        """Return the next complete record, or None if more input is needed."""
        while True:
            if self._skipping and not self._skip_to_next_record():
                return None
            try:
                parsed = _parse_record(self._buffer)
            except _ParseFailure as failure:
                log.warning(
                    "Error parsing record at byte %d: `%s`",
                    failure.position,
                    bytes(self._buffer).decode("utf-8", errors="replace"),
                )
                del self._buffer[: failure.position]
                self._skipping = True
                continue
            if parsed is None:
                return None
            record, used = parsed
            del self._buffer[:used]
            return record

    def decode_all(self, chunks: Iterable[bytes]) -> Iterator[JournalRecord]:
        """Decode every record from a sequence of input chunks."""
        for chunk in chunks:
            self.feed(chunk)
            while (record := self.decode()) is not None:
                yield record
        if self._buffer:
            raise JournalCtlError("bytes remaining on stream")


def process_default_record(record: Mapping[str, FieldValue]) -> Line:
    """Turn a journald record into a log line named after its unit or container."""
    message = record.get(KEY_MESSAGE)
    if message is None:
        log.warning("unable to get message of journald record")
        raise RecordMissingField(KEY_MESSAGE)

    for key in (KEY_CONTAINER_NAME, KEY_SYSTEMD_UNIT, KEY_SYSLOG_IDENTIFIER):
        if key in record:
            app = field_to_string(record[key])
            break
    else:
        app = DEFAULT_APP

    return Line(line=field_to_string(message), file=app)


async def _journal_lines(stdout: asyncio.StreamReader) -> AsyncIterator[Line]:
    decoder = JournaldExportDecoder()
    while chunk := await stdout.read(_READ_SIZE):
        decoder.feed(chunk)
        while True:
            try:
                record = decoder.decode()
            except JournalCtlError as error:
                log.warning("Encountered error while parsing journalctl output: %s", error)
                continue
            if record is None:
                break
            try:
                line = process_default_record(record)
            except JournalCtlError as error:
                log.warning("Encountered error in journald record: %s", error)
                continue
            log.debug("received a record from journalctl")
            yield line


async def create_journalctl_source() -> AsyncIterator[Line]:
    """Start ``journalctl`` following the current boot and return its lines."""
    process = await asyncio.create_subprocess_exec(
        JOURNALCTL_CMD,
        "-b",
        "-f",
        "-o",
        "export",
        stdout=asyncio.subprocess.PIPE,
    )
    if process.stdout is None:
        raise OSError("cannot get journalctl stdout handle")
    log.info("Listening to journalctl")
    return _journal_lines(process.stdout)