"""JSON-Lines reading and writing for bundle files."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from convarchive.archive.errors import LineDecodeError
from convarchive.models.format import WireModel
from convarchive.models.records import CONVERSATION_LINE_ADAPTER, ConversationLine

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def write_lines(path: Path, records: Iterable[WireModel]) -> int:
    """Write one record per line and return how many were written."""
    count = 0
    with path.open("w", encoding="utf-8", newline="\n") as handle:
        for record in records:
            handle.write(record.to_json_line())
            handle.write("\n")
            count += 1
    return count


def iter_raw_lines(path: Path) -> Iterator[tuple[int, bytes]]:
    """Yield ``(line_number, raw_bytes)`` for every non-blank line, 1-based.

    Lines are left undecoded so invalid UTF-8 fails on that line alone.
    """
    with path.open("rb") as handle:
        for number, line in enumerate(handle, start=1):
            stripped = line.strip()
            if stripped:
                yield number, stripped


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", str(exc))
    return f"{location}: {message}" if location else message


def _text(raw: bytes | str, label: str, line_number: int) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise LineDecodeError(label, line_number, f"invalid UTF-8: {exc.reason}") from exc


def decode_line(model: type[_ModelT], raw: bytes | str, label: str, line_number: int) -> _ModelT:
    text = _text(raw, label, line_number)
    try:
        return model.model_validate_json(text)
    except ValidationError as exc:
        raise LineDecodeError(label, line_number, _describe(exc)) from exc


def decode_conversation_line(raw: bytes | str, label: str, line_number: int) -> ConversationLine:
    text = _text(raw, label, line_number)
    try:
        return CONVERSATION_LINE_ADAPTER.validate_json(text)
    except ValidationError as exc:
        raise LineDecodeError(label, line_number, _describe(exc)) from exc


def read_conversation_file(path: Path, label: str) -> list[ConversationLine]:
    """Decode every line of a conversation file, failing on the first bad one.

    The whole file is decoded before anything is written to a store, so a
    truncated file never yields a half-imported conversation.
    """
    return [decode_conversation_line(raw, label, number) for number, raw in iter_raw_lines(path)]


__all__ = [
    "decode_conversation_line",
    "decode_line",
    "iter_raw_lines",
    "read_conversation_file",
    "write_lines",
]
