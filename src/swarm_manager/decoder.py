"""Decoding of `docker ... --format '{{ json . }}'` output into typed records."""
import json
from typing import Any, Callable, Dict, List, Type, TypeVar

from .errors import DecodeError

T = TypeVar("T")


def _build(record: Type[T], data: Any, where: str) -> T:
    if not isinstance(data, dict):
        raise DecodeError(f"error parsing json data{where}: expected an object, got {type(data).__name__}")
    factory: Callable[[Dict[str, Any]], T] = getattr(record, "from_dict")
    try:
        return factory(data)
    except TypeError as e:
        raise DecodeError(f"error parsing json data{where}: {e}") from e


def decode_document(text: str, record: Type[T]) -> T:
    """Decode a single JSON document (e.g. `docker info`)."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"error parsing json data: {e}") from e
    return _build(record, data, "")


def decode_lines(text: str, record: Type[T]) -> List[T]:
    """
    Decode one JSON document per line (e.g. `docker node ls`).

    Blank lines are ignored; any malformed line fails the whole stream.
    """
    records: List[T] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise DecodeError(f"error parsing json data on line {lineno}: {e}") from e
        records.append(_build(record, data, f" on line {lineno}"))
    return records
