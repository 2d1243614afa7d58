"""Node label parsing.

Labels are declared on a node's ``labels`` tag in URL query string form,
for example ``env=prod,staging&tier=web&gpu``.
"""
import re
from typing import Dict, List
from urllib.parse import unquote_plus

from .errors import LabelError

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _unescape(text: str, field: str) -> str:
    if _BAD_ESCAPE.search(text):
        raise LabelError(f"invalid escape in label field {field!r}")
    return unquote_plus(text)


def parse_labels(text: str) -> Dict[str, List[str]]:
    """
    Decode a label query string into a mapping of label name to values.

    Values are comma separated; a field without ``=`` is a label with no
    value. Blank input yields an empty mapping.
    """
    labels: Dict[str, List[str]] = {}
    text = (text or "").strip()
    if not text:
        return labels

    for field in text.split("&"):
        if not field:
            continue
        if ";" in field:
            raise LabelError(f"invalid semicolon separator in label field {field!r}")

        key, sep, raw_value = field.partition("=")
        key = _unescape(key, field).strip()
        if not key:
            raise LabelError(f"empty label name in field {field!r}")

        values = labels.setdefault(key, [])
        if sep:
            value = _unescape(raw_value, field)
            values.extend(v for v in value.split(",") if v)

    return labels


def format_label_options(labels: Dict[str, List[str]]) -> List[str]:
    """Build ``--label-add key[=v1,v2]`` arguments for ``docker node update``."""
    options: List[str] = []
    for key, values in labels.items():
        label = key
        if values:
            label += "=" + ",".join(values)
        options.extend(["--label-add", label])
    return options
