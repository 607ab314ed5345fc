"""Request encoding and response decoding for the batch-execute RPC.

The endpoint speaks a positional, loosely typed format: the request is a
nested array flattened the way JavaScript's ``Array.prototype.toString``
does it, and the response is a guarded, length-prefixed chunk whose payload
is JSON encoded twice. Index access into that payload is confined to
:class:`BatchPayload`.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Sequence

from token_bootstrap import RPC_ID


XSSI_PREFIX_LENGTH = 6

_LENGTH_RE = re.compile(r"[0-9]+")
_OPEN_EMPHASIS_RE = re.compile(r"<b>(<i>)?")
_CLOSE_EMPHASIS_RE = re.compile(r"(</i>)?</b>")


def js_array_to_string(value: Any) -> str:
    """Stringify ``value`` with JavaScript's implicit array-to-string rules."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(js_array_to_string(item) for item in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def js_json(value: Any) -> str:
    """``JSON.stringify`` equivalent: compact separators, no ASCII escaping."""

    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def build_field_request(text: str, src: str, dest: str, auto_correct: bool, rpc_id: str = RPC_ID) -> list:
    args = js_json([[text, src, dest, auto_correct], [None]])
    return [[[rpc_id, args, None, "generic"]]]


def encode_form_body(field_request: Sequence[Any]) -> str:
    return f"f.req={js_array_to_string(field_request)}&"


def _is_present(value: Any) -> bool:
    # JavaScript truthiness: empty arrays count as present.
    if isinstance(value, (list, tuple)):
        return True
    return bool(value)


def _path(value: Any, *indexes: int) -> Any:
    for index in indexes:
        if not isinstance(value, list) or not 0 <= index < len(value):
            return None
        value = value[index]
    return value


def _slice_code_units(text: str, start: int, length: int) -> str:
    # The declared length counts UTF-16 code units, not code points.
    encoded = text.encode("utf-16-le", errors="surrogatepass")
    chunk = encoded[start * 2:(start + length) * 2]
    return chunk.decode("utf-16-le", errors="ignore")


class BatchPayload:
    """Named accessors over the decoded ``root`` array."""

    def __init__(self, root: Any) -> None:
        self.root = root

    @property
    def translation_entry(self) -> Optional[list]:
        entry = _path(self.root, 1, 0, 0)
        return entry if isinstance(entry, list) else None

    @property
    def has_translation(self) -> bool:
        return self.translation_entry is not None

    @property
    def segments(self) -> Optional[list]:
        segments = _path(self.translation_entry, 5)
        return segments if isinstance(segments, list) else None

    @property
    def whole_text(self) -> Any:
        return _path(self.translation_entry, 0)

    @property
    def pronunciation(self) -> Any:
        return _path(self.translation_entry, 1)

    @property
    def suggested_language(self) -> Any:
        return _path(self.root, 0, 1, 1)

    @property
    def requested_source(self) -> Any:
        return _path(self.root, 1, 3)

    @property
    def detected_language(self) -> Any:
        return _path(self.root, 2)

    @property
    def text_correction(self) -> Any:
        return _path(self.root, 0, 1, 0)

    def translated_text(self) -> str:
        segments = self.segments
        if segments is None:
            # Hyperlinks and gendered translations come without segments.
            text = self.whole_text
            return text if isinstance(text, str) else ""
        parts = [_path(segment, 0) if isinstance(segment, list) else None for segment in segments]
        # Sentences are split by the peer; rejoin them with single spaces.
        return " ".join(str(part) for part in parts if _is_present(part))

    def source_language(self) -> tuple[str, bool]:
        """Return ``(iso, did_you_mean)`` for the source language."""

        suggested = self.suggested_language
        if _is_present(suggested):
            iso = _path(suggested, 0)
            return (iso if isinstance(iso, str) else ""), True
        requested = self.requested_source
        iso = self.detected_language if requested == "auto" else requested
        return (iso if isinstance(iso, str) else ""), False

    def correction(self) -> Optional[tuple[str, bool]]:
        """Return ``(marked_up_text, auto_corrected)`` when the peer suggests a fix."""

        correction = self.text_correction
        if not _is_present(correction):
            return None
        value = _path(correction, 0, 1)
        text = mark_emphasis(value if isinstance(value, str) else "")
        flag = _path(correction, 2)
        return text, flag == 1 and not isinstance(flag, bool)


def mark_emphasis(text: str) -> str:
    """Turn ``<b><i>word</i></b>`` emphasis markup into ``[word]``."""

    text = _OPEN_EMPHASIS_RE.sub("[", text)
    return _CLOSE_EMPHASIS_RE.sub("]", text)


def decode_batch_response(body: str) -> Optional[BatchPayload]:
    """Decode a raw response body, returning ``None`` when it cannot be parsed."""

    chunk = body[XSSI_PREFIX_LENGTH:]
    match = _LENGTH_RE.match(chunk)
    if match is None:
        return None
    digits = match.group(0)
    declared = _slice_code_units(chunk, len(digits), int(digits))
    try:
        outer = json.loads(declared)
    except ValueError:
        return None

    inner = _path(outer, 0, 2)
    if not isinstance(inner, str):
        return None
    try:
        root = json.loads(inner)
    except ValueError:
        return None
    return BatchPayload(root)

