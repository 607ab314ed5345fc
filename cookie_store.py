"""Flat, single-session cookie jar replayed on every outgoing request."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, Optional, Tuple
from urllib.parse import quote, unquote

import httpx


# Request extension recording which jar generation supplied its cookies.
GENERATION_EXTENSION = "batchtranslate.cookie_generation"

# Characters encodeURIComponent leaves untouched besides alphanumerics.
_COOKIE_VALUE_SAFE = "-_.!~*'()"


def parse_set_cookie(header: str) -> Optional[Tuple[str, str]]:
    """Reduce a ``Set-Cookie`` value to its ``(name, value)`` pair.

    Attributes such as ``Path`` or ``Expires`` are discarded.
    """

    pair = header.split(";", 1)[0]
    name, sep, value = pair.partition("=")
    name = name.strip()
    if not sep or not name:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
    try:
        value = unquote(value, errors="strict")
    except UnicodeDecodeError:
        pass
    return name, value


class CookieStore:
    """Name to value mapping shared by one HTTP session.

    There is no expiry, path or domain scoping: the last ``Set-Cookie`` seen
    for a name wins. Clearing the jar starts a new generation; responses to
    requests sent under an older generation are not recorded.
    """

    def __init__(self) -> None:
        self._jar: Dict[str, str] = {}
        self.generation = 0

    def __len__(self) -> int:
        return len(self._jar)

    def __contains__(self, name: object) -> bool:
        return name in self._jar

    def __iter__(self) -> Iterator[str]:
        return iter(self._jar)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._jar.get(name, default)

    def items(self) -> Iterable[Tuple[str, str]]:
        return list(self._jar.items())

    def clear(self) -> None:
        self._jar.clear()
        self.generation += 1

    def serialize(self) -> str:
        return "".join(
            f"{name}={quote(value, safe=_COOKIE_VALUE_SAFE)}; " for name, value in self._jar.items()
        )

    def update_from_header(self, header: str) -> bool:
        parsed = parse_set_cookie(header)
        if parsed is None:
            return False
        name, value = parsed
        self._jar[name] = value
        return True

    def apply(self, request: httpx.Request) -> None:
        """Replace the request's ``Cookie`` header with the jar contents."""

        request.extensions[GENERATION_EXTENSION] = self.generation
        serialized = self.serialize()
        if serialized:
            request.headers["Cookie"] = serialized
        elif "Cookie" in request.headers:
            del request.headers["Cookie"]

    def observe(self, response: httpx.Response) -> bool:
        """Record the response's cookies unless its request predates a clear."""

        try:
            sent_under = response.request.extensions.get(GENERATION_EXTENSION, self.generation)
        except RuntimeError:
            sent_under = self.generation
        if sent_under != self.generation:
            return False
        for header in response.headers.get_list("set-cookie"):
            self.update_from_header(header)
        return True
