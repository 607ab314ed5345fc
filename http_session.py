"""Browser-like async HTTP session wired to a :class:`CookieStore`."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx

from client_config import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, get_logger
from cookie_store import CookieStore


FORM_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"


class HttpSession:
    """Persistent ``httpx.AsyncClient`` whose cookies live in a flat jar.

    Every outgoing request passes through :meth:`CookieStore.apply` and every
    response through :meth:`CookieStore.observe`.
    """

    def __init__(
        self,
        cookie_store: Optional[CookieStore] = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cookies = cookie_store if cookie_store is not None else CookieStore()
        self._logger = get_logger("session")
        default_headers = {"User-Agent": user_agent}
        if headers:
            default_headers.update(headers)
        self._client = httpx.AsyncClient(
            headers=default_headers,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            event_hooks={
                "request": [self._apply_cookies],
                "response": [self._observe_cookies],
            },
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def _apply_cookies(self, request: httpx.Request) -> None:
        self.cookies.apply(request)
        self._logger.debug("%s %s | cookies=%d", request.method, request.url, len(self.cookies))

    async def _observe_cookies(self, response: httpx.Response) -> None:
        if not self.cookies.observe(response):
            self._logger.debug("Ignoring cookies from a response to a cleared session")
        # httpx keeps its own jar; the flat store above is the only one replayed.
        self._client.cookies.clear()
        self._logger.debug(
            "%s %s -> %d", response.request.method, response.request.url, response.status_code
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.get(url, **kwargs)
        response.raise_for_status()
        return response

    async def post_form(self, url: str, body: str, **kwargs: Any) -> httpx.Response:
        """POST an already-encoded form body and return the response."""

        headers = httpx.Headers(kwargs.pop("headers", None))
        if "Content-Type" not in headers:
            headers["Content-Type"] = FORM_CONTENT_TYPE
        response = await self._client.post(
            url,
            content=body.encode("utf-8"),
            headers=headers,
            **kwargs,
        )
        response.raise_for_status()
        return response

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpSession":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()
