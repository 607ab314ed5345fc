"""Session/build token bootstrap for the batch-execute endpoint."""

from __future__ import annotations

import asyncio
import random
import re
import time
from typing import Callable, Dict, Optional, Tuple, Union
from urllib.parse import quote, urlencode

from client_config import ClientConfig, get_logger
from http_session import HttpSession


RPC_ID = "MkEWBc"
SESSION_TOKEN_KEY = "FdrFJe"
BUILD_TOKEN_KEY = "cfb2h"
BATCH_EXECUTE_PATH = "/_/TranslateWebserverUi/data/batchexecute"

REQUEST_ID_MIN = 100000
REQUEST_ID_MAX = 999999

ParamValue = Union[str, int]


def extract_token(key: str, html: str) -> str:
    """Return the quoted literal following ``"<key>":`` or an empty string."""

    match = re.search(f'"{re.escape(key)}":"(.*?)"', html)
    if match is None:
        return ""
    return match.group(1)


def build_params(session_token: str, build_token: str, locale: str) -> Dict[str, ParamValue]:
    return {
        "rpcids": RPC_ID,
        "source-path": "/",
        "f.sid": session_token,
        "bl": build_token,
        "hl": locale,
        "soc-app": 1,
        "soc-platform": 1,
        "soc-device": 1,
        "_reqid": 0,
        "rt": "c",
    }


def encode_query(params: Dict[str, ParamValue]) -> str:
    # RFC 3986 escaping: spaces become %20 and "/" is escaped.
    return urlencode(params, quote_via=quote)


class TokenBootstrap:
    """Keep a short-lived token bundle and hand out endpoint URLs.

    The landing page is fetched again once ``config.bootstrap_ttl`` seconds
    have passed since the last successful bootstrap. The request id is
    regenerated on every :meth:`acquire`, cached bundle or not.
    """

    def __init__(
        self,
        session: HttpSession,
        config: Optional[ClientConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.session = session
        self._config = config if config is not None else ClientConfig()
        self._clock = clock
        self._rng = rng if rng is not None else random.Random()
        self._logger = get_logger("bootstrap")
        self._lock = asyncio.Lock()
        self._last_bootstrap: Optional[float] = None
        self._params: Dict[str, ParamValue] = {}
        self._endpoint_url: Optional[str] = None

    @property
    def origin(self) -> str:
        return self._config.origin

    @property
    def params(self) -> Dict[str, ParamValue]:
        return dict(self._params)

    @property
    def endpoint_url(self) -> Optional[str]:
        """URL built by the most recent :meth:`acquire`, if any."""

        return self._endpoint_url

    def is_fresh(self) -> bool:
        if self._last_bootstrap is None:
            return False
        return self._clock() - self._last_bootstrap < self._config.bootstrap_ttl

    def invalidate(self) -> None:
        self._last_bootstrap = None

    async def acquire(self) -> Tuple[HttpSession, str]:
        """Ensure a fresh bundle and return the session with the next endpoint URL."""

        async with self._lock:
            if not self.is_fresh():
                await self._bootstrap()
            self._params["_reqid"] = self._rng.randint(REQUEST_ID_MIN, REQUEST_ID_MAX)
            url = f"{self.origin}{BATCH_EXECUTE_PATH}?{encode_query(self._params)}"
            self._endpoint_url = url
            return self.session, url

    async def _bootstrap(self) -> None:
        self._logger.debug("Bootstrapping session from %s", self.origin)
        # A new bundle starts a new anonymous session.
        self.session.cookies.clear()
        response = await self.session.get(self.origin)
        html = response.text

        session_token = extract_token(SESSION_TOKEN_KEY, html)
        build_token = extract_token(BUILD_TOKEN_KEY, html)
        if not session_token:
            self._logger.warning("Landing page has no %s marker; using empty session token", SESSION_TOKEN_KEY)
        if not build_token:
            self._logger.warning("Landing page has no %s marker; using empty build token", BUILD_TOKEN_KEY)

        self._params = build_params(session_token, build_token, self._config.locale)
        self._last_bootstrap = self._clock()
        self._logger.info(
            "Bootstrapped session | f.sid=%d chars | bl=%d chars | cookies=%d",
            len(session_token),
            len(build_token),
            len(self.session.cookies),
        )
