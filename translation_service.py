"""Translation client for the Google Translate web batch-execute endpoint."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx

import languages
from client_config import ClientConfig, get_logger
from http_session import HttpSession
from rpc_codec import build_field_request, decode_batch_response, encode_form_body
from token_bootstrap import TokenBootstrap


DEFAULT_SOURCE = "auto"
DEFAULT_DEST = "en"


class TranslationError(RuntimeError):
    """Raised when the translation service cannot complete a request."""


class LanguageNotSupportedError(TranslationError, ValueError):
    """Raised before any network call when a language does not resolve."""

    def __init__(self, language: object) -> None:
        super().__init__(f"The language '{language}' is not supported")
        self.language = language


@dataclass(frozen=True)
class LanguageInfo:
    did_you_mean: bool = False
    iso: str = ""


@dataclass(frozen=True)
class TextInfo:
    auto_corrected: bool = False
    value: str = ""
    did_you_mean: bool = False


@dataclass(frozen=True)
class SourceInfo:
    language: LanguageInfo = field(default_factory=LanguageInfo)
    text: TextInfo = field(default_factory=TextInfo)


@dataclass(frozen=True)
class TranslationResult:
    text: str = ""
    pronunciation: str = ""
    src: SourceInfo = field(default_factory=SourceInfo)
    raw: Any = None

    @property
    def detected_source(self) -> Optional[str]:
        return self.src.language.iso or None


@dataclass(frozen=True)
class TranslationOptions:
    src: str = DEFAULT_SOURCE
    dest: str = DEFAULT_DEST
    auto_correct: bool = True


def resolve_options(
    src: Optional[str] = None,
    dest: Optional[str] = None,
    auto_correct: bool = True,
) -> TranslationOptions:
    """Resolve caller-supplied languages into service codes.

    ``None`` selects the default. Anything else must resolve through the
    language table or :class:`LanguageNotSupportedError` is raised.
    """

    resolved = []
    for value, default in ((src, DEFAULT_SOURCE), (dest, DEFAULT_DEST)):
        if value is None:
            resolved.append(default)
            continue
        code = languages.resolve_code(value)
        if code is None or not languages.is_supported(code):
            raise LanguageNotSupportedError(value)
        resolved.append(code)

    src_code, dest_code = resolved
    return TranslationOptions(src=src_code, dest=dest_code, auto_correct=bool(auto_correct))


def build_result(body: str) -> TranslationResult:
    """Turn a raw endpoint body into a result; unusable bodies give an empty one."""

    payload = decode_batch_response(body)
    if payload is None:
        return TranslationResult()
    if not payload.has_translation:
        return TranslationResult(raw=payload.root)

    pronunciation = payload.pronunciation
    iso, language_guess = payload.source_language()
    text_info = TextInfo()
    correction = payload.correction()
    if correction is not None:
        value, auto_corrected = correction
        text_info = TextInfo(auto_corrected=auto_corrected, value=value, did_you_mean=not auto_corrected)

    return TranslationResult(
        text=payload.translated_text(),
        pronunciation=pronunciation if isinstance(pronunciation, str) else "",
        src=SourceInfo(
            language=LanguageInfo(did_you_mean=language_guess, iso=iso),
            text=text_info,
        ),
        raw=payload.root,
    )


class BatchTranslateClient:
    """Client that impersonates the translate web page's RPC calls.

    One instance owns one anonymous session; reuse it across calls and close
    it with :meth:`aclose` (or ``async with``) when done.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        bootstrap: Optional[TokenBootstrap] = None,
    ) -> None:
        self.config = config if config is not None else ClientConfig()
        self._logger = get_logger("service")
        if bootstrap is None:
            session = HttpSession(
                user_agent=self.config.user_agent,
                headers=self.config.extra_headers,
                timeout=self.config.timeout,
                transport=transport,
            )
            bootstrap = TokenBootstrap(session, self.config)
        self.bootstrap = bootstrap

    @property
    def session(self) -> HttpSession:
        return self.bootstrap.session

    async def translate(
        self,
        text: str,
        src: Optional[str] = None,
        dest: Optional[str] = None,
        *,
        auto_correct: bool = True,
        request_options: Optional[Mapping[str, Any]] = None,
    ) -> TranslationResult:
        try:
            options = resolve_options(src, dest, auto_correct)
        except LanguageNotSupportedError as exc:
            self._logger.debug("Rejected translation request: %s", exc)
            raise

        session, url = await self.bootstrap.acquire()
        body = encode_form_body(
            build_field_request(text, options.src, options.dest, options.auto_correct)
        )
        response = await session.post_form(url, body, **dict(request_options or {}))

        result = build_result(response.text)
        if not result.text:
            self._logger.debug(
                "No translation decoded for %s -> %s (%d bytes)",
                options.src,
                options.dest,
                len(response.content),
            )
        return result

    async def aclose(self) -> None:
        await self.session.aclose()

    async def __aenter__(self) -> "BatchTranslateClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()


_default_config: Optional[ClientConfig] = None
_default_client: Optional[BatchTranslateClient] = None
_default_loop: Optional[asyncio.AbstractEventLoop] = None


def set_default_config(config: Optional[ClientConfig]) -> None:
    """Use ``config`` for default clients created from now on."""

    global _default_config
    _default_config = config


async def get_default_client() -> BatchTranslateClient:
    """Return the default client bound to the running event loop.

    Pooled connections belong to the loop that opened them, so a client made
    under an earlier loop is dropped and a new one is created.
    """

    global _default_client, _default_loop
    loop = asyncio.get_running_loop()
    client = _default_client
    if client is None or client.session.is_closed or _default_loop is not loop:
        if client is not None and not client.session.is_closed:
            get_logger("service").debug("Replacing default client created under another event loop")
        client = BatchTranslateClient(_default_config)
        _default_client = client
        _default_loop = loop
    return client


async def aclose_default_client() -> None:
    global _default_client, _default_loop
    client = _default_client
    _default_client = None
    loop = _default_loop
    _default_loop = None
    if client is not None and loop is asyncio.get_running_loop():
        await client.aclose()


async def translate(
    text: str,
    src: Optional[str] = None,
    dest: Optional[str] = None,
    *,
    auto_correct: bool = True,
    request_options: Optional[Mapping[str, Any]] = None,
) -> TranslationResult:
    """Translate ``text`` with the process-wide default client."""

    resolve_options(src, dest, auto_correct)
    client = await get_default_client()
    return await client.translate(
        text,
        src,
        dest,
        auto_correct=auto_correct,
        request_options=request_options,
    )
