import asyncio
import random
import unittest
from urllib.parse import parse_qsl, urlsplit

import httpx

from client_config import ClientConfig
from http_session import HttpSession
from stub_transport import FakeTime, RecordingTransport, SequenceRandom
from token_bootstrap import (
    BATCH_EXECUTE_PATH,
    REQUEST_ID_MAX,
    REQUEST_ID_MIN,
    TokenBootstrap,
    encode_query,
    extract_token,
)


class ExtractTokenTests(unittest.TestCase):
    def test_returns_literal_after_marker(self) -> None:
        html = 'x = {"FdrFJe":"-296145","cfb2h":"boq_translate_20240612"};'
        self.assertEqual(extract_token("FdrFJe", html), "-296145")
        self.assertEqual(extract_token("cfb2h", html), "boq_translate_20240612")

    def test_missing_marker_gives_empty_string(self) -> None:
        self.assertEqual(extract_token("FdrFJe", "<html></html>"), "")

    def test_takes_first_match_only(self) -> None:
        html = '"cfb2h":"first" "cfb2h":"second"'
        self.assertEqual(extract_token("cfb2h", html), "first")


class EncodeQueryTests(unittest.TestCase):
    def test_uses_rfc3986_escaping(self) -> None:
        query = encode_query({"source-path": "/", "hl": "en US", "f.sid": "-1~2", "soc-app": 1})
        self.assertEqual(query, "source-path=%2F&hl=en%20US&f.sid=-1~2&soc-app=1")


class TokenBootstrapTests(unittest.IsolatedAsyncioTestCase):
    def _create(self, stub: RecordingTransport, **overrides) -> TokenBootstrap:
        self.fake_time = overrides.pop("fake_time", FakeTime())
        config = overrides.pop("config", ClientConfig(origin="https://translate.example"))
        session = HttpSession(transport=stub.transport)
        self.addAsyncCleanup(session.aclose)
        return TokenBootstrap(session, config, clock=self.fake_time.now, **overrides)

    async def test_first_acquire_fetches_landing_page(self) -> None:
        stub = RecordingTransport()
        bootstrap = self._create(stub)
        self.assertFalse(bootstrap.is_fresh())

        _, url = await bootstrap.acquire()

        self.assertEqual(stub.count("GET"), 1)
        self.assertEqual(stub.requests[0].url.host, "translate.example")
        self.assertEqual(stub.requests[0].url.path, "/")
        self.assertTrue(bootstrap.is_fresh())
        parts = urlsplit(url)
        self.assertEqual(f"{parts.scheme}://{parts.netloc}{parts.path}", f"https://translate.example{BATCH_EXECUTE_PATH}")
        params = dict(parse_qsl(parts.query))
        self.assertEqual(params["rpcids"], "MkEWBc")
        self.assertEqual(params["source-path"], "/")
        self.assertEqual(params["f.sid"], "-2961455738458466789")
        self.assertEqual(params["bl"], "boq_translate-webserver_20240612.08_p0")
        self.assertEqual(params["hl"], "en-US")
        self.assertEqual(params["soc-app"], "1")
        self.assertEqual(params["soc-platform"], "1")
        self.assertEqual(params["soc-device"], "1")
        self.assertEqual(params["rt"], "c")
        self.assertEqual(bootstrap.endpoint_url, url)

    async def test_parameter_order_is_stable(self) -> None:
        bootstrap = self._create(RecordingTransport())
        _, url = await bootstrap.acquire()
        keys = [key for key, _ in parse_qsl(urlsplit(url).query)]
        self.assertEqual(
            keys,
            ["rpcids", "source-path", "f.sid", "bl", "hl", "soc-app", "soc-platform", "soc-device", "_reqid", "rt"],
        )

    async def test_cached_bundle_within_ttl(self) -> None:
        stub = RecordingTransport()
        bootstrap = self._create(stub)
        await bootstrap.acquire()
        self.fake_time.advance(299)
        await bootstrap.acquire()
        self.assertEqual(stub.count("GET"), 1)

    async def test_expired_bundle_triggers_one_more_fetch(self) -> None:
        stub = RecordingTransport()
        bootstrap = self._create(stub)
        await bootstrap.acquire()
        self.fake_time.advance(301)
        await bootstrap.acquire()
        await bootstrap.acquire()
        self.assertEqual(stub.count("GET"), 2)

    async def test_request_id_changes_on_every_acquire(self) -> None:
        bootstrap = self._create(RecordingTransport(), rng=SequenceRandom([123456, 654321]))
        _, first = await bootstrap.acquire()
        _, second = await bootstrap.acquire()

        first_params = parse_qsl(urlsplit(first).query)
        second_params = parse_qsl(urlsplit(second).query)
        differing = [
            (a[0], a[1], b[1]) for a, b in zip(first_params, second_params) if a != b
        ]
        self.assertEqual(differing, [("_reqid", "123456", "654321")])

    async def test_request_id_stays_within_six_digits(self) -> None:
        bootstrap = self._create(RecordingTransport(), rng=random.Random(7))
        for _ in range(200):
            _, url = await bootstrap.acquire()
            request_id = int(dict(parse_qsl(urlsplit(url).query))["_reqid"])
            self.assertGreaterEqual(request_id, REQUEST_ID_MIN)
            self.assertLessEqual(request_id, REQUEST_ID_MAX)

    async def test_missing_markers_bootstrap_with_empty_tokens(self) -> None:
        stub = RecordingTransport(landing_html="<html><body>changed markup</body></html>")
        bootstrap = self._create(stub)
        _, url = await bootstrap.acquire()
        params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
        self.assertEqual(params["f.sid"], "")
        self.assertEqual(params["bl"], "")
        self.assertTrue(bootstrap.is_fresh())

    async def test_network_failure_propagates(self) -> None:
        stub = RecordingTransport(get_error=httpx.ConnectError("dns failure"))
        bootstrap = self._create(stub)
        with self.assertRaises(httpx.ConnectError):
            await bootstrap.acquire()
        self.assertFalse(bootstrap.is_fresh())
        self.assertIsNone(bootstrap.endpoint_url)

    async def test_error_status_propagates(self) -> None:
        stub = RecordingTransport(landing_status=429)
        bootstrap = self._create(stub)
        with self.assertRaises(httpx.HTTPStatusError):
            await bootstrap.acquire()
        self.assertFalse(bootstrap.is_fresh())

    async def test_concurrent_acquires_share_one_bootstrap(self) -> None:
        stub = RecordingTransport()
        bootstrap = self._create(stub)
        results = await asyncio.gather(*(bootstrap.acquire() for _ in range(5)))
        self.assertEqual(stub.count("GET"), 1)
        for _, url in results:
            self.assertIn("f.sid=-2961455738458466789", url)

    async def test_rebootstrap_starts_fresh_cookie_session(self) -> None:
        stub = RecordingTransport()
        bootstrap = self._create(stub)
        await bootstrap.acquire()
        self.assertEqual(bootstrap.session.cookies.get("NID"), "511=abc")

        self.fake_time.advance(301)
        await bootstrap.acquire()
        self.assertEqual(stub.count("GET"), 2)
        self.assertNotIn("Cookie", stub.requests[1].headers)

    async def test_invalidate_forces_bootstrap(self) -> None:
        stub = RecordingTransport()
        bootstrap = self._create(stub)
        await bootstrap.acquire()
        bootstrap.invalidate()
        await bootstrap.acquire()
        self.assertEqual(stub.count("GET"), 2)

    async def test_custom_locale_and_ttl(self) -> None:
        stub = RecordingTransport()
        config = ClientConfig(origin="https://translate.example", locale="ja", bootstrap_ttl=10)
        bootstrap = self._create(stub, config=config)
        _, url = await bootstrap.acquire()
        self.assertEqual(dict(parse_qsl(urlsplit(url).query))["hl"], "ja")
        self.fake_time.advance(11)
        await bootstrap.acquire()
        self.assertEqual(stub.count("GET"), 2)


if __name__ == "__main__":  # pragma: no cover - allows direct execution
    unittest.main()
