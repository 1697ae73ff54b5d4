"""Tests for speedprobe.transport against a local aiohttp server."""

import asyncio
import unittest

from aiohttp import web
from aiohttp.test_utils import TestServer as LocalServer

from fakes import quick_config

from speedprobe.constants import UPLOAD_CONTENT_TYPE, USER_AGENT
from speedprobe.engine import SpeedTestEngine
from speedprobe.errors import TransportError
from speedprobe.metrics import EngineState
from speedprobe.transport import AiohttpTransport, cache_buster


def _make_app(log):
    async def down(request):
        log.append((request.method, request.path, dict(request.query), dict(request.headers)))
        size = int(request.query.get("bytes", "0"))
        return web.Response(body=b"\0" * size)

    async def up(request):
        body = await request.read()
        log.append((request.method, request.path, len(body), dict(request.headers)))
        return web.Response(text="ok")

    async def unavailable(request):
        return web.Response(status=503)

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_get("/__down", down)
    app.router.add_post("/__up", up)
    app.router.add_get("/unavailable", unavailable)
    app.router.add_post("/unavailable", unavailable)
    app.router.add_get("/slow", slow)
    return app


class TestCacheBuster(unittest.TestCase):
    def test_range(self):
        for _ in range(100):
            self.assertTrue(0 <= cache_buster() < 2**31)


class TestAiohttpTransport(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.log = []
        self.server = LocalServer(_make_app(self.log))
        await self.server.start_server()

    async def asyncTearDown(self):
        await self.server.close()

    def url(self, path):
        return str(self.server.make_url(path))

    async def test_download_counts_bytes(self):
        async with AiohttpTransport(timeout=5) as transport:
            received = await transport.download(self.url("/__down"), {"bytes": 200_000, "r": 7})

        self.assertEqual(received, 200_000)
        method, path, query, headers = self.log[0]
        self.assertEqual(method, "GET")
        self.assertEqual(query, {"bytes": "200000", "r": "7"})
        self.assertEqual(headers["User-Agent"], USER_AGENT)
        self.assertEqual(headers["Accept-Encoding"], "identity")

    async def test_upload_sends_binary_body(self):
        async with AiohttpTransport(timeout=5) as transport:
            await transport.upload(self.url("/__up"), b"x" * 50_000)

        method, path, length, headers = self.log[0]
        self.assertEqual(method, "POST")
        self.assertEqual(length, 50_000)
        self.assertEqual(headers["Content-Type"], UPLOAD_CONTENT_TYPE)

    async def test_ping_is_uncached_head(self):
        async with AiohttpTransport(timeout=5) as transport:
            await transport.ping(self.url("/__down"), {"bytes": 0, "r": 1})

        method, path, query, headers = self.log[0]
        self.assertEqual(method, "HEAD")
        self.assertEqual(query["bytes"], "0")
        self.assertEqual(headers["Cache-Control"], "no-cache")

    async def test_custom_user_agent(self):
        async with AiohttpTransport(timeout=5, user_agent="speedprobe/2") as transport:
            await transport.ping(self.url("/__down"))
        self.assertEqual(self.log[0][3]["User-Agent"], "speedprobe/2")

    async def test_non_2xx_raises(self):
        async with AiohttpTransport(timeout=5) as transport:
            with self.assertRaises(TransportError) as ctx:
                await transport.download(self.url("/unavailable"))
            self.assertEqual(ctx.exception.status, 503)

            with self.assertRaises(TransportError):
                await transport.upload(self.url("/unavailable"), b"abc")

    async def test_timeout_raises(self):
        async with AiohttpTransport(timeout=0.2) as transport:
            with self.assertRaises(TransportError):
                await transport.download(self.url("/slow"))

    async def test_requires_context_manager(self):
        transport = AiohttpTransport()
        with self.assertRaises(RuntimeError):
            await transport.ping(self.url("/__down"))


class TestEngineOverHttp(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.log = []
        self.server = LocalServer(_make_app(self.log))
        await self.server.start_server()

    async def asyncTearDown(self):
        await self.server.close()

    async def test_full_run(self):
        down = str(self.server.make_url("/__down"))
        config = quick_config(
            download_url=down,
            upload_url=str(self.server.make_url("/__up")),
            latency_url=down,
            timeout=10,
        )
        engine = SpeedTestEngine(config)

        result = await engine.run_test()

        self.assertGreater(result.download_bps, 0)
        self.assertGreater(result.upload_bps, 0)
        self.assertGreater(result.latency_ms, 0)
        self.assertEqual(result.packet_loss_percent, 0.0)
        self.assertEqual(engine.state, EngineState.COMPLETED)

        methods = [entry[0] for entry in self.log]
        self.assertEqual(methods.count("HEAD"), 8)
        self.assertEqual(methods.count("GET"), 4)
        self.assertEqual(methods.count("POST"), 4)


if __name__ == "__main__":
    unittest.main()
