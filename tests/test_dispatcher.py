# Tests for the local-first / cloud-fallback Dispatcher.
# Created: 2026-10-16

import asyncio
import logging
import threading
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from wm_sidecar.cloud_proxy import CloudProxy
from wm_sidecar.config import Settings
from wm_sidecar.dispatcher import FALLBACK_UNAVAILABLE, Dispatcher
from wm_sidecar.errors import HandlerLoadError
from wm_sidecar.models import GatewayRequest
from wm_sidecar.registry import HandlerModule, HandlerRegistry


@pytest.fixture
def cloud_response():
    return httpx.Response(
        200,
        json={"source": "cloud"},
        headers={"x-cache": "HIT"},
    )


@pytest.fixture
def proxy(cloud_response):
    p = MagicMock(spec=CloudProxy)
    p.forward = AsyncMock(return_value=cloud_response)
    return p


@pytest.fixture
def fake_registry():
    reg = MagicMock()
    reg.resolve.return_value = None
    return reg


@pytest.fixture
def dispatcher(settings, api_dir, proxy):
    return Dispatcher(settings, HandlerRegistry(api_dir), proxy)


def _get(path: str, **kw) -> GatewayRequest:
    return GatewayRequest("GET", path, **kw)


def _handler_errors(caplog):
    return [
        r
        for r in caplog.records
        if r.name == "wm_sidecar.dispatcher" and r.levelno >= logging.ERROR
    ]


class TestIntrospection:
    async def test_service_status(self, dispatcher, fake_registry, proxy):
        dispatcher.registry = fake_registry
        resp = await dispatcher.dispatch(_get("/api/service-status"))

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/json"
        data = resp.json()
        assert data["success"] is True
        assert data["summary"] == {"operational": 2, "degraded": 0, "outage": 0, "unknown": 0}
        assert [s["id"] for s in data["services"]] == ["local-api", "cloud-pass-through"]
        assert data["services"][0]["description"] == "Running on 127.0.0.1:46123"
        assert data["services"][1]["description"] == "Fallback target https://worldmonitor.app"
        assert data["local"] == {
            "enabled": True,
            "mode": "desktop-sidecar",
            "port": 46123,
            "remoteBase": "https://worldmonitor.app",
        }
        assert "timestamp" in data
        fake_registry.resolve.assert_not_called()
        proxy.forward.assert_not_called()

    async def test_local_status(self, dispatcher, settings, proxy):
        resp = await dispatcher.dispatch(_get("/api/local-status"))
        assert resp.json() == {
            "success": True,
            "mode": "desktop-sidecar",
            "port": 46123,
            "apiDir": str(settings.api_dir),
            "remoteBase": "https://worldmonitor.app",
        }
        proxy.forward.assert_not_called()

    async def test_status_endpoints_ignore_handler_files(self, dispatcher, write_handler, proxy):
        write_handler("local-status", "raise RuntimeError('never imported')\n")
        resp = await dispatcher.dispatch(_get("/api/local-status"))
        assert resp.status_code == 200
        assert resp.json()["success"] is True


class TestCloudPassThrough:
    async def test_missing_handler_returns_cloud_response(
        self, dispatcher, proxy, cloud_response
    ):
        req = _get("/api/weather", query="city=Oslo")
        resp = await dispatcher.dispatch(req)

        assert resp is cloud_response
        assert resp.headers["x-cache"] == "HIT"
        proxy.forward.assert_awaited_once_with(req)

    async def test_resolves_normalized_endpoint(self, settings, fake_registry, proxy):
        d = Dispatcher(settings, fake_registry, proxy)
        await d.dispatch(_get("/api/news/top/"))
        fake_registry.resolve.assert_called_once_with("news/top")
        fake_registry.load.assert_not_called()

    async def test_missing_handler_logs_no_error(self, dispatcher, caplog):
        with caplog.at_level(logging.DEBUG):
            await dispatcher.dispatch(_get("/api/weather"))
        assert _handler_errors(caplog) == []

    async def test_network_error_without_handler_propagates(self, dispatcher, proxy):
        proxy.forward.side_effect = httpx.ConnectError("refused")
        with pytest.raises(httpx.TransportError):
            await dispatcher.dispatch(_get("/api/weather"))


class TestLocalHandlers:
    async def test_sync_handler_response_returned(self, dispatcher, write_handler, proxy):
        write_handler(
            "hello",
            """
            import httpx

            def handler(request):
                return httpx.Response(200, json={"method": request.method, "url": str(request.url)})
            """,
        )
        resp = await dispatcher.dispatch(_get("/api/hello", query="a=1"))
        assert resp.json() == {"method": "GET", "url": "http://127.0.0.1:46123/api/hello?a=1"}
        proxy.forward.assert_not_called()

    async def test_async_handler_sees_body_and_headers(self, dispatcher, write_handler):
        write_handler(
            "echo",
            """
            import httpx

            async def handler(request):
                body = await request.aread()
                return httpx.Response(
                    201,
                    content=body,
                    headers={"x-tags": ",".join(request.headers.get_list("x-tag"))},
                )
            """,
        )
        req = GatewayRequest(
            "POST",
            "/api/echo",
            headers=[("x-tag", "a"), ("x-tag", "b")],
            body=b"payload",
        )
        resp = await dispatcher.dispatch(req)
        assert resp.status_code == 201
        assert resp.content == b"payload"
        assert resp.headers["x-tags"] == "a,b"

    async def test_sync_handler_runs_off_event_loop(self, dispatcher, write_handler):
        write_handler(
            "where",
            """
            import threading
            import httpx

            def handler(request):
                return httpx.Response(200, json={"thread": threading.get_ident()})
            """,
        )
        resp = await dispatcher.dispatch(_get("/api/where"))
        assert resp.json()["thread"] != threading.get_ident()

    async def test_async_handler_runs_on_event_loop(self, dispatcher, write_handler):
        write_handler(
            "where",
            """
            import threading
            import httpx

            async def handler(request):
                return httpx.Response(200, json={"thread": threading.get_ident()})
            """,
        )
        resp = await dispatcher.dispatch(_get("/api/where"))
        assert resp.json()["thread"] == threading.get_ident()

    async def test_index_endpoint(self, dispatcher, write_handler):
        write_handler(
            "index",
            "import httpx\n\ndef handler(request):\n    return httpx.Response(200, text='root')\n",
        )
        resp = await dispatcher.dispatch(_get("/api/"))
        assert resp.text == "root"


class TestFallback:
    async def test_raising_handler_falls_back_and_logs_once(
        self, dispatcher, write_handler, proxy, cloud_response, caplog
    ):
        write_handler(
            "weather",
            """
            def handler(request):
                raise ValueError("upstream feed parse failed")
            """,
        )
        req = _get("/api/weather")
        with caplog.at_level(logging.DEBUG):
            resp = await dispatcher.dispatch(req)

        assert resp is cloud_response
        proxy.forward.assert_awaited_once_with(req)
        errors = _handler_errors(caplog)
        assert len(errors) == 1
        assert "weather" in errors[0].getMessage()
        assert errors[0].exc_info is not None

    async def test_invalid_handler_falls_back(
        self, dispatcher, write_handler, proxy, cloud_response
    ):
        write_handler("weather", "handler = 'not callable'\n")
        resp = await dispatcher.dispatch(_get("/api/weather"))
        assert resp is cloud_response
        proxy.forward.assert_awaited_once()

    async def test_load_error_from_fake_registry(self, settings, proxy, cloud_response):
        registry = MagicMock()
        registry.resolve.return_value = HandlerModule("weather", settings.api_dir / "weather.py")
        registry.load.side_effect = HandlerLoadError("weather", "Invalid handler for weather")

        resp = await Dispatcher(settings, registry, proxy).dispatch(_get("/api/weather"))
        assert resp is cloud_response

    async def test_wrong_return_type_falls_back(self, dispatcher, write_handler, cloud_response):
        write_handler("weather", "def handler(request):\n    return {'temp': 3}\n")
        resp = await dispatcher.dispatch(_get("/api/weather"))
        assert resp is cloud_response

    async def test_both_fail_returns_502(self, dispatcher, write_handler, proxy):
        write_handler("weather", "def handler(request):\n    raise RuntimeError('x')\n")
        proxy.forward.side_effect = httpx.ConnectError("refused")

        resp = await dispatcher.dispatch(_get("/api/weather"))

        assert resp.status_code == 502
        assert resp.json() == {"error": FALLBACK_UNAVAILABLE}

    async def test_cloud_error_status_is_not_a_failure(self, dispatcher, write_handler, proxy):
        write_handler("weather", "def handler(request):\n    raise RuntimeError('x')\n")
        proxy.forward.return_value = httpx.Response(500, json={"error": "cloud says no"})

        resp = await dispatcher.dispatch(_get("/api/weather"))
        assert resp.status_code == 500
        assert resp.json() == {"error": "cloud says no"}


class TestHandlerTimeout:
    async def test_slow_handler_falls_back(self, tmp_path, api_dir, write_handler, proxy):
        settings = Settings(resource_dir=tmp_path, handler_timeout=0.05)
        write_handler(
            "slow",
            """
            import asyncio
            import httpx

            async def handler(request):
                await asyncio.sleep(5)
                return httpx.Response(200)
            """,
        )
        d = Dispatcher(settings, HandlerRegistry(api_dir), proxy)
        resp = await asyncio.wait_for(d.dispatch(_get("/api/slow")), 2)
        assert resp.json() == {"source": "cloud"}

    async def test_blocking_sync_handler_falls_back(self, tmp_path, api_dir, write_handler, proxy):
        settings = Settings(resource_dir=tmp_path, handler_timeout=0.05)
        write_handler(
            "blocking",
            """
            import time
            import httpx

            def handler(request):
                time.sleep(0.5)
                return httpx.Response(200)
            """,
        )
        d = Dispatcher(settings, HandlerRegistry(api_dir), proxy)
        resp = await asyncio.wait_for(d.dispatch(_get("/api/blocking")), 0.4)
        assert resp.json() == {"source": "cloud"}

    async def test_handler_timeout_error_without_deadline(
        self, dispatcher, write_handler, proxy, caplog
    ):
        write_handler(
            "feed",
            """
            def handler(request):
                raise TimeoutError("feed did not answer")
            """,
        )
        with caplog.at_level(logging.ERROR):
            resp = await dispatcher.dispatch(_get("/api/feed"))

        assert resp.json() == {"source": "cloud"}
        message = _handler_errors(caplog)[0].getMessage()
        assert "raised TimeoutError: feed did not answer" in message
        assert "timed out after" not in message

    async def test_no_timeout_by_default(self, settings):
        assert settings.handler_timeout is None
