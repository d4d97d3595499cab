"""
NSEClient against a local aiohttp app standing in for the NSE endpoints.
"""
import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import EXPIRY, future, option
from fno_scanner.clients.nse_client import NSEClient
from fno_scanner.core.errors import UniverseFetchError, UpstreamHTTPError
from fno_scanner.core.evaluator import SymbolEvaluator
from fno_scanner.core.models import ScanStatus

UNIVERSE = "/api/underlying-information"
DERIVATIVES = "/api/NextApi/apiClient/GetQuoteApi"
LOSERS = "/api/live-analysis-variations"


def json_route(path, body, status=200):
    async def handler(request):
        return web.json_response(body, status=status)
    return web.get(path, handler)


def html_route(path, status=200):
    async def handler(request):
        return web.Response(text="<html>maintenance</html>", content_type="text/html", status=status)
    return web.get(path, handler)


@pytest_asyncio.fixture
async def serve():
    """Start a local server with the given routes and return an opened client for it."""
    servers, clients = [], []

    async def _serve(*routes, symbol_timeout=2.0):
        async def home(request):
            resp = web.Response(text="ok")
            resp.set_cookie("nsit", "abc")
            return resp

        app = web.Application()
        app.add_routes([web.get("/", home), *routes])
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        client = NSEClient(base_url=str(server.make_url("/")), symbol_timeout=symbol_timeout)
        await client.open()
        clients.append(client)
        return client

    yield _serve

    for client in clients:
        await client.close()
    for server in servers:
        await server.close()


class TestUniverse:

    @pytest.mark.asyncio
    async def test_symbols_are_filtered_stripped_and_sorted(self, serve):
        body = {"data": {"UnderlyingList": [
            {"symbol": " TCS "},
            {"symbol": ""},
            "junk",
            {"underlying": "NO-SYMBOL"},
            {"symbol": "INFY"},
        ]}}
        client = await serve(json_route(UNIVERSE, body))
        assert await client.fetch_fno_symbols() == ["INFY", "TCS"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [[1, 2, 3], {"data": None}, {"data": {"UnderlyingList": "none"}}, {}])
    async def test_malformed_listing_is_empty(self, serve, body):
        client = await serve(json_route(UNIVERSE, body))
        assert await client.fetch_fno_symbols() == []

    @pytest.mark.asyncio
    async def test_server_error_is_universe_failure(self, serve):
        client = await serve(json_route(UNIVERSE, {"error": "down"}, status=500))
        with pytest.raises(UniverseFetchError) as exc_info:
            await client.fetch_fno_symbols()
        assert isinstance(exc_info.value.__cause__, UpstreamHTTPError)
        assert exc_info.value.__cause__.status == 500
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_body_is_universe_failure(self, serve):
        client = await serve(html_route(UNIVERSE))
        with pytest.raises(UniverseFetchError):
            await client.fetch_fno_symbols()


class TestDerivatives:

    @pytest.mark.asyncio
    async def test_rows_and_query_params(self, serve):
        seen = {}

        async def handler(request):
            seen.update(request.query)
            return web.json_response({"data": [future(100.4, 100), option("CE", 5, 5, 8)]})

        client = await serve(web.get(DERIVATIVES, handler))
        rows = await client.fetch_derivatives("RELIANCE")
        assert [r["instrumentType"] for r in rows] == ["FUTSTK", "OPTSTK"]
        assert seen == {"functionName": "getSymbolDerivativesData", "symbol": "RELIANCE"}

    @pytest.mark.asyncio
    async def test_non_list_data_is_empty(self, serve):
        client = await serve(json_route(DERIVATIVES, {"data": {"rows": []}}))
        assert await client.fetch_derivatives("AAA") == []

    @pytest.mark.asyncio
    async def test_forbidden_raises_http_error(self, serve):
        client = await serve(json_route(DERIVATIVES, {}, status=403))
        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.fetch_derivatives("AAA")
        assert exc_info.value.status == 403

        result = await SymbolEvaluator(client, EXPIRY).evaluate("AAA")
        assert result.status == ScanStatus.HTTP_ERROR
        assert result.detail == "403"

    @pytest.mark.asyncio
    async def test_slow_symbol_times_out(self, serve):
        async def slow(request):
            await asyncio.sleep(0.5)
            return web.json_response({"data": []})

        client = await serve(web.get(DERIVATIVES, slow), symbol_timeout=0.05)
        with pytest.raises(asyncio.TimeoutError):
            await client.fetch_derivatives("SLOW")

        result = await SymbolEvaluator(client, EXPIRY).evaluate("SLOW")
        assert result.status == ScanStatus.TIMEOUT
        assert result.is_error

    @pytest.mark.asyncio
    async def test_non_json_body_is_transport_error(self, serve):
        client = await serve(html_route(DERIVATIVES))
        result = await SymbolEvaluator(client, EXPIRY).evaluate("AAA")
        assert result.status == ScanStatus.TRANSPORT_ERROR


class TestLosers:

    @pytest.mark.asyncio
    async def test_keeps_dict_rows(self, serve):
        body = {"FOSec": {"data": [{"symbol": "AAA", "series": "EQ"}, "junk", None, {"symbol": "BBB"}]},
                "NIFTY": {"data": [{"symbol": "IGNORED"}]}}
        client = await serve(json_route(LOSERS, body))
        rows = await client.fetch_losers()
        assert [r["symbol"] for r in rows] == ["AAA", "BBB"]

    @pytest.mark.asyncio
    async def test_missing_section_is_empty(self, serve):
        client = await serve(json_route(LOSERS, {"NIFTY": {"data": []}}))
        assert await client.fetch_losers() == []

    @pytest.mark.asyncio
    async def test_server_error_is_fetch_failure(self, serve):
        client = await serve(json_route(LOSERS, {}, status=500))
        with pytest.raises(UniverseFetchError, match="Failed to fetch losers"):
            await client.fetch_losers()


class TestSession:

    @pytest.mark.asyncio
    async def test_request_before_open_fails(self):
        with pytest.raises(RuntimeError):
            await NSEClient(base_url="http://127.0.0.1:1").fetch_derivatives("AAA")

    @pytest.mark.asyncio
    async def test_warm_up_failure_does_not_block_open(self, serve):
        client = await serve(json_route(UNIVERSE, {"data": {"UnderlyingList": [{"symbol": "AAA"}]}}))
        # warm-up already ran against "/"; a failing home page only logs
        broken = NSEClient(base_url="http://127.0.0.1:1", warmup_timeout=0.2)
        async with broken:
            assert broken._session is not None
        assert await client.fetch_fno_symbols() == ["AAA"]
