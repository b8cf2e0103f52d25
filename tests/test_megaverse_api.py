"""Tests for request encoding, the API facade and the aiohttp transport."""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from megatask.apis.megaverse_api import (
    MegaverseAPI, MegaverseClient, build_create_request, build_delete_request
)
from megatask.core.cancellation import CancellationToken
from megatask.core.exceptions import (
    PermanentRemoteError, RetryableTransportError, ValidationError
)
from megatask.core.models import (
    Cometh, ComethDirection, ObjectKind, Polyanet, Position, Soloon, SoloonColor
)
from megatask.core.pipeline import ApiRequest, RawResponse, ResilientCallPipeline

from .conftest import CANDIDATE_ID, StubTransport


@pytest.fixture
def make_api(fast_limiter, fast_retry):
    def _make(transport):
        return MegaverseAPI(ResilientCallPipeline(transport, fast_limiter, fast_retry),
                            CANDIDATE_ID)
    return _make


class TestRequestEncoding:

    def test_polyanet(self):
        request = build_create_request(Polyanet(Position(2, 3)), "abc")
        assert request == ApiRequest("POST", "/polyanets",
                                     {"row": 2, "column": 3, "candidateId": "abc"})

    def test_soloon(self):
        request = build_create_request(Soloon(Position(0, 1), SoloonColor.PURPLE), "abc")
        assert request.endpoint == "/soloons"
        assert request.payload["color"] == "purple"

    def test_cometh(self):
        request = build_create_request(Cometh(Position(0, 1), ComethDirection.RIGHT), "abc")
        assert request.endpoint == "/comeths"
        assert request.payload["direction"] == "right"

    @pytest.mark.parametrize("operation", [Position(0, 0), "POLYANET", None])
    def test_unknown_operation(self, operation):
        with pytest.raises(ValidationError):
            build_create_request(operation, "abc")

    def test_delete(self):
        request = build_delete_request(ObjectKind.COMETH, Position(4, 5), "abc")
        assert request == ApiRequest("DELETE", "/comeths",
                                     {"row": 4, "column": 5, "candidateId": "abc"})

    def test_delete_unknown_kind(self):
        with pytest.raises(ValidationError):
            build_delete_request("STAR", Position(0, 0), "abc")


class TestMegaverseAPI:

    @pytest.mark.asyncio
    async def test_create_validates_before_sending(self, make_api):
        transport = StubTransport()
        with pytest.raises(ValidationError):
            await make_api(transport).create(Polyanet(Position(-1, 0)))
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_goal_map(self, make_api):
        goal = [["SPACE", "POLYANET"], ["RED_SOLOON", "SPACE"]]
        transport = StubTransport(lambda r, n: RawResponse(200, {"goal": goal}))

        assert await make_api(transport).get_goal_map() == goal
        assert transport.requests[0] == ApiRequest("GET", f"/map/{CANDIDATE_ID}/goal")

    @pytest.mark.asyncio
    async def test_goal_map_with_bad_body(self, make_api):
        transport = StubTransport(lambda r, n: RawResponse(200, "<html>"))
        with pytest.raises(PermanentRemoteError):
            await make_api(transport).get_goal_map()

    @pytest.mark.asyncio
    async def test_current_map_decoding(self, make_api):
        content = [
            [None, {"type": 0}],
            [{"type": 1, "color": "red"}, {"type": 2, "direction": "up"}],
        ]
        transport = StubTransport(lambda r, n: RawResponse(200, {"map": {"content": content}}))

        grid = await make_api(transport).get_current_map()

        assert grid == [
            [None, Polyanet(Position(0, 1))],
            [Soloon(Position(1, 0), SoloonColor.RED), Cometh(Position(1, 1), ComethDirection.UP)],
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cell", [
        {"type": 1},
        {"type": 1, "color": "green"},
        {"type": 2, "direction": "north"},
        {"type": 7},
    ])
    async def test_unrecognized_cells_are_skipped(self, make_api, cell):
        content = [[cell, {"type": 0}]]
        transport = StubTransport(lambda r, n: RawResponse(200, {"map": {"content": content}}))

        grid = await make_api(transport).get_current_map()

        assert grid == [[None, Polyanet(Position(0, 1))]]

    @pytest.mark.asyncio
    async def test_attribute_case_is_ignored(self, make_api):
        content = [[{"type": 2, "direction": "UP"}, {"type": 1, "color": "Blue"}]]
        transport = StubTransport(lambda r, n: RawResponse(200, {"map": {"content": content}}))

        grid = await make_api(transport).get_current_map()

        assert grid == [[Cometh(Position(0, 0), ComethDirection.UP),
                         Soloon(Position(0, 1), SoloonColor.BLUE)]]

    @pytest.mark.asyncio
    async def test_current_map_not_available(self, make_api):
        transport = StubTransport(lambda r, n: RawResponse(404, "not found"))
        with pytest.raises(PermanentRemoteError) as exc_info:
            await make_api(transport).get_current_map()
        assert exc_info.value.status == 404
        assert "not available" in str(exc_info.value)


class TestClear:

    @pytest.mark.asyncio
    async def test_tries_each_kind_until_one_is_deleted(self, make_api):
        def responder(request, n):
            if request.endpoint == "/polyanets" and request.payload["column"] == 0:
                return RawResponse(200)
            return RawResponse(400, "nothing there")

        transport = StubTransport(responder)
        result = await make_api(transport).clear(2, 1)

        assert (result.checked, result.removed, result.unchanged) == (2, 1, 1)
        assert result.errors == []
        assert not result.cancelled
        assert [r.endpoint for r in transport.requests] == [
            "/polyanets", "/polyanets", "/soloons", "/comeths"
        ]
        assert all(r.method == "DELETE" for r in transport.requests)

    @pytest.mark.asyncio
    async def test_transient_failures_are_reported(self, make_api):
        transport = StubTransport(lambda r, n: RawResponse(503))
        result = await make_api(transport).clear(1, 1)
        assert result.removed == 0
        assert len(result.errors) == 1
        position, error = result.errors[0]
        assert position == Position(0, 0)
        assert isinstance(error, RetryableTransportError)

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_clear(self, make_api):
        token = CancellationToken()
        token.cancel()
        transport = StubTransport()
        result = await make_api(transport).clear(3, 3, token)
        assert result.cancelled
        assert result.checked == 0
        assert transport.requests == []


class TestMegaverseClient:

    @pytest.mark.asyncio
    async def test_round_trip_against_server(self):
        received = []

        async def create_polyanet(request):
            received.append(await request.json())
            return web.json_response({})

        async def reject_soloon(request):
            return web.Response(status=400, text="invalid color")

        app = web.Application()
        app.router.add_post("/polyanets", create_polyanet)
        app.router.add_post("/soloons", reject_soloon)

        async with test_utils.TestServer(app) as server:
            async with MegaverseClient(base_url=str(server.make_url("/"))) as client:
                ok = await client.send(build_create_request(Polyanet(Position(1, 2)), "abc"))
                rejected = await client.send(
                    build_create_request(Soloon(Position(0, 0), SoloonColor.RED), "abc")
                )

        assert ok.status == 200
        assert ok.body == {}
        assert received == [{"row": 1, "column": 2, "candidateId": "abc"}]
        assert rejected.status == 400
        assert rejected.text == "invalid color"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        client = MegaverseClient(base_url="http://127.0.0.1:1")
        await client.close()
        await client.close()

    @pytest.mark.asyncio
    async def test_exhausted_time_budget_is_a_timeout(self):
        client = MegaverseClient(base_url="http://127.0.0.1:1")
        with pytest.raises(asyncio.TimeoutError):
            await client.send(build_create_request(Polyanet(Position(0, 0)), "abc"), timeout=0.0)
        assert client._session is None
