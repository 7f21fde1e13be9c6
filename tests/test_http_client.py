import pytest
from aiohttp import test_utils, web

from newsdesk.services.http_client import HttpClient
from newsdesk.services.retry import RetryPolicy
from newsdesk.utils.error_monitoring import MalformedPayloadError, SourceFetchError

FAST = RetryPolicy(retries=2, base_delay=0.01, max_delay=0.05, timeout=5)


async def start(routes):
    app = web.Application()
    for path, handler in routes.items():
        app.router.add_get(path, handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_get_text_and_json():
    async def feed(request):
        return web.Response(text="<rss/>")

    async def api(request):
        return web.json_response({"page": request.query["page"]})

    server = await start({"/feed": feed, "/api": api})
    client = HttpClient(FAST)
    try:
        assert await client.get_text(str(server.make_url("/feed"))) == "<rss/>"
        assert await client.get_json(str(server.make_url("/api")), params={"page": 2}) == {"page": "2"}
    finally:
        await client.close()
        await server.close()
    assert client.session is None


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    hits = []

    async def flaky(request):
        hits.append(1)
        if len(hits) < 3:
            return web.Response(status=503)
        return web.Response(text="recovered")

    server = await start({"/flaky": flaky})
    client = HttpClient(FAST)
    try:
        assert await client.get_text(str(server.make_url("/flaky"))) == "recovered"
    finally:
        await client.close()
        await server.close()
    assert len(hits) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    hits = []

    async def missing(request):
        hits.append(1)
        return web.Response(status=404)

    server = await start({"/missing": missing})
    client = HttpClient(FAST)
    try:
        with pytest.raises(SourceFetchError) as excinfo:
            await client.get_text(str(server.make_url("/missing")))
    finally:
        await client.close()
        await server.close()
    assert excinfo.value.status == 404
    assert len(hits) == 1


@pytest.mark.asyncio
async def test_invalid_json_is_malformed():
    async def broken(request):
        return web.Response(text="{not json")

    server = await start({"/broken": broken})
    client = HttpClient(FAST)
    try:
        with pytest.raises(MalformedPayloadError):
            await client.get_json(str(server.make_url("/broken")))
    finally:
        await client.close()
        await server.close()
