"""Translation service operations over httpx with a mocked Transifex API."""
import json

import httpx
import pytest

from txsync.errors import ContentFormatError, RequestFailed
from txsync.executor import RateLimitedExecutor
from txsync.hashing import generate_hash
from txsync.models import ResourceString
from txsync.service import (
    TranslationService,
    iso_language_code_to_transifex,
    transifex_language_code_to_iso,
)
from txsync.transport import HttpxTransport

API_PREFIX = "/api/2/"
RESOURCE_PREFIX = API_PREFIX + "project/webapp/resource/dictionaries/"


def _build_service(config, handler, limiter, sleep):
    client = httpx.AsyncClient(
        base_url=config.api_url,
        auth=httpx.BasicAuth(config.login, config.password),
        transport=httpx.MockTransport(handler),
    )
    transport = HttpxTransport(config, client=client)
    return TranslationService(RateLimitedExecutor(transport, config, rate_limiter=limiter, sleep=sleep), config), client


def test_language_code_conversion():
    assert transifex_language_code_to_iso("pt_BR") == "pt-BR"
    assert iso_language_code_to_transifex("pt-BR") == "pt_BR"
    assert iso_language_code_to_transifex("de") == "de"


@pytest.mark.asyncio
async def test_get_content_decodes_embedded_json(app_config, fast_limiter, recording_sleep):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"content": json.dumps({"hello": "hello"})})

    service, client = _build_service(app_config, handler, fast_limiter, recording_sleep)
    try:
        content = await service.get_content()
    finally:
        await client.aclose()

    assert content == {"hello": "hello"}
    assert seen[0].url.path == RESOURCE_PREFIX + "content/"
    assert seen[0].headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_get_content_rejects_malformed_content(app_config, fast_limiter, recording_sleep):
    def handler(request):
        return httpx.Response(200, json={"content": json.dumps({"hello": ["not", "a", "string"]})})

    service, client = _build_service(app_config, handler, fast_limiter, recording_sleep)
    try:
        with pytest.raises(ContentFormatError):
            await service.get_content()
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_get_content_rejects_non_json_body(app_config, fast_limiter, recording_sleep):
    def handler(request):
        return httpx.Response(200, text="<html>Bad gateway</html>")

    service, client = _build_service(app_config, handler, fast_limiter, recording_sleep)
    try:
        with pytest.raises(ContentFormatError, match="Expected a JSON object"):
            await service.get_content()
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_put_content_sends_json_string(app_config, fast_limiter, recording_sleep):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"strings_added": 1})

    service, client = _build_service(app_config, handler, fast_limiter, recording_sleep)
    try:
        await service.put_content({"hello": "hello"})
    finally:
        await client.aclose()

    assert bodies == [{"content": json.dumps({"hello": "hello"})}]


@pytest.mark.asyncio
async def test_resource_strings_are_addressed_by_hash(app_config, fast_limiter, recording_sleep):
    known_hash = generate_hash("Sign in")
    puts = {}

    def handler(request):
        string_hash = request.url.path.rsplit("/", 1)[-1]
        if request.method == "PUT":
            puts[string_hash] = json.loads(request.content)
            return httpx.Response(200, text="OK")
        if string_hash == known_hash:
            return httpx.Response(200, json={"comment": "", "character_limit": None, "tags": ["main"]})
        return httpx.Response(404, text="Not Found")

    service, client = _build_service(app_config, handler, fast_limiter, recording_sleep)
    try:
        records = await service.get_resource_strings(["Sign in", "Not indexed yet"])
        await service.put_resource_strings([ResourceString(token="Sign in", tags=("main", "admin"))])
    finally:
        await client.aclose()

    assert records == [ResourceString(token="Sign in", tags=("main",)), None]
    assert puts == {known_hash: {"comment": "", "character_limit": None, "tags": ["main", "admin"]}}


@pytest.mark.asyncio
async def test_rate_limited_response_is_retried(app_config, fast_limiter, recording_sleep):
    responses = [
        httpx.Response(429, headers={"Retry-After": "1"}, text="Throttled"),
        httpx.Response(200, json={"content": "{}"}),
    ]

    service, client = _build_service(app_config, lambda request: responses.pop(0), fast_limiter, recording_sleep)
    try:
        assert await service.get_content() == {}
    finally:
        await client.aclose()

    assert recording_sleep.delays == [6]


@pytest.mark.asyncio
async def test_server_error_surfaces_as_request_failed(app_config, fast_limiter, recording_sleep):
    service, client = _build_service(
        app_config, lambda request: httpx.Response(500, text="Server Error"), fast_limiter, recording_sleep
    )
    try:
        with pytest.raises(RequestFailed) as exc_info:
            await service.put_content({})
    finally:
        await client.aclose()

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_connection_error_surfaces_as_request_failed(app_config, fast_limiter, recording_sleep):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    service, client = _build_service(app_config, handler, fast_limiter, recording_sleep)
    try:
        with pytest.raises(RequestFailed, match="connection refused"):
            await service.get_content()
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_project_language_queries(app_config, fast_limiter, recording_sleep):
    def handler(request):
        path = request.url.path
        if path == API_PREFIX + "project/webapp/languages":
            return httpx.Response(200, json=[{"language_code": "pt_BR"}, {"language_code": "de"}])
        if path.startswith(RESOURCE_PREFIX + "translation/"):
            assert request.url.params.get("mode") == "reviewed"
            code = path.rstrip("/").rsplit("/", 1)[-1]
            return httpx.Response(200, json={"content": f"content-{code}", "mimetype": "application/json"})
        if path == API_PREFIX + "project/webapp/language/pt_BR":
            return httpx.Response(200, json={
                "total_segments": 10,
                "translated_segments": 8,
                "reviewed_segments": 5,
                "translated_words": 42,
            })
        if path == API_PREFIX + "languages/":
            return httpx.Response(200, json=[{"code": "pt_BR", "name": "Portuguese (Brazil)"}])
        return httpx.Response(404)

    service, client = _build_service(app_config, handler, fast_limiter, recording_sleep)
    try:
        languages = await service.get_project_languages()
        translations = await service.get_translated_resources()
        single = await service.get_translated_resource("pt-BR")
        stats = await service.get_translation_stats("pt-BR")
        info = await service.get_languages_info()
    finally:
        await client.aclose()

    assert languages == [{"code": "pt-BR"}, {"code": "de"}]
    assert translations == [
        {"lang": "pt-BR", "content": "content-pt_BR"},
        {"lang": "de", "content": "content-de"},
    ]
    assert single == "content-pt_BR"
    assert stats == {
        "totalTokensCount": 10,
        "translatedTokensCount": 8,
        "reviewedTokensCount": 5,
        "translatedWordsCount": 42,
    }
    assert info == [{"code": "pt-BR", "name": "Portuguese (Brazil)"}]
