import asyncio
import json
from typing import Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
from aiolimiter import AsyncLimiter

from txsync.app_config import AppConfig
from txsync.hashing import generate_hash
from txsync.transport import Request, Response

Scripted = Union[Response, Exception]


class FakeTransport:
    """
    In-memory transport that replays scripted responses per (method, path).

    The last scripted response for a route is repeated once the script runs
    out. Every send yields to the event loop ``yields`` times so concurrent
    workers interleave the way they would against a real server.
    """

    def __init__(self, routes: Optional[Dict[Tuple[str, str], List[Scripted]]] = None,
                 handler: Optional[Callable[[Request], Scripted]] = None, yields: int = 1):
        self.routes = {key: list(value) for key, value in (routes or {}).items()}
        self.handler = handler
        self.yields = yields
        self.sent: List[Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, request: Request) -> Response:
        self.sent.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for _ in range(self.yields):
                await asyncio.sleep(0)
            script = self.routes.get((request.method, request.path))
            if script:
                item = script.pop(0) if len(script) > 1 else script[0]
            elif self.handler:
                item = self.handler(request)
            else:
                item = Response(200, {}, None)
            if isinstance(item, Exception):
                raise item
            return item
        finally:
            self.in_flight -= 1


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and only yields briefly."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        for _ in range(5):
            await asyncio.sleep(0)


class FakeTransifexServer:
    """
    Minimal stateful stand-in for the Transifex resource endpoints, served
    through httpx.MockTransport.
    """

    def __init__(self, config: AppConfig, content: Dict[str, str], strings: Dict[str, dict]):
        self.prefix = f"/api/2/project/{config.project_slug}/resource/{config.resource_slug}/"
        self.content = dict(content)
        self.strings = {generate_hash(token): dict(record) for token, record in strings.items()}
        self.content_puts: List[Dict[str, str]] = []
        self.string_puts: Dict[str, dict] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == self.prefix + "content/":
            if request.method == "GET":
                return httpx.Response(200, json={"content": json.dumps(self.content)})
            payload = json.loads(request.content)
            self.content = json.loads(payload["content"])
            self.content_puts.append(self.content)
            return httpx.Response(200, json={"strings_added": 0})
        if path.startswith(self.prefix + "source/"):
            string_hash = path.rsplit("/", 1)[-1]
            if request.method == "GET":
                if string_hash not in self.strings:
                    return httpx.Response(404, text="Not Found")
                return httpx.Response(200, json=self.strings[string_hash])
            payload = json.loads(request.content)
            self.strings[string_hash] = payload
            self.string_puts[string_hash] = payload
            return httpx.Response(200, text="OK")
        return httpx.Response(404, text="Not Found")


@pytest.fixture
def app_config():
    return AppConfig(
        project_slug="webapp",
        resource_slug="dictionaries",
        login="api",
        password="secret",
        obsolete_tag="obsolete",
        skip_tags=frozenset({"remove"}),
        removal_tags=frozenset({"obsolete"}),
        request_concurrency=3,
    )


@pytest.fixture
def fast_limiter():
    return AsyncLimiter(max_rate=10000, time_period=1)


@pytest.fixture
def sample_dictionaries():
    """Scopes as they come out of the application modules."""
    return {
        "main": {
            "test1": "test1",
            "deep nested message": "deep nested message",
        },
        "custom_js_scope": {
            "custom js scope": "custom js scope",
            "test1": "test1",
        },
        "admin": {
            "remove": "remove",
        },
    }


@pytest.fixture
def remote_content():
    return {
        "test": "test",
        "test1": "test1",
        "deep nested message": "deep nested message",
    }


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_server():
    return FakeTransifexServer
