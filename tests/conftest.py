"""
Shared fixtures: a scripted stand-in for the remote auction API, served
through httpx.MockTransport so no network is touched.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from api_client import ApiClient
from auth import Session
from config import Settings
from schemas import User
from storage import MemoryStorage

API_URL = "http://api.test/api"


class FakeApi:
    """Route table keyed by (method, path below /api); records every request"""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, body=None, status=200):
        self.routes[(method, path)] = (status, body)

    def fail(self, method, path, exc):
        self.routes[(method, path)] = exc

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and self._path(r) == path]

    @staticmethod
    def _path(request):
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api") else path

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, self._path(request)))
        if route is None:
            return httpx.Response(404, json={"error": "Not found"})
        if isinstance(route, Exception):
            raise route
        status, body = route
        if body is None:
            return httpx.Response(status)
        if isinstance(body, str):
            return httpx.Response(status, text=body, headers={"content-type": "text/html"})
        return httpx.Response(status, json=body)


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def session(storage):
    return Session(storage)


@pytest.fixture
async def api(fake_api, session):
    async with ApiClient(API_URL, session=session, transport=httpx.MockTransport(fake_api)) as client:
        yield client


@pytest.fixture
def seller():
    return User(id="u1", email="seller@example.com", name="Sally Seller")


@pytest.fixture
def buyer():
    return User(id="u2", email="buyer@example.com", name="Bob Buyer")


@pytest.fixture
def client(fake_api):
    """Front end wired to the fake API"""
    from main import app

    original = app.state.settings
    app.state.transport = httpx.MockTransport(fake_api)
    app.state.settings = Settings(api_url=API_URL)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.state.transport = None
    app.state.settings = original


def login_as(test_client, user, token="test-token"):
    test_client.cookies.set("auth_token", token)
    test_client.cookies.set("user_data", user.model_dump_json(exclude_none=True))
