"""
Shared fixtures: a scripted claim API behind httpx.MockTransport.

Routes are registered per (method, path). A route holds a queue of
responses; each request pops the next one and the last response repeats.
"""

import json
import logging
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from src.client.api import ClaimApiClient

logging.basicConfig(level=logging.INFO)

API_BASE = "http://api.test"
STORAGE_URL = "http://storage.test/bucket/object"

Responder = Union[tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


def envelope(data: Any) -> dict:
    return {"success": True, "data": data}


def failure(error: str) -> dict:
    return {"success": False, "error": error}


class FakeClaimApi:
    """Scripted stand-in for the claim API and the storage bucket."""

    def __init__(self):
        self.routes: dict[tuple[str, str], list[Responder]] = {}
        self.requests: list[httpx.Request] = []
        # Raw PUTs to storage always succeed unless overridden
        self.on("PUT", "/bucket/object", (200, None))

    def on(self, method: str, path: str, *responses: Responder) -> "FakeClaimApi":
        self.routes[(method, path)] = list(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json=failure("Not found"))
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(responder):
            return responder(request)
        status, body = responder
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        ]

    def body(self, request: httpx.Request) -> dict:
        return json.loads(request.content) if request.content else {}

    def client(self) -> ClaimApiClient:
        return ClaimApiClient(
            base_url=API_BASE,
            token="owner-token",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def api() -> FakeClaimApi:
    return FakeClaimApi()


@pytest.fixture
async def client(api):
    client = api.client()
    yield client
    await client.aclose()


def make_claim(**overrides) -> dict:
    claim = {
        "id": "claim-1",
        "status": "open",
        "loss_type": "hail",
        "current_step": 1,
        "steps_completed": [],
        "deductible": 5000.0,
    }
    claim.update(overrides)
    return claim
