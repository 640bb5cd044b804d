"""
Shared fixtures for provider gateway tests.

HTTP is stubbed with ``httpx.MockTransport``; nothing touches the network.
"""

import asyncio
import json

import httpx
import pytest

from provider_gateway.core.config import GatewayConfig


def sse_body(events):
    """Encode event dicts as an SSE body, one ``data:`` line per event."""
    lines = [f"data: {json.dumps(event)}\n\n" for event in events]
    return "".join(lines).encode("utf-8")


HELLO_EVENTS = [
    {"type": "message_start", "message": {"usage": {"input_tokens": 10, "output_tokens": 0}}},
    {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hel"}},
    {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "lo"}},
    {"type": "message_delta", "usage": {"input_tokens": 10, "output_tokens": 2}},
    {"type": "message_stop"},
]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClaudeBackend:
    """
    In-memory stand-in for the claude.ai endpoints.

    Records every request and creates sequential conversation ids.
    Set ``completion_status`` to make the completion endpoint fail, or
    ``completion_stall`` to stop the body after its first event for that
    many seconds.
    """

    def __init__(self, org_id: str = "org-1"):
        self.org_id = org_id
        self.organizations = [{"uuid": org_id, "name": "Personal"}]
        self.requests = []
        self.created = []
        self.completion_bodies = []
        self.completion_status = 200
        self.completion_events = HELLO_EVENTS
        self.completion_delay = 0.0
        self.completion_stall = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        conversations = f"/api/organizations/{self.org_id}/chat_conversations"

        if request.method == "GET" and path == "/api/organizations":
            return httpx.Response(200, json=self.organizations)

        if request.method == "POST" and path == conversations:
            body = json.loads(request.content)
            conversation = {
                "uuid": f"conv-{len(self.created) + 1}",
                "name": body["name"],
                "model": body["model"],
            }
            self.created.append(body)
            return httpx.Response(201, json=conversation)

        if request.method == "POST" and path.endswith("/completion"):
            self.completion_bodies.append(json.loads(request.content))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                if self.completion_delay:
                    await asyncio.sleep(self.completion_delay)
            finally:
                self.in_flight -= 1
            if self.completion_status != 200:
                return httpx.Response(self.completion_status, text="upstream failure")
            if self.completion_stall:
                return httpx.Response(
                    200,
                    content=self._stalled_body(),
                    headers={"content-type": "text/event-stream"},
                )
            return httpx.Response(
                200,
                content=sse_body(self.completion_events),
                headers={"content-type": "text/event-stream"},
            )

        if request.method == "DELETE" and path.startswith(conversations):
            return httpx.Response(204)

        return httpx.Response(404, text="not found")

    async def _stalled_body(self):
        yield sse_body(self.completion_events[:1])
        await asyncio.sleep(self.completion_stall)
        yield sse_body(self.completion_events[1:])


@pytest.fixture
def gateway_config():
    """Default configuration, independent of the process environment."""
    return GatewayConfig()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def claude_backend():
    return FakeClaudeBackend()


@pytest.fixture
def hello_events():
    """Events that stream "Hello" with 10 input and 2 output tokens."""
    return list(HELLO_EVENTS)


@pytest.fixture
def encode_sse():
    return sse_body
