"""Resilient Anthropic Client — retry and error mapping around messages.create.

Zero base delay keeps the backoff sleeps at 0ms.
"""

import httpx
import pytest
from anthropic import AuthenticationError, InternalServerError, RateLimitError

from escrow_engine.core.errors import ExternalServiceError
from escrow_engine.infrastructure.anthropic_client import ResilientAnthropicClient

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(cls, status_code, headers=None):
    response = httpx.Response(status_code, headers=headers or {}, request=_REQUEST)
    return cls("boom", response=response, body=None)


class _Usage:
    input_tokens = 10
    output_tokens = 5


class _Message:
    usage = _Usage()
    content = []


class _Messages:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def create(self, **kwargs):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _FakeSdk:
    def __init__(self, outcomes):
        self.messages = _Messages(outcomes)


def _client(outcomes, max_retries=2):
    client = ResilientAnthropicClient(
        api_key="sk-ant-test", max_retries=max_retries, base_delay_ms=0,
    )
    client.client = _FakeSdk(outcomes)
    return client


async def _call(client):
    return await client.create_message(
        model="claude-test", max_tokens=10, system="s",
        messages=[{"role": "user", "content": "hi"}],
    )


async def test_success_first_try():
    client = _client([_Message()])
    assert isinstance(await _call(client), _Message)
    assert client.client.messages.calls == 1


async def test_transient_error_retried():
    client = _client([_status_error(InternalServerError, 500), _Message()])
    assert isinstance(await _call(client), _Message)
    assert client.client.messages.calls == 2


async def test_rate_limit_exhausts_retries():
    errors = [_status_error(RateLimitError, 429) for _ in range(3)]
    client = _client(errors, max_retries=2)
    with pytest.raises(ExternalServiceError) as exc:
        await _call(client)
    assert exc.value.service == "anthropic"
    assert client.client.messages.calls == 3


async def test_client_error_not_retried():
    client = _client([_status_error(AuthenticationError, 401), _Message()])
    with pytest.raises(ExternalServiceError):
        await _call(client)
    assert client.client.messages.calls == 1


def test_retry_after_header_in_milliseconds():
    client = _client([])
    error = _status_error(RateLimitError, 429, headers={"retry-after": "2"})
    assert client._extract_retry_after(error) == 2000
