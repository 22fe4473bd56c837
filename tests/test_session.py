"""
Tests for the client-side claims session.
"""
import asyncio
import base64
import json

import httpx
import pytest

from src.claims.session import ClaimsSession, SessionState, SecureTokenSource, decode_token_claims


def make_token(claims: dict) -> str:
    def encode(part: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(part).encode()).rstrip(b"=").decode()
    return f"{encode({'alg': 'RS256'})}.{encode(claims)}.signature"


class GatedTokenSource:
    """Token source that blocks until released and counts provider round-trips."""

    def __init__(self, claims_sequence):
        self.claims_sequence = list(claims_sequence)
        self.calls = []
        self.release = asyncio.Event()

    async def get_id_token(self, force_refresh=False):
        self.calls.append(force_refresh)
        await self.release.wait()
        claims = self.claims_sequence[min(len(self.calls), len(self.claims_sequence)) - 1]
        return make_token(claims) if claims is not None else None


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def test_decode_token_claims():
    assert decode_token_claims(make_token({'role': 'staff'})) == {'role': 'staff'}


def test_decode_rejects_malformed_token():
    with pytest.raises(ValueError):
        decode_token_claims("not-a-jwt")


@pytest.mark.asyncio
async def test_load_transitions_through_loading_to_ready():
    source = GatedTokenSource([{'role': 'staff', 'user_id': 'u1'}])
    session = ClaimsSession(source)
    assert session.state == SessionState.UNAUTHENTICATED

    task = asyncio.create_task(session.load())
    await settle()
    assert session.state == SessionState.LOADING
    assert session.claims is None

    source.release.set()
    claims = await task

    assert session.state == SessionState.READY
    assert claims == {'role': 'staff', 'user_id': 'u1'}
    assert session.claims == claims


@pytest.mark.asyncio
async def test_no_token_means_unauthenticated():
    source = GatedTokenSource([None])
    source.release.set()
    session = ClaimsSession(source)

    assert await session.load() is None
    assert session.state == SessionState.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_concurrent_refresh_shares_one_round_trip():
    source = GatedTokenSource([{'role': 'admin'}])
    session = ClaimsSession(source)

    first = asyncio.create_task(session.refresh())
    second = asyncio.create_task(session.refresh())
    await settle()
    source.release.set()
    results = await asyncio.gather(first, second)

    assert source.calls == [True]
    assert results[0] == results[1] == {'role': 'admin'}


@pytest.mark.asyncio
async def test_refresh_replaces_ready_value():
    source = GatedTokenSource([{'permissions': []}, {'permissions': ['read_users']}])
    source.release.set()
    session = ClaimsSession(source)

    await session.load()
    await session.refresh()

    assert session.claims == {'permissions': ['read_users']}
    assert source.calls == [False, True]


@pytest.mark.asyncio
async def test_sign_out_discards_inflight_fetch():
    source = GatedTokenSource([{'role': 'staff'}])
    session = ClaimsSession(source)

    task = asyncio.create_task(session.load())
    await settle()
    session.sign_out()
    source.release.set()

    assert await task is None
    assert session.state == SessionState.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_claims():
    class FlakySource:
        def __init__(self):
            self.calls = 0

        async def get_id_token(self, force_refresh=False):
            self.calls += 1
            if force_refresh:
                raise RuntimeError("network down")
            return make_token({'role': 'staff'})

    session = ClaimsSession(FlakySource())
    await session.load()

    with pytest.raises(RuntimeError):
        await session.refresh()

    assert session.state == SessionState.READY
    assert session.claims == {'role': 'staff'}


@pytest.mark.asyncio
async def test_secure_token_source_caches_until_forced():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={
            'id_token': make_token({'n': len(requests)}),
            'refresh_token': 'rt-2',
            'expires_in': '3600',
        })

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        source = SecureTokenSource("rt-1", api_key="key", client=client)

        first = await source.get_id_token()
        cached = await source.get_id_token()
        forced = await source.get_id_token(force_refresh=True)

    assert first == cached
    assert forced != first
    assert len(requests) == 2
    assert b"refresh_token=rt-2" in requests[1].content


@pytest.mark.asyncio
async def test_secure_token_source_signed_out_returns_none():
    source = SecureTokenSource("rt-1", api_key="key")
    source.sign_out()

    assert await source.get_id_token() is None
