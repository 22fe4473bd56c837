"""
Client-side view of the signed-in account's claims.

A ``ClaimsSession`` belongs to exactly one client session. It reads the
caller's claims out of the current ID token and keeps them in memory until
``refresh()`` forces the provider to reissue the token. Server-side claims
changes are not pushed; they become visible after the next refresh.
"""
import asyncio
import base64
import json
import time
from enum import Enum
from typing import Optional, Dict, Any, Protocol

import httpx

from ..utils.logger import get_logger
from config.settings import firebase_config

_SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    READY = "ready"


class TokenSource(Protocol):
    """Issues ID tokens for the signed-in account."""

    async def get_id_token(self, force_refresh: bool = False) -> Optional[str]:
        """Current ID token, or None when no account is signed in."""
        ...


def _b64url_decode(data: str) -> bytes:
    padding = '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def decode_token_claims(id_token: str) -> Dict[str, Any]:
    """
    Decode the payload of an ID token without verifying its signature.

    Only for display and routing decisions on the client; the server always
    verifies tokens before trusting their claims.
    """
    try:
        _, payload_b64, _ = id_token.split(".")
    except ValueError:
        raise ValueError("Invalid token format")
    payload = json.loads(_b64url_decode(payload_b64).decode())
    if not isinstance(payload, dict):
        raise ValueError("Invalid token payload")
    return payload


class SecureTokenSource:
    """
    Token source backed by the Firebase secure token endpoint.

    Holds the refresh token of a signed-in account and exchanges it for a
    fresh ID token when the cached one expired or a refresh is forced.
    """

    def __init__(
        self,
        refresh_token: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        expiry_margin_seconds: int = 60,
    ):
        self.logger = get_logger("secure_token_source")
        self._refresh_token = refresh_token
        self._api_key = api_key or firebase_config.web_api_key
        self._client = client
        self._id_token: Optional[str] = None
        self._expires_at = 0.0
        self._margin = expiry_margin_seconds

    async def get_id_token(self, force_refresh: bool = False) -> Optional[str]:
        if not self._refresh_token:
            return None
        if not force_refresh and self._id_token and time.time() < self._expires_at - self._margin:
            return self._id_token

        client = self._client or httpx.AsyncClient(timeout=10.0)
        try:
            response = await client.post(
                _SECURE_TOKEN_URL,
                params={"key": self._api_key},
                data={"grant_type": "refresh_token", "refresh_token": self._refresh_token},
            )
            response.raise_for_status()
            token_data = response.json()
        except httpx.HTTPStatusError as exc:
            self.logger.error("Token refresh rejected", status=exc.response.status_code)
            raise
        finally:
            if self._client is None:
                await client.aclose()

        self._id_token = token_data["id_token"]
        self._refresh_token = token_data.get("refresh_token", self._refresh_token)
        self._expires_at = time.time() + int(token_data.get("expires_in", 3600))
        return self._id_token

    def sign_out(self):
        self._refresh_token = ""
        self._id_token = None
        self._expires_at = 0.0


class ClaimsSession:
    """Unauthenticated -> Loading -> Ready(claims) state machine."""

    def __init__(self, token_source: TokenSource):
        self.logger = get_logger("claims_session")
        self._source = token_source
        self._state = SessionState.UNAUTHENTICATED
        self._claims: Optional[Dict[str, Any]] = None
        self._inflight: Optional[asyncio.Task] = None
        self._inflight_forced = False
        self._generation = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def claims(self) -> Optional[Dict[str, Any]]:
        """Claims of the Ready state, None otherwise."""
        return self._claims if self._state == SessionState.READY else None

    async def load(self) -> Optional[Dict[str, Any]]:
        """Decode claims from the current token; joins any fetch in flight."""
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)
        return await self._start(force_refresh=False)

    async def refresh(self) -> Optional[Dict[str, Any]]:
        """
        Force the provider to reissue the token and re-decode the claims.

        Concurrent callers share one provider round-trip.
        """
        if self._inflight is not None and not self._inflight.done():
            if self._inflight_forced:
                return await asyncio.shield(self._inflight)
            # A cached read is in flight; let it land, then force a reissue
            await asyncio.shield(self._inflight)
            if self._inflight is not None and not self._inflight.done() and self._inflight_forced:
                return await asyncio.shield(self._inflight)
        return await self._start(force_refresh=True)

    def sign_out(self):
        """Drop cached claims; any fetch still in flight is discarded."""
        self._generation += 1
        self._state = SessionState.UNAUTHENTICATED
        self._claims = None

    async def _start(self, force_refresh: bool) -> Optional[Dict[str, Any]]:
        task = asyncio.ensure_future(self._fetch(force_refresh, self._generation))
        self._inflight = task
        self._inflight_forced = force_refresh
        try:
            return await asyncio.shield(task)
        finally:
            if self._inflight is task and task.done():
                self._inflight = None
                self._inflight_forced = False

    async def _fetch(self, force_refresh: bool, generation: int) -> Optional[Dict[str, Any]]:
        previous_state, previous_claims = self._state, self._claims
        if generation == self._generation:
            self._state = SessionState.LOADING
        try:
            token = await self._source.get_id_token(force_refresh=force_refresh)
            claims = decode_token_claims(token) if token else None
        except Exception as e:
            self.logger.error("Failed to fetch claims", error=str(e), forced=force_refresh)
            if generation == self._generation:
                self._state, self._claims = previous_state, previous_claims
            raise

        if generation != self._generation:
            return None
        if claims is None:
            self._state, self._claims = SessionState.UNAUTHENTICATED, None
        else:
            self._state, self._claims = SessionState.READY, claims
            self.logger.debug("Claims loaded", uid=claims.get("user_id") or claims.get("sub"),
                              forced=force_refresh)
        return self._claims
