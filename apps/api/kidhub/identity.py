"""GoTrue (Supabase Auth) client holding the local session and emitting auth events."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import httpx
import jwt
from pydantic import BaseModel, Field, ValidationError

from .errors import AuthError
from .storage import StateStorage, read_json, write_json

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "sb-auth-token"
EXPIRY_MARGIN_SECONDS = 10


class AuthChangeEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    INITIAL_SESSION = "INITIAL_SESSION"


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[int] = None
    user: AuthUser


class AuthResponse(BaseModel):
    user: Optional[AuthUser] = None
    session: Optional[Session] = None


AuthStateHandler = Callable[[AuthChangeEvent, Optional[Session]], None]


@dataclass
class Subscription:
    id: str
    unsubscribe: Callable[[], None]


def _token_expiry(token: str) -> Optional[int]:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return int(exp) if isinstance(exp, (int, float)) else None


def _error_from_response(resp: httpx.Response) -> AuthError:
    try:
        body = resp.json() if resp.content else {}
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or body.get("error")
        or resp.text
        or f"Auth request failed with status {resp.status_code}"
    )
    code = body.get("error_code") or body.get("error")
    return AuthError(str(message), code=code, status=resp.status_code)


class SupabaseAuth:
    """Minimal GoTrue client in the shape of supabase-js ``auth``.

    The session lives in memory and is mirrored to ``storage`` so it survives
    process restarts. Listeners are plain callables invoked synchronously when
    the session changes; new listeners get ``INITIAL_SESSION`` on the next
    loop tick.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        storage: Optional[StateStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self._storage = storage
        self._transport = transport
        self._clock = clock
        self._listeners: Dict[str, AuthStateHandler] = {}
        self._session: Optional[Session] = self._load_session()

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    def _load_session(self) -> Optional[Session]:
        if self._storage is None:
            return None
        stored = read_json(self._storage, SESSION_STORAGE_KEY)
        if not stored:
            return None
        try:
            return Session.model_validate(stored)
        except ValidationError:
            logger.warning("discarding malformed stored auth session")
            return None

    def _save_session(self, session: Optional[Session]) -> None:
        self._session = session
        if self._storage is None:
            return
        if session is None:
            self._storage.remove_item(SESSION_STORAGE_KEY)
        else:
            write_json(self._storage, SESSION_STORAGE_KEY, session.model_dump(mode="json"))

    def _session_from_payload(self, data: Dict[str, Any]) -> Session:
        access_token = data["access_token"]
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = int(self._clock()) + int(data["expires_in"])
        if expires_at is None:
            expires_at = _token_expiry(access_token)
        return Session(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type", "bearer"),
            expires_at=expires_at,
            user=AuthUser.model_validate(data["user"]),
        )

    def _is_expired(self, session: Session) -> bool:
        if session.expires_at is None:
            return False
        return session.expires_at <= self._clock() + EXPIRY_MARGIN_SECONDS

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> httpx.Response:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                return await client.request(
                    method,
                    f"{self.base_url}/auth/v1/{path}",
                    params=params,
                    json=json,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise AuthError(str(exc) or "Auth request failed", code="network_error") from exc

    def on_auth_state_change(self, handler: AuthStateHandler) -> Subscription:
        subscription_id = uuid4().hex
        self._listeners[subscription_id] = handler

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            loop.call_soon(self._notify_one, subscription_id, AuthChangeEvent.INITIAL_SESSION)

        def unsubscribe() -> None:
            self._listeners.pop(subscription_id, None)

        return Subscription(id=subscription_id, unsubscribe=unsubscribe)

    def _notify_one(self, subscription_id: str, event: AuthChangeEvent) -> None:
        handler = self._listeners.get(subscription_id)
        if handler is None:
            return
        try:
            handler(event, self._session)
        except Exception:
            logger.exception("auth state listener failed", extra={"event": event.value})

    def _emit(self, event: AuthChangeEvent) -> None:
        logger.debug("auth event", extra={"event": event.value, "has_session": bool(self._session)})
        for subscription_id in list(self._listeners):
            self._notify_one(subscription_id, event)

    async def get_session(self) -> Optional[Session]:
        session = self._session
        if session is None:
            return None
        if not self._is_expired(session):
            return session
        if not session.refresh_token:
            self._save_session(None)
            return None
        try:
            return await self.refresh_session()
        except AuthError as exc:
            logger.warning("session refresh failed", extra={"status": exc.status, "code": exc.code})
            self._save_session(None)
            self._emit(AuthChangeEvent.SIGNED_OUT)
            return None

    async def get_user(self) -> Optional[AuthUser]:
        session = await self.get_session()
        if session is None:
            return None
        resp = await self._request("GET", "user", token=session.access_token)
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        return AuthUser.model_validate(resp.json())

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        resp = await self._request(
            "POST",
            "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        session = self._session_from_payload(resp.json())
        self._save_session(session)
        self._emit(AuthChangeEvent.SIGNED_IN)
        return AuthResponse(user=session.user, session=session)

    async def sign_up(
        self,
        email: str,
        password: str,
        *,
        data: Optional[Dict[str, Any]] = None,
        email_redirect_to: Optional[str] = None,
    ) -> AuthResponse:
        params = {"redirect_to": email_redirect_to} if email_redirect_to else None
        resp = await self._request(
            "POST",
            "signup",
            params=params,
            json={"email": email, "password": password, "data": data or {}},
        )
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        body = resp.json()
        if "access_token" in body:
            session = self._session_from_payload(body)
            self._save_session(session)
            self._emit(AuthChangeEvent.SIGNED_IN)
            return AuthResponse(user=session.user, session=session)
        # Email confirmation pending: GoTrue returns the bare user.
        user_payload = body.get("user", body)
        return AuthResponse(user=AuthUser.model_validate(user_payload), session=None)

    async def sign_out(self) -> None:
        session = self._session
        if session is not None:
            resp = await self._request("POST", "logout", token=session.access_token)
            # 401/404 mean the token is already gone server side.
            if resp.status_code >= 400 and resp.status_code not in (401, 403, 404):
                raise _error_from_response(resp)
        self._save_session(None)
        self._emit(AuthChangeEvent.SIGNED_OUT)

    async def update_user(self, attributes: Dict[str, Any]) -> AuthUser:
        session = await self.get_session()
        if session is None:
            raise AuthError("Auth session missing!", code="session_not_found", status=400)
        resp = await self._request("PUT", "user", json=attributes, token=session.access_token)
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        user = AuthUser.model_validate(resp.json())
        self._save_session(session.model_copy(update={"user": user}))
        self._emit(AuthChangeEvent.USER_UPDATED)
        return user

    async def refresh_session(self) -> Session:
        current = self._session
        if current is None or not current.refresh_token:
            raise AuthError("Auth session missing!", code="session_not_found", status=400)
        resp = await self._request(
            "POST",
            "token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": current.refresh_token},
        )
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        session = self._session_from_payload(resp.json())
        self._save_session(session)
        self._emit(AuthChangeEvent.TOKEN_REFRESHED)
        return session
