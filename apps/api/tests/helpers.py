"""In-memory doubles for the Supabase REST client and the GoTrue client."""
from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from kidhub.auth_store import AuthStore
from kidhub.errors import AuthError, SupabaseError
from kidhub.identity import AuthChangeEvent, AuthResponse, AuthUser, Session, Subscription
from kidhub.storage import MemoryStorage

CONTROL_PARAMS = {"select", "limit", "order", "or", "on_conflict"}


def _matches(row: Dict[str, Any], params: Dict[str, Any]) -> bool:
    for key, value in params.items():
        if key in CONTROL_PARAMS or not isinstance(value, str):
            continue
        actual = row.get(key)
        if value.startswith("eq."):
            if str(actual) != value[3:]:
                return False
        elif value.startswith("in.("):
            if str(actual) not in value[4:-1].split(","):
                return False
        elif value.startswith("ilike."):
            needle = value[len("ilike."):].strip("*").lower()
            if needle not in str(actual or "").lower():
                return False
    return True


class FakeSupabase:
    """Tables held in memory, filtered the way PostgREST filters ``eq``/``in``/``ilike``."""

    def __init__(
        self,
        *,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        fail: Optional[Dict[str, set]] = None,
        persist_upserts: bool = True,
    ):
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            table: [dict(row) for row in rows] for table, rows in (tables or {}).items()
        }
        self.fail = fail or {}
        self.persist_upserts = persist_upserts
        self.calls: List[tuple] = []

    def _check(self, action: str, table: str) -> None:
        if table in self.fail.get(action, set()):
            raise SupabaseError(f"{action} (table={table})", 500, "boom")

    def calls_for(self, action: str, table: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == action and call[1] == table]

    async def select(self, table, params):
        self.calls.append(("select", table, params))
        self._check("select", table)
        rows = [copy.deepcopy(row) for row in self.tables.get(table, []) if _matches(row, params)]
        order = params.get("order")
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda row: row.get(column) or "", reverse=direction == "desc")
        limit = params.get("limit")
        return rows[:limit] if limit else rows

    async def select_one(self, table, params):
        rows = await self.select(table, {**params, "limit": 1})
        return rows[0] if rows else None

    async def count(self, table, params):
        self.calls.append(("count", table, params))
        self._check("count", table)
        return len([row for row in self.tables.get(table, []) if _matches(row, params)])

    async def insert(self, table, payload, *, params=None):
        self.calls.append(("insert", table, payload, params))
        self._check("insert", table)
        rows = payload if isinstance(payload, list) else [payload]
        stored = []
        for row in rows:
            row = {"id": str(uuid4()), **row}
            self.tables.setdefault(table, []).append(row)
            stored.append(copy.deepcopy(row))
        return stored

    async def upsert(self, table, payload, *, on_conflict):
        self.calls.append(("upsert", table, payload, on_conflict))
        self._check("upsert", table)
        rows = payload if isinstance(payload, list) else [payload]
        if not self.persist_upserts:
            return []
        stored = []
        existing = self.tables.setdefault(table, [])
        for row in rows:
            match = next((item for item in existing if item.get(on_conflict) == row.get(on_conflict)), None)
            if match is None:
                existing.append(dict(row))
                match = existing[-1]
            else:
                match.update(row)
            stored.append(copy.deepcopy(match))
        return stored

    async def update(self, table, payload, params):
        self.calls.append(("update", table, payload, params))
        self._check("update", table)
        updated = []
        for row in self.tables.get(table, []):
            if _matches(row, params):
                row.update(payload)
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, params):
        self.calls.append(("delete", table, params))
        self._check("delete", table)
        self.tables[table] = [row for row in self.tables.get(table, []) if not _matches(row, params)]


def make_session(user: AuthUser) -> Session:
    return Session(access_token=f"token-{user.id}", refresh_token="refresh", user=user)


class FakeAuth:
    """Stands in for :class:`kidhub.identity.SupabaseAuth`; events fire synchronously."""

    def __init__(
        self,
        *,
        user: Optional[AuthUser] = None,
        signed_in: bool = False,
        passwords: Optional[Dict[str, str]] = None,
        sign_out_error: Optional[Exception] = None,
        session_error: Optional[Exception] = None,
    ):
        self.user = user
        self.session: Optional[Session] = make_session(user) if user and signed_in else None
        self.passwords = dict(passwords or {})
        self.sign_out_error = sign_out_error
        self.session_error = session_error
        self.handlers: Dict[str, Callable] = {}
        self.calls: List[tuple] = []
        self.sign_up_data: Optional[Dict[str, Any]] = None

    def emit(self, event: AuthChangeEvent, session: Optional[Session] = None) -> None:
        for handler in list(self.handlers.values()):
            handler(event, session)

    async def get_session(self):
        self.calls.append(("get_session",))
        if self.session_error:
            raise self.session_error
        return self.session

    async def get_user(self):
        self.calls.append(("get_user",))
        return self.session.user if self.session else None

    async def sign_in_with_password(self, email, password):
        self.calls.append(("sign_in", email))
        if self.passwords.get(email) != password or self.user is None:
            raise AuthError("Invalid login credentials", code="invalid_credentials", status=400)
        self.session = make_session(self.user)
        self.emit(AuthChangeEvent.SIGNED_IN, self.session)
        return AuthResponse(user=self.user, session=self.session)

    async def sign_up(self, email, password, *, data=None, email_redirect_to=None):
        self.calls.append(("sign_up", email, email_redirect_to))
        if email in self.passwords:
            raise AuthError("User already registered", code="user_already_exists", status=422)
        self.sign_up_data = data
        self.user = AuthUser(id=str(uuid4()), email=email, user_metadata=data or {})
        self.passwords[email] = password
        return AuthResponse(user=self.user, session=None)

    async def sign_out(self):
        self.calls.append(("sign_out",))
        if self.sign_out_error:
            raise self.sign_out_error
        self.session = None
        self.emit(AuthChangeEvent.SIGNED_OUT, None)

    def on_auth_state_change(self, handler):
        subscription_id = uuid4().hex
        self.handlers[subscription_id] = handler
        return Subscription(id=subscription_id, unsubscribe=lambda: self.handlers.pop(subscription_id, None))


GUARDIAN_ID = "11111111-1111-1111-1111-111111111111"
ORGANIZER_ID = "22222222-2222-2222-2222-222222222222"


def guardian_user(user_id: str = GUARDIAN_ID, email: str = "sarah@example.com") -> AuthUser:
    return AuthUser(
        id=user_id,
        email=email,
        user_metadata={"userType": "guardian", "firstName": "Sarah", "lastName": "Lee"},
    )


def organizer_user(user_id: str = ORGANIZER_ID, email: str = "club@example.com") -> AuthUser:
    return AuthUser(
        id=user_id,
        email=email,
        user_metadata={"userType": "organizer", "organizationName": "Sofia Sports Club"},
    )


def guardian_row(user_id: str = GUARDIAN_ID, **overrides: Any) -> Dict[str, Any]:
    row = {
        "id": user_id,
        "email": "sarah@example.com",
        "first_name": "Sarah",
        "last_name": "Lee",
        "phone": "+359898788555",
        "created_at": "2025-01-01T00:00:00+00:00",
    }
    row.update(overrides)
    return row


def organizer_row(user_id: str = ORGANIZER_ID, **overrides: Any) -> Dict[str, Any]:
    row = {
        "id": user_id,
        "email": "club@example.com",
        "organization_name": "Sofia Sports Club",
        "contact_name": "Ivan Petrov",
        "description": "Weekend football for kids",
        "website": "https://club.example.com",
        "phone": "+359888123456",
    }
    row.update(overrides)
    return row


def make_store(
    auth: FakeAuth,
    supabase: FakeSupabase,
    *,
    storage: Optional[MemoryStorage] = None,
    placeholder: bool = False,
    redirects: Optional[List[str]] = None,
) -> AuthStore:
    return AuthStore(
        auth,
        supabase,
        storage=storage if storage is not None else MemoryStorage(),
        placeholder=placeholder,
        email_redirect_to="http://localhost:5173",
        redirect=redirects.append if redirects is not None else None,
    )
