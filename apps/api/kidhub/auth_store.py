"""Process-wide auth/session state kept in sync with Supabase Auth.

``AuthStore`` owns the current user, the authenticated flag, the user kind
and the loading flag. It reconciles itself against the identity provider on
start, on demand, and whenever the provider pushes a session event. Only the
user, the authenticated flag and the kind are persisted; ``is_loading`` is
always ``True`` on a fresh process so the first reconciliation runs.

Everything runs on one event loop. State read-then-write sequences are only
atomic up to the next ``await``.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError

from .data.profiles import (
    build_profile,
    fetch_children_or_empty,
    fetch_profile_row,
    minimal_profile_row,
    update_profile as update_profile_rows,
    upsert_profile_row,
)
from .errors import AuthError, SupabaseError
from .identity import AuthChangeEvent, AuthResponse, AuthUser, Session, Subscription
from .profile_cache import ProfileCache
from .schemas import (
    PERSISTED_STATE_FIELDS,
    GuardianMetadata,
    OrganizerMetadata,
    SessionState,
    UserKind,
    UserRecord,
    parse_user_metadata,
)
from .storage import StateStorage, read_json, write_json
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)

AUTH_STORAGE_KEY = "auth-storage"

ACTIVE_SESSION_EVENTS = {
    AuthChangeEvent.SIGNED_IN,
    AuthChangeEvent.TOKEN_REFRESHED,
    AuthChangeEvent.USER_UPDATED,
    AuthChangeEvent.INITIAL_SESSION,
}

StateListener = Callable[[SessionState], None]


class AuthProvider(Protocol):
    async def get_session(self) -> Optional[Session]: ...

    async def get_user(self) -> Optional[AuthUser]: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse: ...

    async def sign_up(
        self,
        email: str,
        password: str,
        *,
        data: Optional[Dict[str, Any]] = None,
        email_redirect_to: Optional[str] = None,
    ) -> AuthResponse: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(
        self, handler: Callable[[AuthChangeEvent, Optional[Session]], None]
    ) -> Subscription: ...


def mask_email(email: str) -> str:
    return (email or "")[:3] + "***"


class AuthStore:
    def __init__(
        self,
        auth: AuthProvider,
        supabase: SupabaseClient,
        *,
        cache: Optional[ProfileCache] = None,
        storage: Optional[StateStorage] = None,
        placeholder: bool = False,
        login_path: str = "/login",
        email_redirect_to: Optional[str] = None,
        redirect: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._auth = auth
        self._supabase = supabase
        self.profile_cache = cache if cache is not None else ProfileCache()
        self._storage = storage
        self._placeholder = placeholder
        self._login_path = login_path
        self._email_redirect_to = email_redirect_to
        self._redirect = redirect or self._log_redirect
        self._listeners: List[StateListener] = []
        self._subscription: Optional[Subscription] = None
        self._reconcile_in_flight = False
        self._pending: Optional[asyncio.Task] = None
        self._state = self._restore_state()

    # -- state ------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def supabase(self) -> SupabaseClient:
        return self._supabase

    @property
    def placeholder(self) -> bool:
        return self._placeholder

    @property
    def current_user(self) -> Optional[UserRecord]:
        return self._state.user

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def user_type(self) -> Optional[UserKind]:
        return self._state.user_type

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def reconcile_in_flight(self) -> bool:
        return self._reconcile_in_flight

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _restore_state(self) -> SessionState:
        if self._storage is None:
            return SessionState()
        stored = read_json(self._storage, AUTH_STORAGE_KEY)
        if not stored:
            return SessionState()
        try:
            restored = SessionState.model_validate(
                {
                    "user": stored.get("user"),
                    "isAuthenticated": bool(stored.get("isAuthenticated")),
                    "userType": stored.get("userType"),
                    "isLoading": True,
                }
            )
        except ValidationError:
            logger.warning("discarding unreadable persisted auth state")
            return SessionState()
        if restored.is_authenticated and (restored.user is None or restored.user_type is None):
            return SessionState()
        return restored

    def _persist(self) -> None:
        if self._storage is None:
            return
        snapshot = self._state.model_dump(
            mode="json",
            by_alias=True,
            include=PERSISTED_STATE_FIELDS,
        )
        try:
            write_json(self._storage, AUTH_STORAGE_KEY, snapshot)
        except OSError:
            logger.exception("could not persist auth state")

    def _set(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        self._persist()
        for listener in list(self._listeners):
            listener(self._state)

    def _reset(self) -> None:
        self._set(user=None, user_type=None, is_authenticated=False, is_loading=False)

    def _adopt(self, profile: UserRecord) -> None:
        self._set(
            user=profile,
            user_type=profile.user_type,
            is_authenticated=True,
            is_loading=False,
        )

    def _log_redirect(self, path: str) -> None:
        logger.info("redirecting to login", extra={"path": path})

    # -- lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to provider events once and schedule the initial check."""
        if self._subscription is None and not self._placeholder:
            self._subscription = self._auth.on_auth_state_change(self._handle_auth_event)
        logger.info("Performing initial auth check")
        self._schedule_reconcile()

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        await self.wait_for_reconcile()

    async def wait_for_reconcile(self) -> None:
        while self._pending is not None and not self._pending.done():
            await self._pending

    def _schedule_reconcile(self, *, force_profile_refresh: bool = False) -> bool:
        if self._reconcile_in_flight:
            logger.debug("reconciliation already in flight, dropping trigger")
            return False
        self._reconcile_in_flight = True
        loop = asyncio.get_running_loop()
        self._pending = loop.create_task(self._run_scheduled(force_profile_refresh))
        return True

    async def _run_scheduled(self, force_profile_refresh: bool) -> None:
        try:
            await self.reconcile(force_profile_refresh=force_profile_refresh)
        finally:
            self._reconcile_in_flight = False

    def _handle_auth_event(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        if event == AuthChangeEvent.SIGNED_OUT:
            logger.debug("SIGNED_OUT event detected, resetting auth state")
            self.profile_cache.clear()
            self._reset()
            self._redirect(self._login_path)
            return

        if event not in ACTIVE_SESSION_EVENTS or session is None:
            return

        current = self._state.user
        user_changed = current is None or current.id != session.user.id
        needs_reconcile = (
            user_changed
            or not self._state.is_authenticated
            or event == AuthChangeEvent.USER_UPDATED
        )
        if needs_reconcile:
            logger.debug(
                "auth event triggers reconciliation",
                extra={"event": event.value, "user_changed": user_changed},
            )
            self._schedule_reconcile(
                force_profile_refresh=event == AuthChangeEvent.USER_UPDATED
            )
        elif self._state.is_loading:
            self._set(is_loading=False)

    # -- operations -------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> None:
        logger.info("Attempting to sign in user", extra={"email": mask_email(email)})
        self._set(is_loading=True)
        try:
            if self._placeholder:
                raise AuthError("Sign in is unavailable in demo mode", code="demo_mode")
            await self._auth.sign_in_with_password(email, password)
        except AuthError as exc:
            logger.error(
                "Sign in failed",
                extra={"error_message": exc.message, "error_code": exc.code},
            )
            self._set(is_loading=False)
            raise
        except Exception:
            logger.exception("Unexpected error signing in")
            self._set(is_loading=False)
            return

        logger.info("Sign in successful", extra={"email": mask_email(email)})
        await self.reconcile()

    async def sign_up(
        self,
        email: str,
        password: str,
        user_data: GuardianMetadata | OrganizerMetadata,
    ) -> None:
        kind = user_data.user_type
        logger.info(
            "Attempting to sign up new user",
            extra={"email": mask_email(email), "user_type": kind},
        )
        self._set(is_loading=True)
        try:
            if self._placeholder:
                raise AuthError("Sign up is unavailable in demo mode", code="demo_mode")
            response = await self._auth.sign_up(
                email,
                password,
                data=user_data.model_dump(by_alias=True, exclude_none=True),
                email_redirect_to=self._email_redirect_to,
            )
        except AuthError as exc:
            logger.error(
                "Sign up failed",
                extra={"error_message": exc.message, "error_code": exc.code},
            )
            self._set(is_loading=False)
            raise
        except Exception:
            logger.exception("Unexpected error signing up")
            self._set(is_loading=False)
            return

        user_id = response.user.id if response.user else None
        logger.info("Sign up successful", extra={"user_id": user_id, "user_type": kind})

        if user_id:
            # A SIGNED_IN event may already have provisioned the row; upsert is idempotent.
            try:
                await upsert_profile_row(
                    self._supabase,
                    kind,
                    minimal_profile_row(user_id, email, user_data),
                )
                logger.info("Created profile", extra={"user_id": user_id, "user_type": kind})
            except SupabaseError as exc:
                logger.error(
                    "Error creating profile",
                    extra={"user_id": user_id, "user_type": kind, "status": exc.status_code},
                )

        try:
            await self.sign_in(email, password)
        except AuthError:
            logger.info(
                "Auto sign-in after sign up failed, email confirmation may be pending",
                extra={"email": mask_email(email)},
            )

    async def sign_out(self) -> None:
        logger.info("Attempting to sign out user")
        self._set(is_loading=True)
        try:
            if not self._placeholder:
                await self._auth.sign_out()
        except Exception as exc:
            logger.error("Sign out failed", extra={"error_message": str(exc)})
            self._set(is_loading=False)
            raise
        self.profile_cache.clear()
        self._reset()
        logger.info("Sign out successful")

    async def reconcile(self, *, force_profile_refresh: bool = False) -> None:
        """Bring the session state in line with the provider and the profile store.

        Never raises: failures are logged and ``is_loading`` always ends False.
        """
        if self._placeholder:
            logger.info("Using placeholder Supabase URL - skipping auth check")
            self._set(is_loading=False)
            return

        self.profile_cache.clear()
        try:
            await self._reconcile(force_profile_refresh)
        except Exception:
            logger.exception("Error checking user")
            self._set(is_loading=False)

    async def _reconcile(self, force_profile_refresh: bool) -> None:
        session = await self._auth.get_session()
        if session is None:
            self.profile_cache.clear()
            if self._state.is_authenticated:
                logger.info("No active session, clearing auth state")
                self._reset()
            else:
                self._set(is_loading=False)
            return

        auth_user = await self._auth.get_user()
        if auth_user is None:
            logger.warning("Session present but provider returned no user")
            self._set(is_loading=False)
            return

        current = self._state.user
        if (
            not force_profile_refresh
            and current is not None
            and current.id == auth_user.id
            and self._state.is_authenticated
        ):
            logger.debug("User already authenticated, skipping profile fetch")
            self._set(is_loading=False)
            return

        cached = self.profile_cache.get(auth_user.id)
        if cached is not None:
            self._adopt(cached)
            return

        metadata = parse_user_metadata(auth_user.user_metadata)
        kind: UserKind = metadata.user_type
        logger.info("Fetching profile", extra={"user_id": auth_user.id, "user_type": kind})

        profile = await self._load_profile(auth_user.id, kind)
        if profile is not None:
            self.profile_cache.set(auth_user.id, profile)
            self._adopt(profile)
            return

        logger.warning(
            "Profile not found, creating from user metadata",
            extra={"user_id": auth_user.id, "user_type": kind},
        )
        try:
            await upsert_profile_row(
                self._supabase,
                kind,
                minimal_profile_row(auth_user.id, auth_user.email, metadata),
            )
        except SupabaseError as exc:
            logger.error(
                "Error creating profile after auth",
                extra={"user_id": auth_user.id, "status": exc.status_code},
            )

        profile = await self._load_profile(auth_user.id, kind)
        if profile is not None:
            logger.info("Fetched newly created profile", extra={"user_id": auth_user.id})
            self.profile_cache.set(auth_user.id, profile)
            self._adopt(profile)
            return

        if current is not None and current.id != auth_user.id:
            self._reset()
        else:
            self._set(is_loading=False)

    async def _load_profile(self, user_id: str, kind: UserKind) -> Optional[UserRecord]:
        try:
            row = await fetch_profile_row(self._supabase, user_id, kind)
        except SupabaseError as exc:
            logger.error(
                "Error fetching profile",
                extra={"user_id": user_id, "user_type": kind, "status": exc.status_code},
            )
            return None
        if row is None:
            return None
        children = None
        if kind == "guardian":
            children = await fetch_children_or_empty(self._supabase, user_id)
        return build_profile(row, user_id, kind, children)

    async def update_profile(
        self,
        fields: Dict[str, Any],
        *,
        children: Optional[List[Dict[str, Any]]] = None,
        deleted_child_ids: Optional[List[str]] = None,
    ) -> UserRecord:
        """Write profile edits for the signed-in user and refresh the session copy."""
        user = self._state.user
        if user is None or not self._state.is_authenticated:
            raise AuthError("Not signed in", code="not_authenticated", status=401)
        await update_profile_rows(
            self._supabase,
            user.id,
            user.user_type,
            fields,
            children=children,
            deleted_child_ids=deleted_child_ids,
        )
        await self.reconcile(force_profile_refresh=True)
        return self._state.user or user
