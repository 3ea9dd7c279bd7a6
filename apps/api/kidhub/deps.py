"""FastAPI dependencies resolving the composition-root store and the signed-in user."""
from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from .auth_store import AuthStore
from .schemas import GuardianProfile, OrganizerProfile, UserRecord
from .supabase import SupabaseClient


def get_auth_store(request: Request) -> AuthStore:
    return request.app.state.auth_store


def get_supabase(store: AuthStore = Depends(get_auth_store)) -> SupabaseClient:
    return store.supabase


def require_user(store: AuthStore = Depends(get_auth_store)) -> UserRecord:
    user = store.current_user
    if user is None or not store.is_authenticated:
        raise HTTPException(status_code=401, detail="Sign in required.")
    return user


def require_guardian(user: UserRecord = Depends(require_user)) -> GuardianProfile:
    if not isinstance(user, GuardianProfile):
        raise HTTPException(status_code=403, detail="Guardian account required.")
    return user


def require_organizer(user: UserRecord = Depends(require_user)) -> OrganizerProfile:
    if not isinstance(user, OrganizerProfile):
        raise HTTPException(status_code=403, detail="Organizer account required.")
    return user
