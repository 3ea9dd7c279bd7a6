import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import Field

from ..auth_store import AuthStore
from ..deps import get_auth_store
from ..schemas import CamelModel, UserMetadata

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
logger = logging.getLogger(__name__)


class SignInPayload(CamelModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class SignUpPayload(CamelModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    user_data: UserMetadata


def session_payload(store: AuthStore, request: Request) -> Dict[str, Any]:
    body = store.state.model_dump(mode="json", by_alias=True)
    redirects = request.app.state.redirects
    body["redirectTo"] = redirects.pop() if redirects else None
    redirects.clear()
    return body


@router.get("/session")
async def get_session(request: Request, store: AuthStore = Depends(get_auth_store)) -> Dict[str, Any]:
    """Current session state; waits for a scheduled reconciliation to settle first."""
    await store.wait_for_reconcile()
    return session_payload(store, request)


@router.post("/sign-in")
async def sign_in(
    payload: SignInPayload,
    request: Request,
    store: AuthStore = Depends(get_auth_store),
) -> Dict[str, Any]:
    await store.sign_in(payload.email.strip(), payload.password)
    return session_payload(store, request)


@router.post("/sign-up")
async def sign_up(
    payload: SignUpPayload,
    request: Request,
    store: AuthStore = Depends(get_auth_store),
) -> Dict[str, Any]:
    await store.sign_up(payload.email.strip(), payload.password, payload.user_data)
    return session_payload(store, request)


@router.post("/sign-out")
async def sign_out(request: Request, store: AuthStore = Depends(get_auth_store)) -> Dict[str, Any]:
    await store.sign_out()
    return session_payload(store, request)


@router.post("/refresh")
async def refresh(request: Request, store: AuthStore = Depends(get_auth_store)) -> Dict[str, Any]:
    await store.reconcile(force_profile_refresh=True)
    return session_payload(store, request)
