"""Error types raised by the Supabase clients and the data façade."""
from __future__ import annotations

from typing import Optional


class KidHubError(Exception):
    pass


class SupabaseError(KidHubError):
    """A PostgREST request came back with an error status."""

    def __init__(self, action: str, status_code: int, detail: str) -> None:
        self.action = action
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Supabase {action} failed: status={status_code}, body={detail}")


class AuthError(KidHubError):
    """The identity provider rejected a credential or session operation."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status = status
        super().__init__(message)


class ProfileNotFoundError(KidHubError):
    def __init__(self, user_id: str, user_type: str) -> None:
        self.user_id = user_id
        self.user_type = user_type
        super().__init__(f"No {user_type} found with id: {user_id}")


class CapacityReachedError(KidHubError):
    def __init__(self, activity_id: str) -> None:
        self.activity_id = activity_id
        super().__init__("This activity has reached its capacity")


class NotFoundError(KidHubError):
    pass
