"""
Identity resolution for API requests.

An upstream auth middleware may set ``request.state.user_id``; otherwise the
trusted identity header set by the gateway in front of this service is used.
Override ``get_current_user_id`` with ``app.dependency_overrides`` to plug in
another provider.
"""

from typing import Optional

from fastapi import Request

from coachsmith.config import get_settings


def get_current_user_id(request: Request) -> Optional[str]:
    """Authenticated user id, or None when the caller is anonymous."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)

    settings = getattr(request.app.state, "settings", None) or get_settings()
    header_value = request.headers.get(settings.identity_header, "").strip()
    return header_value or None
