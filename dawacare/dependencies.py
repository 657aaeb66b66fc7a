"""
Request dependencies: database session and caller identity.

The caller is identified by a bearer JWT or, for browser sessions, by the same
token carried in the session cookie. The token's subject must be an active user.
"""
import logging
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from dawacare.config import settings
from dawacare.database import get_db
from dawacare.exceptions import Unauthorized
from dawacare.models import User
from dawacare.permissions import Actor
from dawacare.utils.auth_internal import decode_access_token

logger = logging.getLogger(__name__)


def _token_from_request(request: Request):
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


def get_current_actor(request: Request, db: Session = Depends(get_db)) -> Actor:
    """Resolve the Actor for this request. Raises Unauthorized if no valid identity."""
    token = _token_from_request(request)
    if not token:
        raise Unauthorized("Not authenticated")
    payload = decode_access_token(token)
    if not payload:
        raise Unauthorized("Invalid token")
    try:
        user_id = UUID(str(payload["sub"]))
    except (ValueError, TypeError):
        raise Unauthorized("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        logger.info("Rejected token for unknown or inactive user %s", user_id)
        raise Unauthorized("User not found or inactive")
    return Actor(id=user.id, name=user.name, role=user.role, branch_id=user.branch_id)
