"""
Bearer-token authentication.

Tokens look like `<user_id>.<signature>` where the signature is the hex
HMAC-SHA256 of the user id under settings.AUTH_SECRET. The API trusts the
user id inside a token whose signature checks out; whoever issues tokens
(login service, admin script) only needs the same secret.

Every website and report query is filtered by this user id, so one user
can never see or change another user's data.
"""

import hashlib
import hmac
from typing import Optional

from fastapi import Header, HTTPException

from config.settings import settings


def _signature(user_id: str, secret: str) -> str:
    return hmac.new(secret.encode(), user_id.encode(), hashlib.sha256).hexdigest()


def sign_user_token(user_id: str, secret: Optional[str] = None) -> str:
    """Issue a token for `user_id`."""
    return f"{user_id}.{_signature(user_id, secret or settings.AUTH_SECRET)}"


def verify_user_token(token: str, secret: Optional[str] = None) -> Optional[str]:
    """Return the user id if the token's signature is valid, else None."""
    user_id, sep, signature = token.rpartition(".")
    if not sep or not user_id or not signature:
        return None
    expected = _signature(user_id, secret or settings.AUTH_SECRET)
    if not hmac.compare_digest(expected, signature):
        return None
    return user_id


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """FastAPI dependency: the authenticated user id, or 401."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authentication required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    user_id = verify_user_token(token.strip())
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id
