import logging
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException

from auth.jwt import UserContext, verify_supabase_jwt

logger = logging.getLogger("brify_sync.auth")


async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    x_user_email: Optional[str] = Header(None, alias="x-user-email"),
) -> UserContext:
    """
    Resolves the caller from 'Authorization: Bearer <supabase token>'.
    Falls back to the x-user-id / x-user-email headers set by the gateway
    when JWT verification is not configured.
    """
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            try:
                user_context = verify_supabase_jwt(token)
                if user_context is not None:
                    return user_context
                logger.warning("JWT token provided but SUPABASE_JWT_SECRET not configured, falling back to gateway headers")
            except jwt.ExpiredSignatureError:
                raise HTTPException(status_code=401, detail="Token has expired")
            except jwt.InvalidTokenError as e:
                raise HTTPException(status_code=401, detail=f"Invalid token: {str(e)}")

    if x_user_id:
        return UserContext(id=x_user_id, role="authenticated", email=x_user_email)

    raise HTTPException(
        status_code=401,
        detail="Not authenticated. Missing Authorization header or x-user-id header.",
    )


async def require_user_email(current_user: UserContext = Depends(get_current_user)) -> UserContext:
    """The sync is scoped by administrator e-mail; callers without one are rejected."""
    if not current_user.email:
        raise HTTPException(status_code=400, detail="The authenticated user has no e-mail address")
    return current_user
