import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt

from config import config

logger = logging.getLogger("brify_sync.auth.jwt")


@dataclass
class UserContext:
    id: str
    role: str
    email: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


def verify_supabase_jwt(token: str) -> Optional[UserContext]:
    """
    Verifies a Supabase access token and returns the caller's context.

    Returns None when SUPABASE_JWT_SECRET is not configured so the caller can
    fall back to gateway headers.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is invalid (bad signature, missing sub, etc).
    """
    secret = config.SUPABASE_JWT_SECRET
    if not secret:
        logger.warning("SUPABASE_JWT_SECRET is not configured. JWT authentication is disabled.")
        return None

    try:
        # Supabase signs with HS256; aud is usually 'authenticated' but varies per project
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except jwt.ExpiredSignatureError as e:
        logger.error(f"JWT Error: Token has expired. Details: {e}")
        raise
    except jwt.InvalidTokenError as e:
        logger.error(f"JWT Error: {type(e).__name__}. Details: {e}")
        raise

    user_id = payload.get("sub")
    if not user_id:
        raise jwt.InvalidTokenError("Token missing 'sub' claim")

    metadata = {**payload.get("app_metadata", {}), **payload.get("user_metadata", {})}

    return UserContext(
        id=user_id,
        role=payload.get("role", "authenticated"),
        email=payload.get("email"),
        metadata=metadata,
    )
