"""
verify.py
---------
Purpose:
    Service-role authorization for pipeline triggers.

Notes:
    - Callers (scheduler, operators) present the Supabase service role key,
      an HS256 JWT signed with the project JWT secret.
    - Any other role, a bad signature or an expired token is a 401.
    - Provides `service_role_dependency` for protected routes.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from candidate_intake.config import settings

SERVICE_ROLE = "service_role"

_security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_service_role(token: str) -> dict:
    if not settings.SUPABASE_JWT_SECRET:
        raise _unauthorized("JWT secret not configured")

    try:
        decoded = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_exp": True, "verify_aud": False},
        )
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e

    if decoded.get("role") != SERVICE_ROLE:
        raise _unauthorized("Service role required")
    return decoded


def service_role_dependency(
    credentials: HTTPAuthorizationCredentials = Depends(_security),
) -> dict:
    return verify_service_role(credentials.credentials)
