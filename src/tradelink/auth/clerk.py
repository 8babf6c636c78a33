from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from clerk_backend_api import Clerk
import os
import logging

logger = logging.getLogger(__name__)

clerk = Clerk(bearer_auth=os.getenv("CLERK_SECRET_KEY"))
security = HTTPBearer()

# PEM public key of the Clerk instance (Dashboard > API Keys > JWT public key)
CLERK_JWT_KEY = os.getenv("CLERK_JWT_KEY")


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity of the signed-in caller, passed explicitly into services."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


def _decode_claims(token: str) -> dict:
    from jose import jwt, JWTError

    if not CLERK_JWT_KEY:
        raise JWTError("CLERK_JWT_KEY is not configured")

    # Session tokens carry no audience; signature and expiry are enforced
    return jwt.decode(
        token,
        CLERK_JWT_KEY,
        algorithms=["RS256"],
        options={"verify_aud": False}
    )


def _verified_claims(token: str) -> dict:
    try:
        payload = _decode_claims(token)
    except Exception as e:
        logger.error(f"Token verification failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

    if not payload.get("sub"):
        logger.warning("Token missing user_id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: no user_id found"
        )
    return payload


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> str:
    """
    Verify Clerk JWT token and return user_id.
    """
    user_id = _verified_claims(credentials.credentials)["sub"]
    logger.debug(f"Authenticated user: {user_id}")
    return user_id


def _lookup_profile(user_id: str) -> tuple:
    """Fetch (email, name) from the Clerk backend API."""
    user = clerk.users.get(user_id=user_id)
    email = user.email_addresses[0].email_address if user.email_addresses else None
    name = f"{user.first_name or ''} {user.last_name or ''}".strip() or None
    return email, name


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> AuthenticatedUser:
    """
    Resolve the caller's identity.

    Email and name come from the verified session claims when the Clerk JWT
    template includes them; otherwise they are looked up via the Clerk
    backend API. A failed lookup still authenticates the caller, just
    without an email.
    """
    payload = _verified_claims(credentials.credentials)
    user_id = payload["sub"]

    email = payload.get("email") or payload.get("primary_email")
    name = payload.get("name") or payload.get("full_name")

    if not email:
        try:
            email, looked_up_name = _lookup_profile(user_id)
            name = name or looked_up_name
        except Exception as clerk_error:
            logger.warning(f"Could not fetch user details from Clerk: {clerk_error}")

    logger.debug(f"Authenticated user: {user_id}")
    return AuthenticatedUser(user_id=user_id, email=email, name=name)
