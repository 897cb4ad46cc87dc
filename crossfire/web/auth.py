"""JWT access tokens for registered participants."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Request
from jose import JWTError, jwt

from crossfire.debate_engine.exceptions import DebateError

logger = logging.getLogger(__name__)

# Security logger for auth events
security_logger = logging.getLogger("security")

JWT_EXPIRE_HOURS = 168  # 7 days


class AuthenticationError(DebateError):
    """The request carries no usable identity."""

    code = "unauthorized"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class JWTUtils:
    """Creates and validates HS256 access tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_hours: int = JWT_EXPIRE_HOURS):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_hours = expire_hours

    def create_access_token(self, subject: str, username: Optional[str] = None) -> str:
        """
        Create a JWT access token.

        Args:
            subject: Stable user id, stored as ``sub``
            username: Display name (optional)

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "username": username,
            "exp": now + timedelta(hours=self.expire_hours),
            "iat": now,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> dict[str, Any]:
        """
        Decode and validate a JWT access token.

        Raises:
            AuthenticationError: If token is invalid, expired or has no subject
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            security_logger.warning(f"JWT decode error: {e}")
            raise AuthenticationError("Invalid or expired token") from e

        if not payload.get("sub"):
            raise AuthenticationError("Invalid token payload")
        return payload


def get_token_from_request(request: Request, cookie_name: str) -> Optional[str]:
    """Access token from the httpOnly cookie, else from a Bearer Authorization header."""
    token = request.cookies.get(cookie_name)
    if token:
        return token

    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_authenticated_subject(request: Request, jwt_utils: JWTUtils, cookie_name: str) -> Optional[str]:
    """Subject of a valid access token, or None when absent or invalid."""
    token = get_token_from_request(request, cookie_name)
    if not token:
        return None

    try:
        payload = jwt_utils.decode_access_token(token)
    except AuthenticationError:
        security_logger.warning(
            f"Ignoring invalid access token from IP: {request.client.host if request.client else 'unknown'}"
        )
        return None
    return str(payload["sub"])
