"""
Authentication: password hashing, JWT tokens and the AuthProvider.

WHY: The access core only needs one thing from authentication: a trusted
principal id for the current request. Everything a principal may do is
resolved afterwards from the membership graph, so tokens carry the user id
and nothing else (no role, no organization) and never go stale when
memberships change.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol, Tuple

from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.core.config import settings
from hostelcore.core.exceptions import (
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidError,
)
from hostelcore.dao.user import UserDAO

logger = logging.getLogger(__name__)

# Password hashing context
# WHY: bcrypt with default cost factor (12 rounds) resists brute force while
# keeping login latency acceptable.
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============================================================================
# Password Hashing
# ============================================================================


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Example:
        >>> hashed = hash_password("MyPassword123!")
        >>> len(hashed)
        60
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    WHY: Constant-time comparison (built into passlib) prevents timing
    attacks.
    """
    return pwd_context.verify(plain_password, hashed_password)


# ============================================================================
# JWT Token Management
# ============================================================================


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Token includes:
    - The supplied claims (normally just "sub", the principal id)
    - exp / iat / nbf standard claims

    Security Notes:
        - NEVER include passwords or sensitive data in tokens
        - Tokens are signed but not encrypted
    """
    to_encode = data.copy()
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES))

    to_encode.update({"exp": expire, "iat": now, "nbf": now})

    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")
    except JWTError as e:
        raise TokenInvalidError(message="Invalid token", error=str(e))


# ============================================================================
# AuthProvider
# ============================================================================


class AuthProvider(Protocol):
    """
    Source of authenticated principals.

    authenticate() turns credentials into (principal_id, token);
    principal_for() turns a token back into a principal id.
    """

    async def authenticate(self, email: str, password: str) -> Tuple[int, str]:
        ...

    async def principal_for(self, token: str) -> int:
        ...


class JWTAuthProvider:
    """
    AuthProvider backed by the users table and signed JWTs.

    Example:
        provider = JWTAuthProvider(db)
        principal_id, token = await provider.authenticate(email, password)
        assert await provider.principal_for(token) == principal_id
    """

    def __init__(self, session: AsyncSession):
        self.user_dao = UserDAO(session)

    async def authenticate(self, email: str, password: str) -> Tuple[int, str]:
        """
        Check credentials and issue a token.

        WHY: The same error is raised for an unknown email, a wrong password
        and a user without a password, so the response does not reveal which
        emails are registered.

        Raises:
            AuthenticationError: Credentials rejected or user deactivated
        """
        user = await self.user_dao.get_by_email(email)
        if user is None or not user.hashed_password:
            raise AuthenticationError(message="Invalid email or password")
        if not verify_password(password, user.hashed_password):
            raise AuthenticationError(message="Invalid email or password")
        if not user.is_active:
            raise AuthenticationError(message="Account is deactivated")

        logger.info("User %s authenticated", user.id)
        return user.id, create_access_token({"sub": str(user.id)})

    async def principal_for(self, token: str) -> int:
        """
        Resolve the principal id from a token.

        Raises:
            TokenExpiredError / TokenInvalidError: Bad token
            AuthenticationError: User missing or deactivated since issuance
        """
        payload = verify_token(token)
        subject = payload.get("sub")
        if subject is None or not str(subject).isdigit():
            raise TokenInvalidError(message="Token has no subject")

        user = await self.user_dao.get_by_id(int(subject))
        if user is None or not user.is_active:
            raise AuthenticationError(message="User not found or inactive")
        return user.id
