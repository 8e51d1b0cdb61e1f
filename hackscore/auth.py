"""
Authentication and role checks for the HTTP API.

Users log in with email and password and receive a JWT bearer token. The
admin account is not stored: its credentials come from configuration.
"""

import functools
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from aiohttp import web
from jose import JWTError, jwt
from passlib.context import CryptContext

from .errors import AuthenticationError, PermissionDeniedError
from .models import ADMIN_ID, Role, User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


class Authenticator:
    """Issues and resolves bearer tokens."""

    def __init__(
        self,
        db_manager: Any,
        config: Any,
    ) -> None:
        self.db = db_manager
        self.config = config

    def admin_user(self) -> User:
        return User(
            id=ADMIN_ID,
            email=self.config.get("auth", "admin_email"),
            name="Admin",
            role=Role.ADMIN,
        )

    def create_token(self, user_id: str) -> str:
        """
        Create a signed token for a user.

        @param user_id: Id stored in the token subject
        @return: Encoded JWT
        """
        expire = datetime.now(timezone.utc) + timedelta(
            days=self.config.get("auth", "token_expiry_days")
        )
        return jwt.encode(
            {"sub": user_id, "exp": expire},
            self.config.get("auth", "jwt_secret"),
            algorithm=ALGORITHM,
        )

    async def authenticate(self, email: str, password: str) -> User:
        """
        Check login credentials.

        @param email: Login email
        @param password: Plain-text password
        @return: The authenticated user
        @raise AuthenticationError: If the email or password is wrong
        """
        email = email.strip().lower()

        if (
            email == str(self.config.get("auth", "admin_email")).lower()
            and password == self.config.get("auth", "admin_password")
        ):
            return self.admin_user()

        user = await self.db.get_user_by_email(email)
        if user is None:
            raise AuthenticationError(
                "Email not found. Please check your email address."
            )
        if not verify_password(password, user.password_hash):
            raise AuthenticationError("Incorrect password. Please try again.")
        return user

    async def resolve_token(self, token: str) -> User:
        """
        Resolve a bearer token to its user.

        @param token: Encoded JWT
        @return: User the token was issued to
        @raise AuthenticationError: If the token is invalid or the user is gone
        """
        try:
            payload = jwt.decode(
                token,
                self.config.get("auth", "jwt_secret"),
                algorithms=[ALGORITHM],
            )
        except JWTError:
            raise AuthenticationError("Not authorized, token failed") from None

        user_id = payload.get("sub")
        if user_id == ADMIN_ID:
            return self.admin_user()

        user = await self.db.get_user(user_id) if user_id else None
        if user is None:
            raise AuthenticationError("User not found")
        return user

    @web.middleware
    async def middleware(
        self,
        request: web.Request,
        handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
    ) -> web.StreamResponse:
        """
        Attach the bearer token's user (or None) to ``request["user"]``.

        A token that does not resolve leaves the request anonymous; the error
        is kept in ``request["auth_error"]`` for routes that require a user.
        """
        request["user"] = None
        request["auth_error"] = None

        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            try:
                request["user"] = await self.resolve_token(
                    header[len("Bearer "):].strip()
                )
            except AuthenticationError as e:
                request["auth_error"] = e

        return await handler(request)


def current_user(request: web.Request) -> Optional[User]:
    return request.get("user")


def require_role(*roles: Role) -> Callable:
    """
    Decorate a handler method so only the given roles may call it.

    With no roles, any authenticated user is accepted.
    """

    def decorator(handler: Callable) -> Callable:
        @functools.wraps(handler)
        async def wrapper(self: Any, request: web.Request) -> web.StreamResponse:
            user = current_user(request)
            if user is None:
                raise request.get("auth_error") or AuthenticationError(
                    "Not authorized, no token"
                )
            if roles and user.role not in roles:
                names = " or ".join(r.value.replace("_", " ").title() for r in roles)
                raise PermissionDeniedError(f"{names} access required")
            return await handler(self, request)

        return wrapper

    return decorator
