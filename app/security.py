"""
Password hashing and JWT handling.

Access and refresh tokens are signed with different secrets so a leaked
refresh token cannot be replayed as an access token (and vice versa).  The
claims carry the user's id, role and active flag, which lets request guards
authorise without a database round trip.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import Settings
from app.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        # Malformed or unknown hash format.
        return False


@dataclass(frozen=True)
class TokenUser:
    """Identity decoded from a verified token."""

    id: int
    email: str
    username: str
    role: str
    is_active: bool

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


class TokenService:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _secret(self, kind: str) -> str:
        return self._settings.JWT_REFRESH_SECRET if kind == REFRESH else self._settings.JWT_SECRET

    def _encode(self, user, kind: str, expires_delta: timedelta) -> str:
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "username": user.username,
            "role": getattr(user.role, "value", user.role),
            "is_active": bool(user.is_active),
            "type": kind,
            "exp": datetime.now(timezone.utc) + expires_delta,
        }
        return jwt.encode(claims, self._secret(kind), algorithm=self._settings.JWT_ALGORITHM)

    def create_access_token(self, user) -> str:
        return self._encode(user, ACCESS, timedelta(minutes=self._settings.JWT_EXPIRES_MINUTES))

    def create_refresh_token(self, user) -> str:
        return self._encode(user, REFRESH, timedelta(days=self._settings.JWT_REFRESH_EXPIRES_DAYS))

    def issue_pair(self, user) -> dict:
        return {
            "token": self.create_access_token(user),
            "refresh_token": self.create_refresh_token(user),
        }

    def decode(self, token: str, kind: str = ACCESS) -> TokenUser:
        """
        Verify *token* and return the identity it carries.

        Raises ``UnauthorizedError`` for bad signatures, expired tokens,
        tokens of the wrong kind and malformed claims.
        """
        try:
            payload = jwt.decode(
                token, self._secret(kind), algorithms=[self._settings.JWT_ALGORITHM]
            )
        except JWTError as exc:
            raise UnauthorizedError("Invalid or expired token", code="INVALID_TOKEN") from exc

        if payload.get("type") != kind:
            raise UnauthorizedError("Invalid token type", code="INVALID_TOKEN")
        try:
            return TokenUser(
                id=int(payload["sub"]),
                email=payload["email"],
                username=payload["username"],
                role=payload["role"],
                is_active=bool(payload.get("is_active", False)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UnauthorizedError("Malformed token", code="INVALID_TOKEN") from exc


def ensure_owner_or_admin(actor: TokenUser, owner_id: int, resource: str) -> None:
    """Allow the owner of *resource* or an admin; anyone else gets 403."""
    if actor.id == owner_id:
        return
    if actor.is_admin:
        logger.warning("Admin %d acting on %s owned by user %d", actor.id, resource, owner_id)
        return
    raise ForbiddenError(f"You can only modify your own {resource.split(':')[0]}")
