import hashlib
import hmac
import secrets

from passlib.context import CryptContext

from dietpanel.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_session_token() -> str:
    """Random opaque value stored in the session cookie."""
    return secrets.token_urlsafe(32)


def hash_session_token(token: str) -> str:
    """Session rows are keyed by a keyed hash so a leaked table cannot be replayed as cookies."""
    return hmac.new(settings.SECRET_KEY.encode(), token.encode(), hashlib.sha256).hexdigest()


def generate_invitation_token() -> str:
    # 32 random bytes, 64 hex chars
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()
