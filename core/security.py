# core/security.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import secrets
import string
import time

from fastapi import Request
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext

from core.errors import ExpiredToken, InvalidToken


# ========================================
# 🔐 Password Hashing (Argon2)
# ========================================
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash password using Argon2."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password using Argon2."""
    return pwd_context.verify(plain_password, hashed_password)


def generate_temporary_password(length: int = 12) -> str:
    """Random alphanumeric password handed out with an invite."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


# ========================================
# 🔑 Session Tokens
# ========================================
@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    account_id: int
    role: str
    issued_at: float  # epoch seconds


class TokenService:
    """Issues and verifies signed, expiring session tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24 * 7):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue_token(self, user_id: int, account_id: int, role: str,
                    expires_delta: Optional[timedelta] = None) -> str:
        issued_at = time.time()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=self.expire_minutes))
        to_encode = {
            "user_id": user_id,
            "account_id": account_id,
            "role": role,
            # sub-second precision so a token minted right after a logout
            # is not mistaken for one that predates it
            "iat": issued_at,
            "exp": expire,
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> TokenClaims:
        """Decode JWT; raises ExpiredToken or InvalidToken."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredToken()
        except JWTError:
            raise InvalidToken()

        try:
            return TokenClaims(
                user_id=int(payload["user_id"]),
                account_id=int(payload["account_id"]),
                role=str(payload["role"]),
                issued_at=float(payload["iat"]),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidToken("Invalid token payload")


def is_token_revoked(claims: TokenClaims, tokens_invalid_before: Optional[datetime]) -> bool:
    """True when the token was issued before the user's invalidation watermark."""
    if tokens_invalid_before is None:
        return False
    return claims.issued_at < tokens_invalid_before.timestamp()


def extract_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, falling back to the token cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get("token") or None
