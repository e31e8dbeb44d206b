from datetime import datetime, timezone
from typing import Any, Dict

import bcrypt
import jwt

from config import Settings

JWT_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


def _secret(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_secret(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, stored: str) -> bool:
    if not stored:
        return False
    try:
        return bcrypt.checkpw(_secret(password), stored.encode("utf-8"))
    except ValueError:
        return False


def create_token(user: Dict[str, Any], settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": str(user["_id"]),
        "email": user["email"],
        "role": user.get("role", "user"),
        "iat": now,
        "exp": now + settings.jwt_expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    """Decode and verify a token issued by ``create_token``.

    No route requires a token yet; this is the check a caller (another
    service, or a future auth dependency) runs on the ``Authorization``
    bearer value. Raises ``jwt.InvalidTokenError`` when the signature,
    algorithm or expiry is wrong.
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
