"""JWT access token creation and decoding.

Token claims:
  - sub:    user ID
  - email:  user email (informational only; the gate reloads the user)
  - type:   "access"
  - exp:    expiry timestamp

Role, tenant and permissions are deliberately not embedded: the gate
re-resolves them from the store on every request, so a revocation takes
effect on the next request instead of at token expiry.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from crm.config import settings


def create_access_token(
    user_id: str,
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "email": email,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure (bad signature, expired, malformed)."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return {}
