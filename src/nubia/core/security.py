"""
Authentication primitives.

Customers authenticate with bcrypt-hashed passwords and receive an HS256 JWT.
The back office has a single operator whose PBKDF2 hash lives in the
environment (ADMIN_PASSWORD_HASH / ADMIN_SALT); a successful admin login
yields a JWT with role=admin. Cron endpoints use shared secrets instead of
tokens so a scheduler can call them without logging in.
"""
import hashlib
import hmac
import logging
from datetime import timedelta
from functools import wraps
from typing import Any, Dict, Optional

import bcrypt
from flask import request
from jose import ExpiredSignatureError, JWTError, jwt

from nubia.core.config import get_config
from nubia.core.exceptions import ForbiddenError, UnauthorizedError
from nubia.utils.dates import DateUtils

logger = logging.getLogger(__name__)

ADMIN_PBKDF2_ITERATIONS = 100_000
ADMIN_PBKDF2_KEYLEN = 64


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def hash_admin_password(password: str, salt: str) -> str:
    """PBKDF2-HMAC-SHA512, 100k iterations, 64-byte key, hex encoded."""
    derived = hashlib.pbkdf2_hmac(
        "sha512",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        ADMIN_PBKDF2_ITERATIONS,
        dklen=ADMIN_PBKDF2_KEYLEN,
    )
    return derived.hex()


def verify_admin_credentials(username: str, password: str) -> bool:
    security = get_config().security
    if not (security.admin_username and security.admin_password_hash and security.admin_salt):
        logger.error("Admin credentials are not configured")
        return False
    if not hmac.compare_digest(username, security.admin_username):
        return False
    candidate = hash_admin_password(password, security.admin_salt)
    return hmac.compare_digest(candidate, security.admin_password_hash)


def issue_token(subject: str, role: str, hours: Optional[int] = None) -> str:
    security = get_config().security
    now = DateUtils.now_utc()
    payload = {
        "sub": str(subject),
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=hours or security.jwt_expiration_hours),
    }
    return jwt.encode(payload, security.jwt_secret_key, algorithm=security.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    security = get_config().security
    try:
        return jwt.decode(token, security.jwt_secret_key, algorithms=[security.jwt_algorithm])
    except ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except JWTError:
        raise UnauthorizedError("Invalid token")


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


CLAIMS_ENVIRON_KEY = "nubia.auth_claims"


def _claims() -> Optional[Dict[str, Any]]:
    # Cached on the WSGI environ: an app context (and its g) can outlive a request
    if CLAIMS_ENVIRON_KEY not in request.environ:
        token = bearer_token()
        request.environ[CLAIMS_ENVIRON_KEY] = decode_token(token) if token else None
    return request.environ[CLAIMS_ENVIRON_KEY]


def get_current_user_id() -> int:
    """Customer id from the bearer token; 401 when absent or invalid."""
    claims = _claims()
    if not claims or claims.get("role") != "customer":
        raise UnauthorizedError()
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid token subject")


def get_optional_user_id() -> Optional[int]:
    """
    Like get_current_user_id, but guests get None.

    A valid token that is not a customer token (the back-office admin) also
    counts as a guest. An invalid or expired token is still a 401.
    """
    claims = _claims()
    if not claims or claims.get("role") != "customer":
        return None
    return get_current_user_id()


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        claims = _claims()
        if not claims:
            raise UnauthorizedError()
        if claims.get("role") != "admin":
            raise ForbiddenError("Admin access required")
        return view(*args, **kwargs)

    return wrapper


def cron_required(view):
    """Accept `Authorization: Bearer <CLEANUP_API_KEY>` or `x-cron-secret: <CRON_SECRET>`."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        security = get_config().security
        token = bearer_token()
        cron_header = request.headers.get("x-cron-secret")

        allowed = False
        if security.cleanup_api_key and token:
            allowed = hmac.compare_digest(token, security.cleanup_api_key)
        if not allowed and security.cron_secret and cron_header:
            allowed = hmac.compare_digest(cron_header, security.cron_secret)

        if not allowed:
            logger.warning(f"Rejected cron call to {request.path} from {request.remote_addr}")
            raise UnauthorizedError("Invalid cron credentials")
        return view(*args, **kwargs)

    return wrapper
