"""
Security utilities: credential encryption, JWT identity, Shopify HMAC checks.
"""
import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Mapping

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from catalog_sync.core.config import settings
from catalog_sync.core.logging import get_logger

logger = get_logger(__name__)


def derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet-compatible key from the encryption key."""
    key = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key)


_fernet = Fernet(derive_fernet_key(settings.encryption_key))


def encrypt_token(token: str) -> str:
    """Encrypt a string for storage."""
    return _fernet.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored string."""
    try:
        return _fernet.decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        logger.error("Failed to decrypt token", error=str(e))
        raise ValueError("Invalid encrypted token") from e


def encrypt_credentials(credentials: Mapping[str, Any]) -> str:
    """Encrypt a platform credentials blob."""
    return encrypt_token(json.dumps(dict(credentials), sort_keys=True))


def decrypt_credentials(encrypted: str) -> dict[str, Any]:
    """Decrypt a platform credentials blob produced by encrypt_credentials."""
    return json.loads(decrypt_token(encrypted))


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(hours=settings.jwt_expiration_hours)
    )
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT access token."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning("Invalid JWT token", error=str(e))
        return None


_bearer = HTTPBearer(auto_error=False)


async def require_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str:
    """Resolve the authenticated owner id from the bearer token."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    payload = decode_access_token(credentials.credentials)
    owner_id = payload.get("sub") if payload else None
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return str(owner_id)


CurrentOwner = Annotated[str, Depends(require_auth)]


def compute_shopify_hmac(body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 digest Shopify sends with webhooks."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_shopify_hmac(body: bytes, hmac_header: str | None, secret: str) -> bool:
    """Verify a Shopify webhook HMAC signature in constant time."""
    if not hmac_header:
        return False
    # Headers arrive latin-1 decoded, so compare bytes rather than str
    return hmac.compare_digest(
        compute_shopify_hmac(body, secret).encode(),
        hmac_header.encode("utf-8", "surrogateescape"),
    )


def compute_oauth_hmac(params: Mapping[str, str], secret: str) -> str:
    """Hex HMAC-SHA256 over the sorted query string, excluding hmac/signature."""
    message = "&".join(
        f"{key}={value}"
        for key, value in sorted(params.items())
        if key not in ("hmac", "signature")
    )
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_oauth_hmac(params: Mapping[str, str], secret: str) -> bool:
    """Verify the hmac query parameter of a Shopify OAuth callback."""
    provided = params.get("hmac")
    if not provided:
        return False
    return hmac.compare_digest(
        compute_oauth_hmac(params, secret).encode(),
        provided.encode("utf-8", "surrogateescape"),
    )
