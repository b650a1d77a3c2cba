"""HS256 bearer tokens identifying the principal that owns jobs.

Tokens are issued elsewhere (the account service, operator scripts, tests);
this API only needs to verify them and read the subject. Functions only,
no state.
"""

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ISSUER = "contentforge"
_HEADER = {"alg": "HS256", "typ": "JWT"}


@dataclass(frozen=True)
class TokenPayload:
    """Verified claims of a bearer token."""
    sub: str
    exp: datetime
    username: str = ""


def create_token(
    subject: str,
    secret: str,
    algorithm: str = "HS256",
    expires_hours: int = 24,
    username: str = "",
) -> str:
    """Issue a signed token whose ``sub`` is *subject*.

    A negative *expires_hours* yields an already-expired token (useful in tests).
    """
    if algorithm != "HS256":
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    issued_at = int(time.time())
    claims: Dict[str, Any] = {
        "sub": subject,
        "iss": ISSUER,
        "iat": issued_at,
        "exp": issued_at + int(expires_hours * 3600),
    }
    if username:
        claims["username"] = username

    signing_input = _segment(_HEADER) + b"." + _segment(claims)
    return (signing_input + b"." + _b64url(_sign(signing_input, secret))).decode()


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[TokenPayload]:
    """Verify *token* and return its claims, or None if it is unusable.

    None covers every failure (wrong algorithm, malformed, bad signature,
    expired, no subject) so the caller has a single branch to handle.
    """
    if algorithm != "HS256" or not token:
        return None

    try:
        header_b64, claims_b64, signature_b64 = token.encode().split(b".")
    except ValueError:
        return None

    try:
        signature = _b64url_decode(signature_b64)
        if not hmac.compare_digest(_sign(header_b64 + b"." + claims_b64, secret), signature):
            return None
        claims = json.loads(_b64url_decode(claims_b64))
    except (ValueError, TypeError):
        return None

    if not isinstance(claims, dict):
        return None
    return _payload_from_claims(claims)


def _payload_from_claims(claims: Dict[str, Any]) -> Optional[TokenPayload]:
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)) or time.time() > exp:
        return None

    # Older clients put the principal in "id" instead of "sub".
    subject = claims.get("sub") or claims.get("id")
    if not subject:
        return None

    return TokenPayload(
        sub=str(subject),
        exp=datetime.fromtimestamp(exp, tz=timezone.utc),
        username=str(claims.get("username") or ""),
    )


def _sign(signing_input: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()


def _segment(obj: Dict[str, Any]) -> bytes:
    return _b64url(json.dumps(obj, separators=(",", ":")).encode())


def _b64url(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64url_decode(data: bytes) -> bytes:
    return base64.urlsafe_b64decode(data + b"=" * (-len(data) % 4))
