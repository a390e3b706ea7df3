"""Verification of the signed links sent in marketing emails for unsubscribing."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

ALGORITHM = "HS256"
UNSUBSCRIBE_SUBJECT = "unsubscribe"


@dataclass(frozen=True)
class TokenVerification:
    valid: bool
    claims: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


def verify_unsubscribe_token(token: str, secret: str) -> TokenVerification:
    """
    Verify an HS256 unsubscribe token and return its claims.
    The expiry claim is enforced when present.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        return TokenVerification(False, reason="Malformed token")

    if header.get("alg") != ALGORITHM or header.get("typ", "JWT") != "JWT":
        return TokenVerification(False, reason="Unsupported algorithm or type")

    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM], options={"verify_aud": False})
    except ExpiredSignatureError:
        return TokenVerification(False, reason="Token expired")
    except JWTError:
        return TokenVerification(False, reason="Invalid signature")

    return TokenVerification(True, claims=claims)


def create_unsubscribe_token(email: str, secret: str, expires_at: Optional[int] = None,
                             issued_at: Optional[int] = None) -> str:
    """Sign an unsubscribe token; used by the mailing side and by tests."""
    claims: Dict[str, Any] = {"sub": UNSUBSCRIBE_SUBJECT, "email": email}
    if issued_at is not None:
        claims["iat"] = issued_at
    if expires_at is not None:
        claims["exp"] = expires_at
    return jwt.encode(claims, secret, algorithm=ALGORITHM)
