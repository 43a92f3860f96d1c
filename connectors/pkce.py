"""
PKCE (RFC 7636) verifier / challenge generation.

The verifier is 32 random bytes, hex-encoded.  The challenge is the
SHA-256 of the verifier's ASCII text, base64url-encoded without padding.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from utils.schemas import PKCEState


def generate_code_verifier() -> str:
    return secrets.token_bytes(32).hex()


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def create_pkce_state() -> PKCEState:
    """Fresh verifier + matching challenge for one authorization attempt."""
    verifier = generate_code_verifier()
    return PKCEState(
        code_verifier=verifier,
        code_challenge=generate_code_challenge(verifier),
    )


def verify_code_challenge(verifier: str, challenge: str) -> bool:
    return hmac.compare_digest(generate_code_challenge(verifier), challenge)
