"""PKCE proof-of-possession material and state nonces (:rfc:`7636`).

The verifier stays in process memory for the duration of one login
attempt; only the derived challenge is placed in the authorization URL.
"""

from __future__ import annotations

import base64
import hashlib
import re
import secrets
from dataclasses import dataclass

CHALLENGE_METHOD = "S256"

VERIFIER_MIN_LENGTH = 43
VERIFIER_MAX_LENGTH = 128

# RFC 7636 section 4.1: ALPHA / DIGIT / "-" / "." / "_" / "~"
_UNRESERVED = re.compile(r"^[A-Za-z0-9\-._~]+$")


def derive_challenge(code_verifier: str) -> str:
    """Return ``BASE64URL(SHA256(ascii(code_verifier)))`` without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PkceParameters:
    """A code verifier and the challenge derived from it.

    Raises:
        ValueError: If the verifier is outside 43-128 characters, uses
            characters outside the unreserved set, or does not match the
            challenge.
    """

    code_verifier: str
    code_challenge: str
    challenge_method: str = CHALLENGE_METHOD

    def __post_init__(self) -> None:
        if not VERIFIER_MIN_LENGTH <= len(self.code_verifier) <= VERIFIER_MAX_LENGTH:
            raise ValueError(
                f"code_verifier must be {VERIFIER_MIN_LENGTH}-{VERIFIER_MAX_LENGTH} "
                f"characters, got {len(self.code_verifier)}"
            )
        if not _UNRESERVED.match(self.code_verifier):
            raise ValueError("code_verifier contains characters outside the unreserved set")
        if self.code_challenge != derive_challenge(self.code_verifier):
            raise ValueError("code_challenge does not match code_verifier")

    @classmethod
    def from_verifier(cls, code_verifier: str) -> PkceParameters:
        return cls(code_verifier=code_verifier, code_challenge=derive_challenge(code_verifier))

    def __repr__(self) -> str:
        # Keep the verifier out of logs and tracebacks.
        return f"PkceParameters(code_challenge={self.code_challenge!r}, challenge_method={self.challenge_method!r})"


def generate_pkce() -> PkceParameters:
    """Generate a fresh verifier/challenge pair from the ``secrets`` CSPRNG.

    ``token_urlsafe(64)`` yields 86 characters from the base64url alphabet,
    comfortably inside the allowed length range.
    """
    return PkceParameters.from_verifier(secrets.token_urlsafe(64)[:VERIFIER_MAX_LENGTH])


def generate_state() -> str:
    """Generate a single-use anti-forgery nonce for the ``state`` parameter."""
    return secrets.token_urlsafe(32)
