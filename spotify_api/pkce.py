import base64
import hashlib
import secrets
from dataclasses import dataclass

# Unambiguous alphanumeric alphabet (no URL-reserved or padding characters).
PKCE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"

# RFC 7636 section 4.1
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128
DEFAULT_VERIFIER_LENGTH = 64


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def generate_verifier(length: int = DEFAULT_VERIFIER_LENGTH) -> str:
    """Return a random PKCE code_verifier of exactly ``length`` characters.

    Characters are drawn uniformly from PKCE_ALPHABET using the OS CSPRNG.
    """

    length = int(length)
    if length < MIN_VERIFIER_LENGTH or length > MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"PKCE verifier length must be between {MIN_VERIFIER_LENGTH} and {MAX_VERIFIER_LENGTH}, got {length}"
        )
    return "".join(secrets.choice(PKCE_ALPHABET) for _ in range(length))


def derive_challenge(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def generate_state(nbytes: int = 16) -> str:
    """Opaque value echoed back by the provider on the callback."""

    return secrets.token_urlsafe(nbytes).rstrip("=")


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str
    method: str = "S256"


def generate_pkce_pair(length: int = DEFAULT_VERIFIER_LENGTH) -> PKCEPair:
    """Generate a PKCE verifier + challenge."""

    verifier = generate_verifier(length)
    return PKCEPair(code_verifier=verifier, code_challenge=derive_challenge(verifier))
