# Security-related helpers: password hashing, random passwords and tokens.

import hmac
import re
import secrets
import string

from cryptography.hazmat.primitives import hashes

_LEGACY_HASH = re.compile(r"^[0-9a-f]{64}$")


def _sha256_hex(data: str) -> str:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data.encode("utf-8"))
    return digest.finalize().hex()


def hash_password(password: str, salt: str | None = None) -> dict:
    """
    Hashes password+salt with SHA-256. A random salt is generated when none is given.
    Returns {"hash": ..., "salt": ...}
    """
    if salt is None:
        salt = secrets.token_hex(16)
    return {"hash": _sha256_hex(password + salt), "salt": salt}


def verify_password(password: str, stored) -> bool:
    """
    Checks a password against a stored record.

    `stored` is either the salted {"hash", "salt"} dict or a bare hex digest
    written by older deployments (unsalted SHA-256).
    """
    if not stored or password is None:
        return False

    if isinstance(stored, str):
        if not _LEGACY_HASH.match(stored):
            return False
        return hmac.compare_digest(_sha256_hex(password), stored)

    salt = stored.get("salt")
    expected = stored.get("hash")
    if not salt or not expected:
        return False
    return hmac.compare_digest(hash_password(password, salt)["hash"], expected)


def needs_rehash(stored) -> bool:
    return isinstance(stored, str)


def plaintext_matches(candidate: str, configured: str) -> bool:
    # Host-configured passwords arrive in plaintext; compare in constant time.
    if not configured or candidate is None:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), configured.encode("utf-8"))


def generate_random_password(length: int = 8) -> str:
    """Random password with at least one uppercase letter and one digit."""
    if length < 2:
        raise ValueError("length must be at least 2")

    chars = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.digits),
    ]
    pool = string.ascii_lowercase + string.digits
    chars.extend(secrets.choice(pool) for _ in range(length - 2))

    # Shuffle so the guaranteed characters are not always first
    rng = secrets.SystemRandom()
    rng.shuffle(chars)
    return "".join(chars)


def new_token() -> str:
    return secrets.token_urlsafe(32)
