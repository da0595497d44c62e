# Encrypted client-side snapshot of user data, used only while the
# in-memory fallback store is active.

import json
import logging
import time
import zlib
from typing import Callable

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from jwcrypto import jwe, jwk
from jwcrypto.common import JWException, base64url_encode, json_encode

logger = logging.getLogger(__name__)

COOKIE_NAME = "kv_snapshot"
# Browsers cap a single cookie at ~4096 bytes including name and attributes
MAX_COOKIE_BYTES = 3800
MAX_AGE_SECONDS = 30 * 24 * 3600


class SnapshotCodec:
    def __init__(self, secret_key: str, max_age_seconds: int = MAX_AGE_SECONDS, clock: Callable[[], float] = time.time):
        raw = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=b"vaultmemo-kv-snapshot",
        ).derive(secret_key.encode("utf-8"))
        self._key = jwk.JWK(kty="oct", k=base64url_encode(raw))
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def encode(self, data: dict) -> str | None:
        """
        Compresses and encrypts the snapshot as a compact JWE.
        Returns None when the result would not fit in a cookie.
        """
        body = {"iat": int(self._clock()), "data": data}
        plaintext = zlib.compress(json.dumps(body, separators=(",", ":")).encode("utf-8"))
        token = jwe.JWE(plaintext, json_encode({"alg": "dir", "enc": "A256GCM"}))
        token.add_recipient(self._key)
        serialized = token.serialize(compact=True)

        if len(serialized) > MAX_COOKIE_BYTES:
            logger.warning(f"Snapshot too large for a cookie ({len(serialized)} bytes); not persisted")
            return None
        return serialized

    def decode(self, value: str) -> dict | None:
        try:
            token = jwe.JWE()
            token.deserialize(value, key=self._key)
            body = json.loads(zlib.decompress(token.payload).decode("utf-8"))
        except (JWException, ValueError, zlib.error) as e:
            logger.warning(f"Ignoring unreadable snapshot cookie: {type(e).__name__}: {e}")
            return None

        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            return None

        issued_at = body.get("iat")
        if not isinstance(issued_at, int) or self._clock() - issued_at > self.max_age_seconds:
            logger.warning("Ignoring stale snapshot cookie")
            return None
        return body["data"]
