from __future__ import annotations

import hashlib
import hmac


def sign(canonical_params: str, secret: str | bytes) -> str:
    """
    HMAC-SHA256 of the canonical query string, hex encoded.

    The input must be the exact string that goes on the wire; signing a re-serialised copy
    breaks the signature as soon as parameter order differs.
    """
    key = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
    return hmac.new(key, canonical_params.encode("utf-8"), hashlib.sha256).hexdigest()
