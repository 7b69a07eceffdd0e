import time
from typing import Optional

import jwt


def decode_expiry(token: Optional[str]) -> Optional[float]:
    """
    Return the ``exp`` claim of the token, or None when it cannot be decoded.
    The signature is not verified: the console never holds the signing key,
    the server checks it on every request.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.PyJWTError:
        return None

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def is_token_expired(token: Optional[str], now: Optional[float] = None) -> bool:
    """Absent, undecodable and exp-less tokens count as expired."""
    exp = decode_expiry(token)
    if exp is None:
        return True
    if now is None:
        now = time.time()
    return exp <= now
