"""
Cloudinary request signing. The API secret never leaves the server: clients send the
parameters they intend to submit and get back a signature bound to exactly those values.

Protocol: sort keys ascending, render each pair as key=value, join with "&",
append the secret with no separator, SHA-1, lowercase hex.
"""
import hashlib
import time
from typing import Any, Mapping


class SignatureError(ValueError):
    """Raised when there is nothing to sign."""


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(v) for v in value)
    return str(value)


def string_to_sign(params: Mapping[str, Any]) -> str:
    """Return the canonical key=value&... string (without the secret)."""
    if not params:
        raise SignatureError("No parameters to sign")
    return "&".join(f"{key}={_stringify(params[key])}" for key in sorted(params))


def sign_params(params: Mapping[str, Any], secret: str) -> str:
    """SHA-1 hex signature over the sorted parameters followed by the secret."""
    payload = string_to_sign(params) + secret
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def unix_timestamp() -> int:
    return int(round(time.time()))
