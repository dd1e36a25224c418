"""
Canonical JSON for transcript digests.

Follows RFC 8785 (JCS) for the values a dumped transcript can hold: keys
sorted by UTF-16 code units, no insignificant whitespace, numbers in their
shortest ECMAScript form. A transcript therefore has one digest however it
was pretty-printed into git notes.
"""
from __future__ import annotations

import hashlib
import json
import math
from decimal import Decimal
from typing import Any, List

__all__ = ["canonicalize", "canonicalize_to_str", "sha256_digest"]


def sha256_digest(obj: Any) -> str:
    """Hex sha256 of the canonical form of *obj* (pydantic models are dumped first)."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()


def canonicalize(obj: Any) -> bytes:
    if hasattr(obj, "model_dump"):
        obj = obj.model_dump(mode="json")
    return canonicalize_to_str(obj).encode("utf-8")


def canonicalize_to_str(obj: Any) -> str:
    out: List[str] = []
    _emit(obj, out)
    return "".join(out)


def _emit(value: Any, out: List[str]) -> None:
    if value is None or isinstance(value, (bool, str)):
        # json.dumps already renders these exactly as JCS requires
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"cannot canonicalize non-finite number {value!r}")
        out.append(_encode_number(value))
    elif isinstance(value, dict):
        out.append("{")
        for i, key in enumerate(sorted(value, key=_utf16_key)):
            if i:
                out.append(",")
            out.append(json.dumps(key, ensure_ascii=False))
            out.append(":")
            _emit(value[key], out)
        out.append("}")
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _emit(item, out)
        out.append("]")
    else:
        raise TypeError(f"cannot canonicalize {type(value).__name__}")


def _utf16_key(key: Any) -> bytes:
    if not isinstance(key, str):
        raise TypeError(f"object keys must be strings, got {type(key).__name__}")
    return key.encode("utf-16-be")


def _encode_number(value: Any) -> str:
    # ECMAScript Number.prototype.toString: plain notation for exponents in [-7, 21).
    if isinstance(value, int):
        return str(value)
    dec = Decimal(repr(value))
    if dec.is_zero():
        return "0"
    _, digit_tuple, exponent = abs(dec).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    point = len(digits) + exponent
    prefix = "-" if dec < 0 else ""
    if 0 < point <= 21:
        if exponent >= 0:
            return prefix + digits + "0" * exponent
        return prefix + digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return prefix + "0." + "0" * -point + digits
    mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
    power = point - 1
    return f"{prefix}{mantissa}e{'+' if power > 0 else '-'}{abs(power)}"
