from __future__ import annotations

import re
import secrets
import string
import unicodedata

# Azerbaijani letters that NFKD does not fold to ASCII.
_TRANSLITERATE = str.maketrans({
    "ə": "e",
    "Ə": "e",
    "ı": "i",
    "İ": "i",
    "ğ": "g",
    "Ğ": "g",
    "ş": "s",
    "Ş": "s",
    "ç": "c",
    "Ç": "c",
    "ö": "o",
    "Ö": "o",
    "ü": "u",
    "Ü": "u",
})

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def slugify(value: str) -> str:
    raw = (value or "").strip().translate(_TRANSLITERATE)
    raw = unicodedata.normalize("NFKD", raw).encode("ascii", "ignore").decode("ascii").lower()
    if not raw:
        return ""
    raw = re.sub(r"[^a-z0-9]+", "-", raw)
    raw = re.sub(r"-{2,}", "-", raw)
    return raw.strip("-")


def random_suffix(length: int = 5) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def same_id(left, right) -> bool:
    if left is None or right is None:
        return False
    return str(left).strip() == str(right).strip()


def clean_str(value, *, max_len: int | None = None) -> str:
    text_value = str(value or "").strip()
    if max_len is not None:
        text_value = text_value[:max_len]
    return text_value


def as_bool(value, default: bool = False) -> bool:
    """Read a JSON or query-string flag; ``"false"`` and ``"0"`` are false."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    raw = str(value).strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")
