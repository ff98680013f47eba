# services/api/core/naming.py
"""Artifact file naming and document language detection."""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterable, Optional, Union

# Keep Latin alphanumerics, Arabic script and whitespace; drop everything else.
_LABEL_STRIP_RE = re.compile(r"[^a-zA-Z0-9\u0600-\u06FF\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_ARABIC_RE = re.compile(r"[\u0600-\u06FF]")

MAX_LABEL_LENGTH = 30
DEFAULT_LABEL = "document"


def sanitize_label(text: Optional[str], max_length: int = MAX_LABEL_LENGTH) -> str:
    """
    "Acme Steel & Co." -> "Acme_Steel_Co"
    Returns "" when nothing usable is left.
    """
    cleaned = _LABEL_STRIP_RE.sub("", text or "").strip()
    cleaned = _WHITESPACE_RE.sub("_", cleaned)
    return cleaned[:max_length]


def _date_part(value: Union[str, date, datetime, None]) -> str:
    if value is None or value == "":
        return date.today().isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    # ISO strings: keep the date portion only
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return sanitize_label(text, max_length=20) or date.today().isoformat()


def artifact_filename(
    document_number: str,
    label: Optional[str],
    when: Union[str, date, datetime, None] = None,
    *,
    ext: str = "pdf",
    style: str = "underscore",
    suffix: Optional[str] = None,
) -> str:
    """
    underscore: {documentNumber}_{label}_{date}.{ext}   (PO0007_Acme_Steel_2026-10-19.pdf)
    dash:       {documentNumber}-{date}-{label}.{ext}   (PQ0003-2026-10-19-Acme_Steel.pdf)

    `suffix` is appended before the extension (PO0007_Acme_Steel_2026-10-19_r083015.pdf).
    """
    number = sanitize_label(document_number, max_length=64) or DEFAULT_LABEL
    safe_label = sanitize_label(label) or DEFAULT_LABEL
    day = _date_part(when)
    tail = f"_{sanitize_label(suffix, max_length=32)}" if suffix else ""
    if style == "dash":
        return f"{number}-{day}-{safe_label}{tail}.{ext}"
    if style != "underscore":
        raise ValueError(f"Unknown filename style: {style}")
    return f"{number}_{safe_label}_{day}{tail}.{ext}"


def contains_arabic(text: Optional[str]) -> bool:
    return bool(text) and bool(_ARABIC_RE.search(text))


def detect_language(values: Iterable[Optional[str]]) -> str:
    """'ar' when more than half of the non-empty values contain Arabic script, else 'en'."""
    filled = [v for v in values if isinstance(v, str) and v.strip()]
    if not filled:
        return "en"
    arabic = sum(1 for v in filled if contains_arabic(v))
    return "ar" if arabic > len(filled) / 2 else "en"


def normalize_language(value: Optional[str]) -> Optional[str]:
    """Accepts ar/en/arabic/english (any case). Unknown or empty -> None."""
    if not value:
        return None
    value = value.strip().lower()
    if value in ("ar", "arabic"):
        return "ar"
    if value in ("en", "english"):
        return "en"
    return None
