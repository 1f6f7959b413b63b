"""Text and amount normalization shared by fingerprinting, scoring and suggestions.

Bank exports are inconsistent about spacing, case and accents (``"Cotisation
Été"`` vs ``"COTISATION ETE "``), and account numbers arrive grouped in blocks
of four. Everything that compares free text or identifiers goes through these
helpers so all components agree on what "the same" means.
"""

from __future__ import annotations

import re
import unicodedata
from decimal import ROUND_HALF_UP, Decimal

_WS_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")

CENT = Decimal("0.01")


def collapse_ws(value: str | None) -> str:
    """Trim and collapse internal whitespace to single spaces."""

    if not value:
        return ""
    return _WS_RE.sub(" ", value).strip()


def normalize_account(value: str | None) -> str:
    """Account identifier with all whitespace removed, upper-cased.

    ``"BE26 2100 1607 0629"`` and ``"be262100 16070629"`` compare equal.
    """

    if not value:
        return ""
    return _WS_RE.sub("", value).upper()


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(value: str | None) -> str:
    """Case-folded, accent-free, whitespace-collapsed text."""

    if not value:
        return ""
    return collapse_ws(strip_accents(value).casefold())


def normalize_name(value: str | None) -> str:
    """``normalize_text`` plus removal of punctuation; used for name similarity."""

    return collapse_ws(_NON_ALNUM_RE.sub("", normalize_text(value)))


def amount_literal(value: str) -> str:
    """Rewrite a bank-export amount as a plain decimal literal.

    Handles the decimal comma and thousands separators of either convention:
    ``"1.234,56"`` and ``"1,234.56"`` both give ``"1234.56"``; the right-most
    separator is the decimal one. A lone comma is a decimal comma.
    """

    s = _WS_RE.sub("", value)
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    return s.replace(",", ".")


def quantize_amount(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """Fixed two-decimal string with a leading ``-`` for outflows."""

    return f"{quantize_amount(amount):.2f}"


__all__ = [
    "CENT",
    "collapse_ws",
    "normalize_account",
    "strip_accents",
    "normalize_text",
    "normalize_name",
    "amount_literal",
    "quantize_amount",
    "format_amount",
]
