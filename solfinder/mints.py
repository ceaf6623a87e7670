"""Helpers for normalising and validating Solana mint addresses."""

from __future__ import annotations

from solders.pubkey import Pubkey

ADDRESS_MIN_LENGTH = 32
ADDRESS_MAX_LENGTH = 44

_ZERO_WIDTH_CHARS = {
    "\u200b",  # zero-width space
    "\u200c",  # zero-width non-joiner
    "\u200d",  # zero-width joiner
    "\u200e",  # left-to-right mark
    "\u200f",  # right-to-left mark
    "\u2060",  # word joiner
    "\ufeff",  # byte order mark
}
_ZERO_WIDTH_TRANSLATION = str.maketrans({ord(ch): None for ch in _ZERO_WIDTH_CHARS})


def normalize_text(value: object | None) -> str:
    """Return ``value`` stripped of whitespace and zero-width characters."""

    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return value.translate(_ZERO_WIDTH_TRANSLATION).strip()


def looks_like_address(value: str | None) -> bool:
    """Cheap length check used before attempting a direct lookup."""

    text = normalize_text(value)
    return ADDRESS_MIN_LENGTH <= len(text) <= ADDRESS_MAX_LENGTH and " " not in text


def to_pubkey(address: str | None) -> Pubkey | None:
    text = normalize_text(address)
    if not looks_like_address(text):
        return None
    try:
        return Pubkey.from_string(text)
    except ValueError:
        return None


def validate_mint(address: str | None) -> bool:
    """Return ``True`` when ``address`` is a 32-byte base58 public key."""

    return to_pubkey(address) is not None


def normalize_mint_or_none(address: str | None) -> str | None:
    """Return a normalised, validated mint or ``None`` when invalid."""

    key = to_pubkey(address)
    return str(key) if key is not None else None


__all__ = [
    "ADDRESS_MAX_LENGTH",
    "ADDRESS_MIN_LENGTH",
    "looks_like_address",
    "normalize_mint_or_none",
    "normalize_text",
    "to_pubkey",
    "validate_mint",
]
