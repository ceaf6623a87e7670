"""Token metadata account derivation and decoding.

The metadata account of a mint lives at a program-derived address: the
``find_program_address`` derivation over the seeds ``b"metadata"``, the
metadata program id and the mint, under the metadata program. Anyone
looking the account up must use the same seeds in the same order.

Two payload layouts are understood:

* compact: a 4-byte header followed by ``[u8 len][name]``, ``[u8 len][symbol]``
  and ``[u8 len][uri]``, read sequentially.
* Metaplex v1: ``key`` byte ``4``, update authority and mint (32 bytes each),
  then ``[u32 len][name]``, ``[u32 len][symbol]`` and ``[u32 len][uri]``.

Decoding never raises; anything that does not parse is "no metadata".
"""

from __future__ import annotations

import logging
import struct
from typing import Optional, Tuple

from solders.pubkey import Pubkey

from .models import TokenMetadata, sanitize_label

logger = logging.getLogger(__name__)

METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
METADATA_SEED = b"metadata"

COMPACT_HEADER_SIZE = 4
_METAPLEX_KEY_V1 = 4
_METAPLEX_STRINGS_OFFSET = 1 + 32 + 32
_METAPLEX_MAX_FIELD = 256


def derive_metadata_address(mint: Pubkey | str, program_id: Pubkey = METADATA_PROGRAM_ID) -> Pubkey:
    if isinstance(mint, str):
        mint = Pubkey.from_string(mint)
    address, _bump = Pubkey.find_program_address(
        [METADATA_SEED, bytes(program_id), bytes(mint)],
        program_id,
    )
    return address


def _read_u8_prefixed(data: bytes, offset: int) -> Tuple[bytes, int]:
    length = data[offset]
    start = offset + 1
    end = start + length
    if end > len(data):
        raise ValueError(f"field overruns buffer ({end} > {len(data)})")
    return data[start:end], end


def _read_u32_prefixed(data: bytes, offset: int) -> Tuple[bytes, int]:
    (length,) = struct.unpack_from("<I", data, offset)
    if length > _METAPLEX_MAX_FIELD:
        raise ValueError(f"implausible field length {length}")
    start = offset + 4
    end = start + length
    if end > len(data):
        raise ValueError(f"field overruns buffer ({end} > {len(data)})")
    return data[start:end], end


def _text(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8", errors="ignore")


def decode_compact(data: bytes) -> TokenMetadata:
    offset = COMPACT_HEADER_SIZE
    name, offset = _read_u8_prefixed(data, offset)
    symbol, offset = _read_u8_prefixed(data, offset)
    uri, offset = _read_u8_prefixed(data, offset)
    if not name.strip(b"\x00") and not symbol.strip(b"\x00"):
        raise ValueError("compact payload carries no name or symbol")
    return TokenMetadata(
        name=sanitize_label(_text(name)),
        symbol=sanitize_label(_text(symbol)),
        uri=_text(uri).strip(),
    )


def decode_metaplex(data: bytes) -> TokenMetadata:
    if not data or data[0] != _METAPLEX_KEY_V1:
        raise ValueError("not a Metaplex v1 metadata account")
    offset = _METAPLEX_STRINGS_OFFSET
    name, offset = _read_u32_prefixed(data, offset)
    symbol, offset = _read_u32_prefixed(data, offset)
    uri, offset = _read_u32_prefixed(data, offset)
    return TokenMetadata(
        name=sanitize_label(_text(name)),
        symbol=sanitize_label(_text(symbol)),
        uri=_text(uri).strip(),
    )


def decode_metadata(data: bytes | None) -> Optional[TokenMetadata]:
    """Decode a metadata account payload, returning ``None`` when it can't."""

    if not data:
        return None
    for decoder in (decode_metaplex, decode_compact):
        try:
            return decoder(data)
        except (ValueError, IndexError, struct.error) as exc:
            logger.debug("%s rejected metadata payload: %s", decoder.__name__, exc)
    return None


__all__ = [
    "METADATA_PROGRAM_ID",
    "decode_compact",
    "decode_metadata",
    "decode_metaplex",
    "derive_metadata_address",
]
