"""Lossless text encodings used to carry block sources across boundaries."""

from __future__ import annotations

import base64
from urllib.parse import quote, unquote
import zlib

from markdd.core.exceptions import ContentError


_BASE64_ALPHABET = b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_PLANTUML_ALPHABET = b"0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-_"
_TO_PLANTUML = bytes.maketrans(_BASE64_ALPHABET, _PLANTUML_ALPHABET)
_FROM_PLANTUML = bytes.maketrans(_PLANTUML_ALPHABET, _BASE64_ALPHABET)


def encode_payload(text: str) -> str:
    """Percent-encode a block body so it survives inside an HTML attribute."""
    return quote(text, safe="")


def decode_payload(encoded: str) -> str:
    """Reverse :func:`encode_payload`."""
    return unquote(encoded, errors="strict")


def plantuml_encode(text: str) -> str:
    """Deflate ``text`` and encode it with the PlantUML URL alphabet."""
    compressor = zlib.compressobj(9, zlib.DEFLATED, -15)
    data = compressor.compress(text.encode("utf-8")) + compressor.flush()
    remainder = len(data) % 3
    if remainder:
        data += b"\x00" * (3 - remainder)
    return base64.b64encode(data).translate(_TO_PLANTUML).decode("ascii")


def plantuml_decode(encoded: str) -> str:
    """Reverse :func:`plantuml_encode`."""
    try:
        data = base64.b64decode(encoded.encode("ascii").translate(_FROM_PLANTUML))
        text = zlib.decompressobj(-15).decompress(data)
    except (ValueError, zlib.error) as exc:
        raise ContentError(f"Invalid PlantUML payload: {exc}") from exc
    return text.decode("utf-8")


__all__ = ["decode_payload", "encode_payload", "plantuml_decode", "plantuml_encode"]
