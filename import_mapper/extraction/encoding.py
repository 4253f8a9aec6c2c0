"""Byte-order-mark sniffing and buffer decoding."""

from __future__ import annotations

import codecs
import logging

from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

_BOMS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF8, "utf8-bom"),
    (codecs.BOM_UTF16_LE, "utf16le"),
    (codecs.BOM_UTF16_BE, "utf16be"),
)

_CODECS = {
    "utf8": "utf-8",
    "utf8-bom": "utf-8-sig",
    "utf16le": "utf-16-le",
    "utf16be": "utf-16-be",
}


class UndecodableInputError(Exception):
    """Raised when a buffer cannot be decoded as text at all."""


def sniff_encoding(data: bytes) -> str:
    """Return the encoding label implied by a leading BOM, defaulting to utf8."""
    for bom, label in _BOMS:
        if data.startswith(bom):
            return label
    return "utf8"


def decode_sample(data: bytes, size: int) -> str:
    """Leniently decode the head of a buffer. Never raises."""
    label = sniff_encoding(data)
    text = data[:size].decode(_CODECS[label], errors="replace")
    return text.lstrip("\ufeff")


def decode_buffer(data: bytes) -> tuple[str, str]:
    """Decode a whole buffer, returning (text, encoding label).

    BOM-declared and UTF-8 input is decoded directly. Anything else goes
    through charset detection; if that finds nothing either the buffer is
    rejected with UndecodableInputError.
    """
    label = sniff_encoding(data)
    try:
        text = data.decode(_CODECS[label])
        return text.lstrip("\ufeff"), label
    except UnicodeDecodeError:
        pass

    best = from_bytes(data).best()
    if best is None:
        raise UndecodableInputError("Buffer could not be decoded with any known encoding")
    logger.debug("Decoded buffer via charset detection as %s", best.encoding)
    return str(best).lstrip("\ufeff"), best.encoding
