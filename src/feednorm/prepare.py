"""Byte-level preparation of a feed before it reaches the XML parser.

The steps run in a fixed order:

1. ``normalize_encoding`` reads the XML declaration and transcodes the
   buffer to UTF-8.
2. ``sanitize_xml_chars`` drops code points that XML 1.0 does not allow.
3. ``rewrite_prolog`` replaces the declaration with one that says UTF-8,
   unless it already declares ``utf-8`` literally.
"""

from __future__ import annotations

import codecs
import logging
import re
from typing import Optional

from .exceptions import (
    DecodeError,
    EmptyDocumentBody,
    MalformedProlog,
    MissingPrologEnd,
    UnknownEncoding,
)

_log = logging.getLogger(__name__)

CANONICAL_PROLOG = b'<?xml version="1.0" encoding="UTF-8"?>'

_UTF8 = "utf-8"
_UTF8_BOM = b"\xef\xbb\xbf"
_WIDE_BOMS = (
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)
_WIDE_PREFIXES = (
    (b"<\x00\x00\x00", "utf-32-le"),
    (b"\x00\x00\x00<", "utf-32-be"),
    (b"<\x00?\x00", "utf-16-le"),
    (b"\x00<\x00?", "utf-16-be"),
)

# Pre-compiled regex patterns
_RE_XML_DECL_BYTES = re.compile(
    rb"<\?xml"
    rb"\s+version\s*=\s*(?P<vq>[\"'])(?P<version>[^\"']*)(?P=vq)"
    rb"(?:\s+encoding\s*=\s*(?P<eq>[\"'])(?P<encoding>[^\"']*)(?P=eq))?"
    rb"(?:\s+standalone\s*=\s*(?P<sq>[\"'])[^\"']*(?P=sq))?"
    rb"\s*\?>"
)
_RE_XML_DECL_ENCODING = re.compile(
    r'(<\?xml[^>]*encoding=["\'])([^"\']+)(["\'][^>]*\?>)', re.IGNORECASE
)
# Complement of the XML 1.0 Char production.
_RE_XML_ILLEGAL_CHARS = re.compile(
    "[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)


def ensure_utf8_xml_declaration(content: str) -> str:
    """Ensure the XML declaration's encoding matches the UTF-8 bytes we emit."""
    if not content.lstrip().startswith("<?xml"):
        return content
    return _RE_XML_DECL_ENCODING.sub(r"\1utf-8\3", content, count=1)


def _strip_preamble(content: bytes) -> bytes:
    if content.startswith(_UTF8_BOM):
        content = content[len(_UTF8_BOM) :]
    return content.lstrip()


def _detect_wide_encoding(content: bytes) -> Optional[tuple[str, int]]:
    """Detect a UTF-16/UTF-32 buffer from its BOM or NUL-interleaved ``<?``.

    Returns the codec to read the buffer with and the length of the BOM
    to skip, or None for byte-oriented encodings.
    """
    # UTF-32 first: its little-endian BOM starts with the UTF-16 one
    for bom, codec in _WIDE_BOMS:
        if content.startswith(bom):
            return codec, len(bom)
    for prefix, codec in _WIDE_PREFIXES:
        if content.startswith(prefix):
            return codec, 0
    return None


def normalize_encoding(content: bytes, *, verbose: bool = False) -> tuple[bytes, str]:
    """Transcode ``content`` to UTF-8 according to its XML declaration.

    Returns the UTF-8 buffer together with the canonical codec name of the
    declared encoding. UTF-16 and UTF-32 buffers are recognised by their
    byte layout, whatever the declaration says.

    Raises:
        MalformedProlog: No XML 1.0 declaration, or an empty encoding.
        UnknownEncoding: The declared encoding is not a known text codec.
        DecodeError: The bytes are invalid in the declared encoding.
    """
    wide = _detect_wide_encoding(content)
    if wide is not None:
        wide_codec, bom_length = wide
        try:
            content = content[bom_length:].decode(wide_codec).encode(_UTF8)
        except UnicodeError as e:
            raise DecodeError(wide_codec, str(e)) from e

    content = _strip_preamble(content)
    match = _RE_XML_DECL_BYTES.match(content)
    if match is None:
        raise MalformedProlog("Buffer does not start with an XML declaration")

    version = match.group("version")
    if version != b"1.0":
        raise MalformedProlog(
            f"Unsupported XML version: {version.decode('ascii', errors='replace')}"
        )

    raw_encoding = match.group("encoding")
    if raw_encoding is None:
        declared = _UTF8
    else:
        declared = raw_encoding.decode("ascii", errors="replace").strip()
        if not declared:
            raise MalformedProlog("XML declaration has an empty encoding")

    try:
        codec_name = codecs.lookup(declared).name
    except LookupError:
        raise UnknownEncoding(declared) from None

    if wide is not None:
        # Already transcoded; the byte layout decides, not the label.
        if verbose:
            _log.info("Transcoded %s buffer to UTF-8 (declared %s)", wide[0], declared)
        return content, codec_name

    actual = codec_name
    # Feeds often claim UTF-16 while shipping single-byte text.
    if codec_name.startswith(("utf-16", "utf-32")):
        actual = _UTF8
        if verbose:
            _log.info("Declared %s but buffer is not wide; reading as UTF-8", declared)

    if actual == _UTF8:
        return content, codec_name

    try:
        text = content.decode(actual)
    except UnicodeDecodeError as e:
        raise DecodeError(declared, str(e)) from e
    except LookupError:
        # Registered, but not a text encoding (e.g. base64).
        raise UnknownEncoding(declared) from None

    if verbose:
        _log.info("Transcoded buffer from %s to UTF-8", declared)
    return text.encode(_UTF8, errors="surrogatepass"), codec_name


def sanitize_xml_chars(content: bytes, *, verbose: bool = False) -> bytes:
    """Drop every character that is not allowed by the XML 1.0 Char production.

    Invalid UTF-8 sequences are dropped as well. Never raises.
    """
    try:
        text = content.decode(_UTF8)
        had_invalid_bytes = False
    except UnicodeDecodeError:
        text = content.decode(_UTF8, errors="ignore")
        had_invalid_bytes = True

    text, dropped = _RE_XML_ILLEGAL_CHARS.subn("", text)
    if not dropped and not had_invalid_bytes:
        return content

    if verbose:
        if had_invalid_bytes:
            _log.info("Dropped invalid UTF-8 byte sequences")
        if dropped:
            _log.info("Dropped %d character(s) not allowed in XML 1.0", dropped)
    return text.encode(_UTF8)


def rewrite_prolog(content: bytes, *, verbose: bool = False) -> bytes:
    """Replace the XML declaration with one declaring UTF-8.

    Raises:
        MissingPrologEnd: There is no ``?>`` in the buffer.
        EmptyDocumentBody: The declaration is all there is.
    """
    end = content.find(b"?>")
    if end == -1:
        raise MissingPrologEnd("XML declaration is not terminated by '?>'")

    body = content[end + 2 :]
    if not body:
        raise EmptyDocumentBody("Document has nothing after its XML declaration")

    if verbose:
        _log.info("Rewrote XML declaration to declare UTF-8")
    return CANONICAL_PROLOG + body


def prepare_xml_bytes(content: bytes, *, verbose: bool = False) -> bytes:
    """Run the full byte pipeline and return a clean, UTF-8-declared buffer."""
    content, _ = normalize_encoding(content, verbose=verbose)
    content = sanitize_xml_chars(content, verbose=verbose)
    if not _declares_utf8(content):
        content = rewrite_prolog(content, verbose=verbose)
    return content


def _declares_utf8(content: bytes) -> bool:
    """True when the declaration says ``utf-8`` literally, or no encoding at all.

    libxml2 does not know every alias Python resolves (``u8``, ``utf_8``).
    """
    match = _RE_XML_DECL_BYTES.match(content)
    if match is None:
        return False
    encoding = match.group("encoding")
    return encoding is None or encoding.lower() == b"utf-8"
