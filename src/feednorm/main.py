from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Callable, NamedTuple, Optional

from lxml import etree

from .dates import parse_timestamp
from .exceptions import (
    DecodeError,
    FeedDecodeError,
    NotRDF,
    NotRSS,
    StructureError,
    UnrecognizedFeed,
)
from .models import Feed, FeedDialect, Item
from .prepare import ensure_utf8_xml_declaration, prepare_xml_bytes

if TYPE_CHECKING:
    from lxml.etree import _Element

_log = logging.getLogger(__name__)

_RSS1_NS = "http://purl.org/rss/1.0/"
_RSS090_NS = "http://my.netscape.com/rdf/simple/0.9/"
_DC_NS = "http://purl.org/dc/elements/1.1/"
_ATOM_03_NS = "http://purl.org/atom/ns#"
_ATOM_NAMESPACES = frozenset(
    {
        "http://www.w3.org/2005/Atom",
        "https://www.w3.org/2005/Atom",
        _ATOM_03_NS,
    }
)

# Namespaces a child element may live in, in order of preference.
_RSS_NAMESPACES: tuple[Optional[str], ...] = (None,)
_RDF_NAMESPACES: tuple[Optional[str], ...] = (_RSS1_NS, _RSS090_NS, None)
_RDF_DATE_NAMESPACES: tuple[Optional[str], ...] = (_DC_NS, None)

_STRICT_XML_PARSER = etree.XMLParser(
    ns_clean=True,
    recover=False,
    collect_ids=False,
    resolve_entities=False,
)


@lru_cache(maxsize=4)
def _atom_ns_tags(atom_ns: str) -> dict[str, str]:
    """Pre-compute namespace-prefixed tag strings once per Atom namespace.

    Atom 0.3 calls the dates ``modified`` and ``issued``.
    """
    ns = f"{{{atom_ns}}}"
    is_atom_03 = atom_ns == _ATOM_03_NS
    return {
        "title": ns + "title",
        "link": ns + "link",
        "entry": ns + "entry",
        "id": ns + "id",
        "content": ns + "content",
        "summary": ns + "summary",
        "updated": ns + ("modified" if is_atom_03 else "updated"),
        "published": ns + ("issued" if is_atom_03 else "published"),
    }


def _qualify(namespace: Optional[str], local: str) -> str:
    return local if namespace is None else f"{{{namespace}}}{local}"


def _split_tag(tag: str) -> tuple[Optional[str], str]:
    if tag.startswith("{"):
        namespace, local = tag[1:].split("}", 1)
        return namespace, local
    return None, tag


def _root_tag_local(root: _Element) -> str:
    return _split_tag(root.tag)[1].lower()


def _find_all(
    parent: _Element, local: str, namespaces: tuple[Optional[str], ...]
) -> list[_Element]:
    for namespace in namespaces:
        found = parent.findall(_qualify(namespace, local))
        if found:
            return found
    return []


def _own_text(el: _Element) -> str:
    """Character data of ``el`` itself; text inside child elements is skipped."""
    return (el.text or "") + "".join(child.tail or "" for child in el)


def _find_text(
    parent: _Element, local: str, namespaces: tuple[Optional[str], ...]
) -> str:
    found = _find_all(parent, local, namespaces)
    if not found:
        return ""
    return _own_text(found[0])


def _text_construct(el: Optional[_Element]) -> str:
    """Text of an Atom text construct; inline XHTML is returned as markup."""
    if el is None:
        return ""
    if el.get("type") in {"xhtml", "application/xhtml+xml"}:
        parts = [el.text or ""]
        parts.extend(
            etree.tostring(child, encoding="unicode", with_tail=True) for child in el
        )
        return "".join(parts)
    return _own_text(el)


def _rss_pub_date(parent: _Element) -> str:
    # Some feeds spell it pubdate
    return _find_text(parent, "pubDate", _RSS_NAMESPACES) or _find_text(
        parent, "pubdate", _RSS_NAMESPACES
    )


def _first_channel(
    root: _Element, namespaces: tuple[Optional[str], ...]
) -> _Element:
    """The first <channel>; a missing one reads as an empty channel."""
    channels = _find_all(root, "channel", namespaces)
    if channels:
        return channels[0]
    return etree.Element("channel")


def _decode_rss(root: _Element, *, verbose: bool = False) -> Feed:
    if _root_tag_local(root) != "rss":
        raise NotRSS(f"Base tag is not RSS: <{_split_tag(root.tag)[1]}>")

    channel = _first_channel(root, _RSS_NAMESPACES)
    items = [
        Item(
            title=_find_text(item, "title", _RSS_NAMESPACES),
            link=_find_text(item, "link", _RSS_NAMESPACES),
            description=_find_text(item, "description", _RSS_NAMESPACES),
            publication_time=parse_timestamp(_rss_pub_date(item), verbose=verbose),
            guid=_find_text(item, "guid", _RSS_NAMESPACES),
        )
        for item in _find_all(channel, "item", _RSS_NAMESPACES)
    ]
    return Feed(
        title=_find_text(channel, "title", _RSS_NAMESPACES),
        link=_find_text(channel, "link", _RSS_NAMESPACES),
        description=_find_text(channel, "description", _RSS_NAMESPACES),
        publication_time=parse_timestamp(_rss_pub_date(channel), verbose=verbose),
        items=items,
        dialect="RSS",
    )


def _decode_rdf(root: _Element, *, verbose: bool = False) -> Feed:
    if _root_tag_local(root) != "rdf":
        raise NotRDF(f"Base tag is not RDF: <{_split_tag(root.tag)[1]}>")

    channel = _first_channel(root, _RDF_NAMESPACES)
    # The first declared <link> wins.
    links = _find_all(channel, "link", _RDF_NAMESPACES)
    link = _own_text(links[0]) if links else ""

    items = [
        Item(
            title=_find_text(item, "title", _RDF_NAMESPACES),
            link=_find_text(item, "link", _RDF_NAMESPACES),
            description=_find_text(item, "description", _RDF_NAMESPACES),
            publication_time=parse_timestamp(
                _find_text(item, "date", _RDF_DATE_NAMESPACES), verbose=verbose
            ),
        )
        for item in _find_all(root, "item", _RDF_NAMESPACES)
    ]
    return Feed(
        title=_find_text(channel, "title", _RDF_NAMESPACES),
        link=link,
        description=_find_text(channel, "description", _RDF_NAMESPACES),
        publication_time=parse_timestamp(
            _find_text(channel, "date", _RDF_DATE_NAMESPACES), verbose=verbose
        ),
        items=items,
        dialect="RDF",
    )


def _select_atom_link(links: list[_Element]) -> str:
    """Prefer rel="self", otherwise the first declared link."""
    for link in links:
        if link.get("rel") == "self":
            return link.get("href") or ""
    if links:
        return links[0].get("href") or ""
    return ""


def _decode_atom_entry(
    entry: _Element, index: int, tags: dict[str, str], *, verbose: bool = False
) -> Item:
    id_el = entry.find(tags["id"])
    if id_el is None:
        raise StructureError("Atom", f"entry {index} has no <id> element")

    updated = entry.findtext(tags["updated"]) or entry.findtext(tags["published"])

    content_el = entry.find(tags["content"])
    if content_el is None:
        content_el = entry.find(tags["summary"])

    return Item(
        title=_text_construct(entry.find(tags["title"])),
        link=_select_atom_link(entry.findall(tags["link"])),
        description=_text_construct(content_el),
        publication_time=parse_timestamp(updated, verbose=verbose),
        guid=id_el.text or "",
    )


def _decode_atom(root: _Element, *, verbose: bool = False) -> Feed:
    namespace, local = _split_tag(root.tag)
    if local != "feed" or namespace not in _ATOM_NAMESPACES:
        raise StructureError(
            "Atom", f"expected element type <feed> in the Atom namespace but have <{local}>"
        )

    tags = _atom_ns_tags(namespace)
    items = [
        _decode_atom_entry(entry, index, tags, verbose=verbose)
        for index, entry in enumerate(root.findall(tags["entry"]))
    ]
    return Feed(
        title=_text_construct(root.find(tags["title"])),
        link=_select_atom_link(root.findall(tags["link"])),
        description="",
        publication_time=parse_timestamp(root.findtext(tags["updated"]), verbose=verbose),
        items=items,
        dialect="Atom",
    )


_DialectDecoder = Callable[..., Feed]

# Trial order is the priority order for documents that fit more than one.
_DIALECT_DECODERS: tuple[tuple[FeedDialect, _DialectDecoder], ...] = (
    ("RSS", _decode_rss),
    ("RDF", _decode_rdf),
    ("Atom", _decode_atom),
)


class _Attempt(NamedTuple):
    dialect: FeedDialect
    feed: Optional[Feed]
    error: Optional[FeedDecodeError]


def _attempt(
    dialect: FeedDialect,
    decoder: _DialectDecoder,
    root: _Element,
    *,
    verbose: bool = False,
) -> _Attempt:
    try:
        return _Attempt(dialect, decoder(root, verbose=verbose), None)
    except FeedDecodeError as e:
        if verbose:
            _log.info("Not parsed as %s: %s", dialect, e)
        return _Attempt(dialect, None, e)


def _parse_xml_root(xml_content: bytes) -> _Element:
    try:
        return etree.fromstring(xml_content, parser=_STRICT_XML_PARSER)
    except etree.XMLSyntaxError as e:
        raise UnrecognizedFeed(
            {
                dialect: StructureError(dialect, f"XML syntax error: {e}")
                for dialect, _ in _DIALECT_DECODERS
            }
        ) from e


def decode_feed(source: str | bytes, *, verbose: bool = False) -> Feed:
    """Decode an RSS 2.0, RDF (RSS 1.0) or Atom document.

    Args:
        source: Raw feed bytes, or an already-decoded XML string
        verbose: Log diagnostics (dropped characters, date fallbacks,
            rejected dialects) at INFO level

    Returns:
        Feed tagged with the dialect that accepted the document

    Raises:
        MalformedProlog, UnknownEncoding, DecodeError: The XML declaration
            or the declared encoding is unusable; DecodeError also covers a
            string holding lone surrogates
        MissingPrologEnd, EmptyDocumentBody: The declaration could not be
            rewritten to UTF-8
        UnrecognizedFeed: RSS, RDF and Atom all rejected the document
    """
    if isinstance(source, str):
        try:
            source = ensure_utf8_xml_declaration(source).encode("utf-8")
        except UnicodeEncodeError as e:
            raise DecodeError("utf-8", str(e)) from e

    xml_content = prepare_xml_bytes(source, verbose=verbose)
    root = _parse_xml_root(xml_content)

    failures: dict[str, FeedDecodeError] = {}
    for dialect, decoder in _DIALECT_DECODERS:
        attempt = _attempt(dialect, decoder, root, verbose=verbose)
        if attempt.feed is not None:
            if verbose:
                _log.info("Parsed channel as %s [%s]", dialect, attempt.feed.title)
            return attempt.feed
        assert attempt.error is not None
        failures[dialect] = attempt.error

    raise UnrecognizedFeed(failures)
