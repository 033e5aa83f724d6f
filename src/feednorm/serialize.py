from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING

from lxml import etree

from .dates import format_timestamp
from .exceptions import EncodeError
from .models import Feed
from .prepare import CANONICAL_PROLOG

if TYPE_CHECKING:
    from lxml.etree import _Element

_log = logging.getLogger(__name__)


def _format_date(value: object, owner: str) -> str:
    if not isinstance(value, datetime.datetime):
        raise EncodeError(f"{owner} publication_time is not a datetime: {value!r}")
    try:
        return format_timestamp(value)
    except ValueError as e:
        raise EncodeError(f"Cannot format {owner} publication_time: {e}") from e


def _add_text(parent: _Element, tag: str, text: str) -> None:
    el = etree.SubElement(parent, tag)
    try:
        el.text = text
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Cannot write <{tag}>: {e}") from e


def encode_feed(feed: Feed, *, verbose: bool = False) -> bytes:
    """Serialize ``feed`` as an RSS 2.0 document.

    The channel's ``pubDate`` and ``lastBuildDate`` both come from
    ``feed.publication_time``. Each item's ``guid`` is its link; a guid
    the feed was decoded with is not written back.

    Raises:
        EncodeError: A timestamp is naive or not a datetime, or a text field
            holds characters XML cannot represent
    """
    pub_date = _format_date(feed.publication_time, "feed")

    rss = etree.Element("rss", version="2.0")
    channel = etree.SubElement(rss, "channel")
    _add_text(channel, "title", feed.title)
    _add_text(channel, "link", feed.link)
    _add_text(channel, "description", feed.description)
    _add_text(channel, "pubDate", pub_date)
    _add_text(channel, "lastBuildDate", pub_date)

    for index, item in enumerate(feed.items):
        item_el = etree.SubElement(channel, "item")
        _add_text(item_el, "title", item.title)
        _add_text(item_el, "link", item.link)
        _add_text(item_el, "description", item.description)
        _add_text(item_el, "pubDate", _format_date(item.publication_time, f"item {index}"))
        _add_text(item_el, "guid", item.link)

    body = etree.tostring(
        rss, encoding="UTF-8", xml_declaration=False, pretty_print=True
    ).rstrip(b"\n")

    if verbose:
        _log.info("Encoded feed [%s] with %d item(s)", feed.title, len(feed.items))
    return CANONICAL_PROLOG + b"\n" + body
