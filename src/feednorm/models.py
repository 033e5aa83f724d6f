from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Literal, get_args

FeedDialect = Literal["RSS", "RDF", "Atom"]

DIALECTS: tuple[str, ...] = get_args(FeedDialect)

# Fallback instant for absent or unparseable dates.
EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


@dataclass(frozen=True)
class Item:
    """One entry of a feed.

    ``guid`` is the identifier the source document supplied (RSS ``<guid>``,
    Atom ``<id>``); it is empty for RDF, which has no such element.
    """

    title: str = ""
    link: str = ""
    description: str = ""
    publication_time: datetime.datetime = EPOCH
    guid: str = ""


@dataclass(frozen=True)
class Feed:
    """Normalized snapshot of an RSS, RDF or Atom document.

    ``items`` keeps document order. ``dialect`` records which grammar the
    document was decoded with; feeds composed by hand default to RSS.
    """

    title: str = ""
    link: str = ""
    description: str = ""
    publication_time: datetime.datetime = EPOCH
    items: tuple[Item, ...] = field(default_factory=tuple)
    dialect: FeedDialect = "RSS"

    def __post_init__(self) -> None:
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))
        if self.dialect not in DIALECTS:
            raise ValueError(f"Unknown feed dialect: {self.dialect!r}")
