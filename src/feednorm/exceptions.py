from __future__ import annotations

from typing import Mapping


class FeedError(ValueError):
    """Base class for every error raised by feednorm."""


class FeedDecodeError(FeedError):
    """Raised when a byte buffer cannot be turned into a Feed."""


class MalformedProlog(FeedDecodeError):
    """The buffer has no usable ``<?xml version="1.0" ...?>`` declaration."""


class UnknownEncoding(FeedDecodeError):
    def __init__(self, encoding: str) -> None:
        super().__init__(f"Unknown character encoding: {encoding!r}")
        self.encoding = encoding


class DecodeError(FeedDecodeError):
    """The buffer is not valid in the encoding its prolog declares."""

    def __init__(self, encoding: str, reason: str) -> None:
        super().__init__(f"Failed to decode buffer as {encoding}: {reason}")
        self.encoding = encoding
        self.reason = reason


class MissingPrologEnd(FeedDecodeError):
    """No ``?>`` terminator was found for the XML declaration."""


class EmptyDocumentBody(FeedDecodeError):
    """Nothing follows the XML declaration."""


class StructureError(FeedDecodeError):
    """The document does not have the shape of the attempted dialect."""

    def __init__(self, dialect: str, reason: str) -> None:
        super().__init__(f"{dialect} decode error: {reason}")
        self.dialect = dialect
        self.reason = reason


class NotRSS(FeedDecodeError):
    """Root element is not <rss>."""


class NotRDF(FeedDecodeError):
    """Root element is not <rdf:RDF>."""


class UnrecognizedFeed(FeedDecodeError):
    """No dialect accepted the document.

    ``errors`` maps each attempted dialect to the reason it was rejected,
    in the order the dialects were tried.
    """

    def __init__(self, errors: Mapping[str, FeedDecodeError]) -> None:
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {err}" for name, err in self.errors.items())
        super().__init__(f"Unable to parse as RSS, RDF, or Atom ({details})")


class EncodeError(FeedError):
    """Raised when a Feed cannot be serialized to RSS 2.0."""
