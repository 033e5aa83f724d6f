from .dates import format_timestamp, parse_timestamp
from .exceptions import (
    DecodeError,
    EmptyDocumentBody,
    EncodeError,
    FeedDecodeError,
    FeedError,
    MalformedProlog,
    MissingPrologEnd,
    NotRDF,
    NotRSS,
    StructureError,
    UnknownEncoding,
    UnrecognizedFeed,
)
from .main import decode_feed
from .models import EPOCH, Feed, FeedDialect, Item
from .serialize import encode_feed

__all__ = [
    "decode_feed",
    "encode_feed",
    "parse_timestamp",
    "format_timestamp",
    "Feed",
    "Item",
    "FeedDialect",
    "EPOCH",
    "FeedError",
    "FeedDecodeError",
    "MalformedProlog",
    "UnknownEncoding",
    "DecodeError",
    "MissingPrologEnd",
    "EmptyDocumentBody",
    "StructureError",
    "NotRSS",
    "NotRDF",
    "UnrecognizedFeed",
    "EncodeError",
]
