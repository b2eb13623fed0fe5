"""
Typed parsing and composition of Internet message header fields.

This package parses RFC 5322 and MIME (RFC 2045, RFC 2183) header values into
immutable typed values and composes them back into folded header lines.
"""

from .exceptions import (
    HeaderError,
    HeaderValidationError,
    MalformedHeader,
    UnencodableValue,
    UnsupportedCharset,
    ValueTooLong,
)
from .registry import (
    HeaderDefinition,
    HeaderField,
    HeaderRegistry,
    ParsedHeaders,
    compose_header,
    default_registry,
    encode_header,
    lookup,
    parse_header,
    parse_headers,
    split_header_block,
    validate_headers,
)

__all__ = [
    # Registry
    "HeaderDefinition",
    "HeaderField",
    "HeaderRegistry",
    "ParsedHeaders",
    "default_registry",
    "lookup",
    "parse_header",
    "parse_headers",
    "compose_header",
    "encode_header",
    "split_header_block",
    "validate_headers",
    # Errors
    "HeaderError",
    "MalformedHeader",
    "UnsupportedCharset",
    "ValueTooLong",
    "UnencodableValue",
    "HeaderValidationError",
]
