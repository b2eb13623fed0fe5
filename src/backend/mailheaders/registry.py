"""
Header registry.

Routes a case-insensitive header name to its field type and multiplicity, and
through the field type to the parser and composer of its grammar. The table
is built once, when the registry is created, and only read afterwards. Names
missing from the table are handled as UNKNOWN and kept as opaque text.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from mailheaders.enums import FieldType, Multiplicity
from mailheaders.exceptions import (
    HeaderValidationError,
    MalformedHeader,
    UnsupportedCharset,
)
from mailheaders.formats.rfc5322 import composer, parser

logger = logging.getLogger(__name__)

# RFC 5322 section 2.2: printable US-ASCII characters except colon
HEADER_NAME_RE = re.compile(r"^[\x21-\x39\x3b-\x7e]+$")
HEADER_LINE_RE = re.compile(r"\r?\n")


@dataclass(frozen=True)
class HeaderDefinition:
    """One row of the registry table."""

    name: str
    field_type: FieldType
    multiplicity: Multiplicity
    note: str = ""


DEFAULT_DEFINITIONS = (
    HeaderDefinition("Date", FieldType.DATE_TIME, Multiplicity.EXACTLY_ONE),
    HeaderDefinition("From", FieldType.MAILBOX_LIST, Multiplicity.EXACTLY_ONE),
    HeaderDefinition("Sender", FieldType.MAILBOX, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("Reply-To", FieldType.ADDRESS_LIST, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("To", FieldType.ADDRESS_LIST, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("Cc", FieldType.ADDRESS_LIST, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("Bcc", FieldType.OPT_ADDRESS_LIST, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("Message-ID", FieldType.MESSAGE_ID, Multiplicity.AT_MOST_ONE),
    HeaderDefinition(
        "In-Reply-To", FieldType.MESSAGE_ID_LIST, Multiplicity.AT_MOST_ONE
    ),
    HeaderDefinition("References", FieldType.MESSAGE_ID_LIST, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("Subject", FieldType.UNSTRUCTURED, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("Comments", FieldType.UNSTRUCTURED, Multiplicity.ZERO_OR_MORE),
    HeaderDefinition("Keywords", FieldType.PHRASE_LIST, Multiplicity.ZERO_OR_MORE),
    HeaderDefinition("Resent-Date", FieldType.DATE_TIME, Multiplicity.ZERO_OR_MORE),
    HeaderDefinition("Resent-From", FieldType.MAILBOX_LIST, Multiplicity.ZERO_OR_MORE),
    HeaderDefinition("Resent-Sender", FieldType.MAILBOX, Multiplicity.ZERO_OR_MORE),
    HeaderDefinition("Resent-To", FieldType.ADDRESS_LIST, Multiplicity.ZERO_OR_MORE),
    HeaderDefinition("Resent-Cc", FieldType.ADDRESS_LIST, Multiplicity.ZERO_OR_MORE),
    HeaderDefinition(
        "Resent-Bcc", FieldType.OPT_ADDRESS_LIST, Multiplicity.ZERO_OR_MORE
    ),
    HeaderDefinition(
        "Resent-Message-ID", FieldType.MESSAGE_ID, Multiplicity.ZERO_OR_MORE
    ),
    HeaderDefinition(
        "Resent-Msg-ID",
        FieldType.MESSAGE_ID,
        Multiplicity.ZERO_OR_MORE,
        note="Spelling used by RFC 822 and older mailers for Resent-Message-ID.",
    ),
    HeaderDefinition(
        "Return-Path", FieldType.PATH, Multiplicity.ONE_OR_MORE_ORDERED_TRACE
    ),
    HeaderDefinition(
        "Received", FieldType.RECEIVED_TOKEN, Multiplicity.ONE_OR_MORE_ORDERED_TRACE
    ),
    HeaderDefinition("Content-Type", FieldType.MIME, Multiplicity.AT_MOST_ONE),
    HeaderDefinition("Content-ID", FieldType.MESSAGE_ID, Multiplicity.AT_MOST_ONE),
    HeaderDefinition(
        "Content-Transfer-Encoding",
        FieldType.TRANSFER_ENCODING,
        Multiplicity.AT_MOST_ONE,
    ),
    HeaderDefinition(
        "Content-Description",
        FieldType.TEXT,
        Multiplicity.AT_MOST_ONE,
        note="RFC 2045 calls its grammar text, it is parsed as unstructured.",
    ),
    HeaderDefinition(
        "Content-Disposition", FieldType.DISPOSITION, Multiplicity.AT_MOST_ONE
    ),
)

PARSERS: Dict[FieldType, Callable[[Union[str, bytes]], Any]] = {
    FieldType.DATE_TIME: parser.parse_date_time,
    FieldType.MAILBOX: parser.parse_mailbox,
    FieldType.MAILBOX_LIST: parser.parse_mailbox_list,
    FieldType.ADDRESS_LIST: parser.parse_address_list,
    FieldType.OPT_MAILBOX_LIST: parser.parse_opt_mailbox_list,
    FieldType.OPT_ADDRESS_LIST: parser.parse_opt_address_list,
    FieldType.MESSAGE_ID: parser.parse_message_id,
    FieldType.MESSAGE_ID_LIST: parser.parse_message_id_list,
    FieldType.UNSTRUCTURED: parser.parse_unstructured,
    FieldType.TEXT: parser.parse_unstructured,
    FieldType.PHRASE_LIST: parser.parse_phrase_list,
    FieldType.PATH: parser.parse_path,
    FieldType.RECEIVED_TOKEN: parser.parse_received_token,
    FieldType.MIME: parser.parse_content_type,
    FieldType.TRANSFER_ENCODING: parser.parse_transfer_encoding,
    FieldType.DISPOSITION: parser.parse_disposition,
    FieldType.UNKNOWN: parser.parse_unknown,
}

COMPOSERS: Dict[FieldType, Callable[[Any], List[composer.Chunk]]] = {
    FieldType.DATE_TIME: composer.render_date_time,
    FieldType.MAILBOX: composer.render_mailbox,
    FieldType.MAILBOX_LIST: composer.render_mailbox_list,
    FieldType.ADDRESS_LIST: composer.render_address_list,
    FieldType.OPT_MAILBOX_LIST: composer.render_opt_mailbox_list,
    FieldType.OPT_ADDRESS_LIST: composer.render_opt_address_list,
    FieldType.MESSAGE_ID: composer.render_message_id,
    FieldType.MESSAGE_ID_LIST: composer.render_message_id_list,
    FieldType.UNSTRUCTURED: composer.render_unstructured,
    FieldType.TEXT: composer.render_unstructured,
    FieldType.PHRASE_LIST: composer.render_phrase_list,
    FieldType.PATH: composer.render_path,
    FieldType.RECEIVED_TOKEN: composer.render_received_token,
    FieldType.MIME: composer.render_content_type,
    FieldType.TRANSFER_ENCODING: composer.render_transfer_encoding,
    FieldType.DISPOSITION: composer.render_disposition,
    FieldType.UNKNOWN: composer.render_unknown,
}

# Every field type needs both directions
for _table in (PARSERS, COMPOSERS):
    _missing = set(FieldType) - set(_table)
    if _missing:
        raise ImportError(f"field types without a grammar: {sorted(_missing)}")


def check_header_name(name: str) -> str:
    """Return the name if it is a valid field name, raise ValueError otherwise."""
    if not HEADER_NAME_RE.match(name or ""):
        raise ValueError(f"Invalid header name: {name!r}")
    return name


@dataclass(frozen=True)
class HeaderField:
    """A parsed header: its name as written, its field type and typed value."""

    name: str
    field_type: FieldType
    value: Any

    def to_lines(self, registry: Optional["HeaderRegistry"] = None) -> List[str]:
        """Compose the field back to folded lines, without line terminators."""
        registry = registry or default_registry
        return registry.compose_as(self.name, self.field_type, self.value)


@dataclass(frozen=True)
class ParsedHeaders:
    """Result of parsing a header block: the fields that parsed, the errors."""

    fields: Tuple[HeaderField, ...]
    errors: Tuple[Exception, ...]

    def get(self, name: str) -> Optional[HeaderField]:
        """Return the first field with the given name, if any."""
        for header in self.get_all(name):
            return header
        return None

    def get_all(self, name: str) -> List[HeaderField]:
        """Return every field with the given name, in order."""
        return [header for header in self.fields if header.name.lower() == name.lower()]


class HeaderRegistry:
    """
    Immutable mapping of header names to their grammar.

    Extra definitions are merged over the defaults (same name, any case,
    replaces the default row) before the table is frozen.
    """

    def __init__(
        self,
        definitions: Iterable[HeaderDefinition] = DEFAULT_DEFINITIONS,
        extra_definitions: Iterable[HeaderDefinition] = (),
    ):
        table = {}
        for definition in (*definitions, *extra_definitions):
            check_header_name(definition.name)
            table[definition.name.lower()] = HeaderDefinition(
                definition.name,
                FieldType(definition.field_type),
                Multiplicity(definition.multiplicity),
                definition.note,
            )
        self._table = MappingProxyType(table)

    def __contains__(self, name):
        return name.lower() in self._table

    def __len__(self):
        return len(self._table)

    @property
    def definitions(self) -> Tuple[HeaderDefinition, ...]:
        """All rows of the table."""
        return tuple(self._table.values())

    def get_definition(self, name: str) -> Optional[HeaderDefinition]:
        """Return the table row of a header, or None for unknown headers."""
        return self._table.get(name.lower())

    def lookup(self, name: str) -> Tuple[FieldType, Multiplicity]:
        """Return the field type and multiplicity of a header name."""
        definition = self._table.get(name.lower())
        if definition is None:
            return FieldType.UNKNOWN, Multiplicity.ZERO_OR_MORE
        return definition.field_type, definition.multiplicity

    def parse(self, name: str, value: Union[str, bytes]) -> HeaderField:
        """
        Parse the value of a header, folded or not.

        MalformedHeader errors are raised with the header name filled in.
        """
        field_type, _multiplicity = self.lookup(name)
        try:
            parsed = PARSERS[field_type](value)
        except MalformedHeader as e:
            e.name = name
            raise
        return HeaderField(name, field_type, parsed)

    def compose_as(self, name: str, field_type: FieldType, value: Any) -> List[str]:
        """Compose a value with the grammar of the given field type."""
        check_header_name(name)
        chunks = COMPOSERS[FieldType(field_type)](value)
        return composer.fold_header(name, chunks)

    def compose(self, name: str, value: Any) -> List[str]:
        """Compose a header to folded lines, without line terminators."""
        field_type, _multiplicity = self.lookup(name)
        return self.compose_as(name, field_type, value)

    def encode(self, name: str, value: Any) -> bytes:
        """Compose a header to bytes, CRLF terminated."""
        lines = self.compose(name, value)
        text = "\r\n".join(lines) + "\r\n"
        return text.encode("utf-8", errors="surrogateescape")

    def parse_headers(
        self, headers: Iterable[Tuple[str, Union[str, bytes]]]
    ) -> ParsedHeaders:
        """
        Parse every (name, value) pair independently.

        A header that fails to parse does not stop the others: its error is
        collected and the caller decides whether it matters.
        """
        fields = []
        errors = []
        for name, value in headers:
            try:
                fields.append(self.parse(name, value))
            except (MalformedHeader, UnsupportedCharset) as e:
                logger.warning("Could not parse header %s: %s", name, e)
                errors.append(e)
        return ParsedHeaders(tuple(fields), tuple(errors))

    def validate_headers(
        self, fields: Iterable[HeaderField], strict: bool = False
    ) -> List[str]:
        """
        Check a set of header fields against the message-level constraints.

        Reports missing mandatory fields, repeated single-occurrence fields and
        a From field with several mailboxes but no Sender. Returns the list of
        violations, or raises HeaderValidationError with strict=True.
        """
        fields = list(fields)
        counts = Counter(header.name.lower() for header in fields)
        violations = []
        for key, definition in self._table.items():
            if definition.multiplicity == Multiplicity.EXACTLY_ONE and not counts[key]:
                violations.append(f"Missing required header {definition.name}")
            if (
                definition.multiplicity
                in (Multiplicity.EXACTLY_ONE, Multiplicity.AT_MOST_ONE)
                and counts[key] > 1
            ):
                violations.append(
                    f"Header {definition.name} appears {counts[key]} times, at most once allowed"
                )
        for header in fields:
            if (
                header.name.lower() == "from"
                and header.field_type == FieldType.MAILBOX_LIST
                and len(header.value) > 1
                and not counts["sender"]
            ):
                violations.append("From has several mailboxes but there is no Sender")
        if violations and strict:
            raise HeaderValidationError(violations)
        return violations


def split_header_block(block: Union[str, bytes]) -> List[Tuple[str, str]]:
    """
    Split a raw header block into unfolded (name, value) pairs.

    Reading stops at the first empty line. Continuation lines are joined to
    their field, lines that are not fields are skipped with a warning.
    """
    if isinstance(block, bytes):
        block = block.decode("utf-8", errors="surrogateescape")
    headers: List[List[str]] = []
    for line in HEADER_LINE_RE.split(block):
        if not line:
            break
        if line[0] in " \t":
            if headers:
                headers[-1][1] += line
            else:
                logger.warning("Skipping continuation line without a field: %r", line)
            continue
        name, sep, value = line.partition(":")
        # obs-optional allows whitespace between the name and the colon
        name = name.rstrip(" \t")
        if not sep or not HEADER_NAME_RE.match(name):
            logger.warning("Skipping malformed header line: %r", line)
            continue
        headers.append([name, value])
    return [(name, value) for name, value in headers]


default_registry = HeaderRegistry()


def lookup(name: str) -> Tuple[FieldType, Multiplicity]:
    """Return the field type and multiplicity of a header name."""
    return default_registry.lookup(name)


def parse_header(name: str, value: Union[str, bytes]) -> HeaderField:
    """Parse a header with the default registry."""
    return default_registry.parse(name, value)


def compose_header(name: str, value: Any) -> List[str]:
    """Compose a header to folded lines with the default registry."""
    return default_registry.compose(name, value)


def encode_header(name: str, value: Any) -> bytes:
    """Compose a header to CRLF terminated bytes with the default registry."""
    return default_registry.encode(name, value)


def parse_headers(headers: Iterable[Tuple[str, Union[str, bytes]]]) -> ParsedHeaders:
    """Parse (name, value) pairs with the default registry, collecting errors."""
    return default_registry.parse_headers(headers)


def validate_headers(fields: Iterable[HeaderField], strict: bool = False) -> List[str]:
    """Validate header fields against the default registry."""
    return default_registry.validate_headers(fields, strict=strict)
