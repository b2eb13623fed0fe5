"""
Composers of header field values.

Each render function turns a typed value into chunks, pairs of (whitespace,
text) where the whitespace is a legal folding point. fold_header() then lays
the chunks out on physical lines no longer than MAILHEADERS_LINE_LENGTH where
possible, folding by starting a new line before a chunk's whitespace, and
fails with ValueTooLong when a line cannot fit in MAILHEADERS_MAX_LINE_LENGTH.
Non-ASCII text only ever leaves this module as encoded-words, RFC 2231
parameter values or IDNA domain labels.
"""

import logging
import re
from datetime import datetime
from email.utils import format_datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from mailheaders.conf import get_setting
from mailheaders.enums import TransferEncodingChoices
from mailheaders.exceptions import UnencodableValue, ValueTooLong
from mailheaders.formats.rfc2047 import codec
from mailheaders.formats.rfc2231.parameters import render_parameter
from mailheaders.formats.rfc5322.tokenizer import (
    is_atext,
    is_ctl,
    is_dot_atom_text,
    is_token_char,
    quote_string,
)
from mailheaders.values import (
    AddrSpec,
    ContentType,
    Disposition,
    Group,
    Mailbox,
    MessageID,
    Path,
    ReceivedToken,
)

logger = logging.getLogger(__name__)

Chunk = Tuple[str, str]


def _octets(text: str) -> int:
    return len(text.encode("utf-8", errors="surrogateescape"))


def fold_header(
    name: str,
    chunks: Iterable[Chunk],
    line_length: Optional[int] = None,
    max_line_length: Optional[int] = None,
) -> List[str]:
    """
    Lay out a header on physical lines, returned without line terminators.

    A line is only broken before a chunk that starts with whitespace and
    carries text, so joining the lines with CRLF gives a value that unfolds
    back to the exact original text.
    """
    if line_length is None:
        line_length = get_setting("MAILHEADERS_LINE_LENGTH")
    if max_line_length is None:
        max_line_length = get_setting("MAILHEADERS_MAX_LINE_LENGTH")

    prefix = f"{name}:"
    lines = []
    current = prefix
    for whitespace, text in chunks:
        piece = whitespace + text
        overflows = _octets(current) + _octets(piece) > line_length
        useful = current != prefix or _octets(piece) <= line_length
        if overflows and whitespace and text and useful:
            lines.append(current)
            current = piece
        else:
            current += piece
    lines.append(current)

    for line in lines:
        length = _octets(line)
        if length > max_line_length:
            raise ValueTooLong(length, max_line_length, name=name)
        if length > line_length:
            logger.debug("Header %s has an unbreakable line of %s octets", name, length)
    return lines


def _spaced(words: Iterable[str]) -> List[Chunk]:
    return [(" ", word) for word in words]


def _append(chunks: List[Chunk], suffix: str) -> List[Chunk]:
    """Glue a suffix to the last chunk (no folding point before it)."""
    whitespace, text = chunks[-1]
    chunks[-1] = (whitespace, text + suffix)
    return chunks


def _join_list(items: Sequence[List[Chunk]]) -> List[Chunk]:
    chunks: List[Chunk] = []
    for index, item in enumerate(items):
        chunks.extend(item)
        if index < len(items) - 1:
            _append(chunks, ",")
    return chunks


# Phrases and addresses


def _phrase_words(phrase: str) -> List[str]:
    """
    Render a phrase as words.

    Non-ASCII phrases become encoded-words, phrases made of atoms stay as they
    are and anything else is quoted. A quoted phrase is cut at its spaces,
    which are legal folding points inside a quoted-string.
    """
    if not phrase:
        raise UnencodableValue("a phrase cannot be empty")
    if codec.needs_encoding(phrase):
        return codec.encode_words(phrase)
    words = phrase.split(" ")
    if all(word and all(is_atext(char) for char in word) for word in words):
        return words
    return quote_string(phrase).split(" ")


def _domain_text(domain: str) -> str:
    if domain.startswith("[") and domain.endswith("]"):
        inner = domain[1:-1]
        if any(char in "[]\\" or is_ctl(char) or ord(char) > 126 for char in inner):
            raise UnencodableValue(f"invalid domain-literal {domain!r}")
        return domain
    labels = []
    for label in domain.split("."):
        if any(ord(char) > 127 for char in label):
            try:
                label = label.encode("idna").decode("ascii")
            except UnicodeError as e:
                raise UnencodableValue(
                    f"invalid internationalized domain {domain!r}"
                ) from e
        labels.append(label)
    text = ".".join(labels)
    if not is_dot_atom_text(text):
        raise UnencodableValue(f"invalid domain {domain!r}")
    return text


def _local_part_text(local_part: str) -> str:
    if is_dot_atom_text(local_part) and local_part.isascii():
        return local_part
    if not local_part.isascii():
        raise UnencodableValue(
            f"local-part {local_part!r} cannot be written in a 7-bit header"
        )
    if any(is_ctl(char) and char != "\t" for char in local_part):
        raise UnencodableValue(f"control character in local-part {local_part!r}")
    return quote_string(local_part)


def addr_spec_text(addr_spec: AddrSpec) -> str:
    """Render an addr-spec, quoting the local-part when needed."""
    return f"{_local_part_text(addr_spec.local_part)}@{_domain_text(addr_spec.domain)}"


def _mailbox_chunks(mailbox: Mailbox) -> List[Chunk]:
    address = addr_spec_text(mailbox.addr_spec)
    if mailbox.display_name:
        return _spaced(_phrase_words(mailbox.display_name)) + [(" ", f"<{address}>")]
    return [(" ", address)]


def _group_chunks(group: Group) -> List[Chunk]:
    chunks = _spaced(_phrase_words(group.display_name))
    if not group.mailboxes:
        return _append(chunks, ":;")
    _append(chunks, ":")
    chunks.extend(_join_list([_mailbox_chunks(mailbox) for mailbox in group.mailboxes]))
    return _append(chunks, ";")


def _address_chunks(address: Union[Mailbox, Group]) -> List[Chunk]:
    if isinstance(address, Group):
        return _group_chunks(address)
    return _mailbox_chunks(address)


def render_mailbox(value: Mailbox) -> List[Chunk]:
    """Render a single mailbox."""
    return _mailbox_chunks(value)


def render_opt_mailbox_list(value: Sequence[Mailbox]) -> List[Chunk]:
    """Render a possibly empty mailbox list."""
    return _join_list([_mailbox_chunks(mailbox) for mailbox in value])


def render_mailbox_list(value: Sequence[Mailbox]) -> List[Chunk]:
    """Render a mailbox list of at least one element."""
    if not value:
        raise UnencodableValue("a mailbox list requires at least one mailbox")
    return render_opt_mailbox_list(value)


def render_opt_address_list(value: Sequence[Union[Mailbox, Group]]) -> List[Chunk]:
    """Render a possibly empty address list."""
    return _join_list([_address_chunks(address) for address in value])


def render_address_list(value: Sequence[Union[Mailbox, Group]]) -> List[Chunk]:
    """Render an address list of at least one element."""
    if not value:
        raise UnencodableValue("an address list requires at least one address")
    return render_opt_address_list(value)


def render_path(value: Path) -> List[Chunk]:
    """Render a Return-Path."""
    if value.is_null:
        return [(" ", "<>")]
    return [(" ", f"<{addr_spec_text(value.addr_spec)}>")]


# Message identifiers


def message_id_text(value: MessageID) -> str:
    """Render `<left@right>`, failing on characters a message id cannot hold."""
    left = value.left
    if not left.isascii():
        raise UnencodableValue(f"non-ASCII message id {value.left!r}")
    if not is_dot_atom_text(left):
        left = _local_part_text(left)
    right = value.right
    valid_literal = (
        right.startswith("[")
        and right.endswith("]")
        and all(char not in "[]\\ " and 32 < ord(char) < 127 for char in right[1:-1])
    )
    if not valid_literal and not (right.isascii() and is_dot_atom_text(right)):
        raise UnencodableValue(f"invalid message id right part {value.right!r}")
    return f"<{left}@{right}>"


def render_message_id(value: MessageID) -> List[Chunk]:
    """Render a single message identifier."""
    return [(" ", message_id_text(value))]


def render_message_id_list(value: Sequence[MessageID]) -> List[Chunk]:
    """Render message identifiers separated by folding whitespace."""
    return _spaced(message_id_text(message_id) for message_id in value)


# Date, text and trace


def render_date_time(value: datetime) -> List[Chunk]:
    """Render a date-time; naive values are written with the -0000 zone."""
    return _spaced(format_datetime(value).split(" "))


def render_unstructured(value: str) -> List[Chunk]:
    """Render unstructured text, encoding the runs that are not plain ASCII."""
    text = value.strip(" \t")
    if not text:
        return []
    items = codec.encode_text(text)
    chunks = [(" ", items[0])]
    chunks.extend(zip(items[1::2], items[2::2]))
    return chunks


def render_phrase_list(value: Sequence[str]) -> List[Chunk]:
    """Render comma separated phrases."""
    return _join_list([_spaced(_phrase_words(phrase)) for phrase in value])


def render_received_token(value: ReceivedToken) -> List[Chunk]:
    """Render a Received trace field, clauses first and the date last."""
    chunks: List[Chunk] = []
    for name, text in value.clauses:
        words = text.split()
        for word in words:
            if not word.isascii() or any(
                char in "();" or is_ctl(char) for char in word
            ):
                raise UnencodableValue(f"invalid Received {name} clause {text!r}")
        chunks.append((" ", name))
        chunks.extend(_spaced(words))
    if chunks:
        _append(chunks, ";")
    else:
        chunks.append((" ", ";"))
    chunks.extend(render_date_time(value.date))
    return chunks


# MIME fields


def _check_token(token: str, what: str):
    if not token or not all(is_token_char(char) for char in token):
        raise UnencodableValue(f"invalid {what} {token!r}")


def _parameter_chunks(chunks: List[Chunk], params) -> List[Chunk]:
    line_length = get_setting("MAILHEADERS_LINE_LENGTH")
    for index, (name, value) in enumerate(params):
        _check_token(name, "parameter name")
        # Room for the folding space, and the separator unless this is the last one
        max_length = line_length - (1 if index == len(params) - 1 else 2)
        for rendered in render_parameter(name, value, max_length=max_length):
            _append(chunks, ";")
            chunks.append((" ", rendered))
    return chunks


def render_content_type(value: ContentType) -> List[Chunk]:
    """Render a Content-Type with its parameters."""
    _check_token(value.maintype, "media type")
    _check_token(value.subtype, "media subtype")
    return _parameter_chunks([(" ", value.mime_type)], value.params)


def render_disposition(value: Disposition) -> List[Chunk]:
    """Render a Content-Disposition with its parameters."""
    _check_token(value.disposition_type, "disposition type")
    return _parameter_chunks([(" ", value.disposition_type)], value.params)


def render_transfer_encoding(value: str) -> List[Chunk]:
    """Render a Content-Transfer-Encoding token."""
    token = str(value).lower()
    if token not in TransferEncodingChoices.values and not (
        token.startswith("x-") and len(token) > 2
    ):
        raise UnencodableValue(f"unrecognized transfer encoding {value!r}")
    _check_token(token, "transfer encoding")
    return [(" ", token)]


def render_unknown(value: str) -> List[Chunk]:
    """Render an unrecognised header value verbatim, only adding fold points."""
    if any(is_ctl(char) and char != "\t" for char in value):
        raise UnencodableValue(f"control character in header value {value!r}")
    chunks: List[Chunk] = []
    for whitespace, text in re.findall(r"([ \t]*)([^ \t]+)", value):
        chunks.append((whitespace if chunks else " " + whitespace, text))
    trailing = value[len(value.rstrip(" \t")) :]
    if trailing and chunks:
        chunks.append((trailing, ""))
    return chunks
