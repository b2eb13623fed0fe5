"""
MIME parameter lists (RFC 2045 section 5.1) with RFC 2231 extensions.

Reading handles quoted and token values, extended values tagged with a
charset and language (`name*=utf-8'en'%E2%82%AC`) and continuations
(`name*0=...; name*1=...`), which are reassembled in numeric order before the
value is exposed. Writing produces the simplest form that can carry a value
and splits it into continuations when it would not fit on a line.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote_from_bytes, unquote_to_bytes

from mailheaders.charsets import get_charset_backend
from mailheaders.conf import get_setting
from mailheaders.formats.rfc5322.tokenizer import (
    HeaderTokenizer,
    is_token_char,
    quote_string,
)

logger = logging.getLogger(__name__)

SECTION_RE = re.compile(r"^(?P<name>[^*]+)\*(?P<section>\d+)(?P<extended>\*?)$")

# Characters left unescaped in an extended value (RFC 2231 attribute-char)
EXTENDED_SAFE = "!#$&+-.^_`|~"


class _Parameter:
    """Everything seen for one parameter name while reading a list."""

    def __init__(self):
        self.plain: Optional[str] = None
        self.extended: Optional[str] = None
        self.sections: Dict[int, Tuple[bool, str]] = {}


def _read_value(tokenizer: HeaderTokenizer) -> str:
    """Read a parameter value: a quoted-string or a token."""
    if tokenizer.peek() == '"':
        return tokenizer.read_quoted_string()
    start = tokenizer.pos
    # Unquoted values often carry tspecials ("boundary=----=_Part_1"), read
    # them up to the next separator rather than failing.
    while tokenizer.peek() and tokenizer.peek() not in ' \t\r\n;"(':
        tokenizer.pos += 1
    value = tokenizer.text[start : tokenizer.pos]
    if not value:
        raise tokenizer.error("missing parameter value")
    if not all(is_token_char(char) for char in value):
        logger.debug("Accepting unquoted parameter value %r", value)
    return value


def _decode_extended(value: str, charset: Optional[str] = None) -> Tuple[str, bytes]:
    """Split the charset tag off an extended value and percent-decode it."""
    if charset is None:
        parts = value.split("'", 2)
        if len(parts) == 3:
            charset, _language, value = parts
        else:
            logger.warning("Extended parameter value without charset: %r", value)
            charset = ""
    return charset or "us-ascii", unquote_to_bytes(value)


def _assemble_sections(name: str, sections: Dict[int, Tuple[bool, str]]) -> str:
    """Join continuation sections in numeric order and decode the result."""
    numbers = sorted(sections)
    if numbers != list(range(len(numbers))):
        logger.warning(
            "Parameter %s has missing continuation sections %s", name, numbers
        )
    charset = None
    data = b""
    for number in numbers:
        extended, value = sections[number]
        if extended:
            if number == numbers[0]:
                charset, chunk = _decode_extended(value)
            else:
                _, chunk = _decode_extended(value, charset or "us-ascii")
            data += chunk
        else:
            data += value.encode("utf-8")
    return get_charset_backend().decode(charset or "utf-8", data)


def read_parameters(tokenizer: HeaderTokenizer) -> List[Tuple[str, str]]:
    """
    Read the `; name=value` list that follows a MIME type or disposition.

    Names are returned lowercased, in order of first appearance. An extended
    value wins over a plain one for the same name, otherwise the last value
    wins. Unknown parameters are preserved.
    """
    parameters: Dict[str, _Parameter] = {}
    while True:
        tokenizer.skip_cfws()
        if tokenizer.at_end():
            break
        tokenizer.expect(";")
        tokenizer.skip_cfws()
        if tokenizer.at_end() or tokenizer.peek() == ";":
            # Empty parameter, e.g. a trailing semicolon
            continue
        attribute = tokenizer.read_token().lower()
        tokenizer.skip_cfws()
        tokenizer.expect("=")
        tokenizer.skip_cfws()
        value = _read_value(tokenizer)

        match = SECTION_RE.match(attribute)
        if match:
            parameter = parameters.setdefault(match.group("name"), _Parameter())
            parameter.sections[int(match.group("section"))] = (
                bool(match.group("extended")),
                value,
            )
        elif attribute.endswith("*"):
            parameter = parameters.setdefault(attribute[:-1], _Parameter())
            charset, data = _decode_extended(value)
            parameter.extended = get_charset_backend().decode(charset, data)
        else:
            parameter = parameters.setdefault(attribute, _Parameter())
            if parameter.plain is not None and parameter.plain != value:
                logger.warning(
                    "Duplicate MIME parameter %s, keeping the last value", attribute
                )
            parameter.plain = value

    result = []
    for name, parameter in parameters.items():
        if parameter.sections:
            result.append((name, _assemble_sections(name, parameter.sections)))
        elif parameter.extended is not None:
            result.append((name, parameter.extended))
        else:
            result.append((name, parameter.plain))
    return result


def _needs_extended(value: str) -> bool:
    return any(ord(char) > 126 or ord(char) < 32 for char in value)


def _split_quoted(value: str, size: int) -> List[str]:
    """Split a value into pieces whose quoted form fits in size characters."""
    pieces = []
    piece = ""
    for char in value:
        if piece and len(quote_string(piece + char)) > size:
            pieces.append(piece)
            piece = ""
        piece += char
    pieces.append(piece)
    return pieces


def _split_extended(value: str, charset: str, size: int) -> List[str]:
    """Split a value into percent-encoded pieces of at most size characters."""
    backend = get_charset_backend()
    pieces = []
    piece = ""
    for char in value:
        encoded = quote_from_bytes(backend.encode(charset, char), safe=EXTENDED_SAFE)
        if piece and len(piece) + len(encoded) > size:
            pieces.append(piece)
            piece = ""
        piece += encoded
    pieces.append(piece)
    return pieces


def render_parameter(
    name: str, value: str, max_length: Optional[int] = None
) -> List[str]:
    """
    Render one parameter as one or more `name=value` strings.

    A value is written as a token when possible, as a quoted-string when it is
    printable ASCII and as an RFC 2231 extended value otherwise. When the
    result is longer than max_length it is split into numbered continuations.
    """
    if max_length is None:
        # Leave room for the folding space and the trailing semicolon
        max_length = get_setting("MAILHEADERS_LINE_LENGTH") - 2

    if _needs_extended(value):
        charset = get_setting("MAILHEADERS_ENCODED_WORD_CHARSET")
        prefix = f"{charset}''"
        encoded = quote_from_bytes(
            get_charset_backend().encode(charset, value), safe=EXTENDED_SAFE
        )
        single = f"{name}*={prefix}{encoded}"
        if len(single) <= max_length:
            return [single]
        # Keep room for "name*NN*=" and, on the first section, the charset tag
        size = max(max_length - len(name) - len(prefix) - 6, 12)
        pieces = _split_extended(value, charset, size)
        rendered = []
        for number, piece in enumerate(pieces):
            tag = prefix if number == 0 else ""
            rendered.append(f"{name}*{number}*={tag}{piece}")
        return rendered

    if value and all(is_token_char(char) for char in value):
        single = f"{name}={value}"
    else:
        single = f"{name}={quote_string(value)}"
    if len(single) <= max_length:
        return [single]
    size = max(max_length - len(name) - 5, 8)
    return [
        f"{name}*{number}={quote_string(piece)}"
        for number, piece in enumerate(_split_quoted(value, size))
    ]
