"""
Typed parsers of header field values.

Each parser takes an unfolded header value and returns the typed value of its
field, or raises MalformedHeader. The address grammar is a recursive descent
over the tokenizer primitives, display names are decoded with the
encoded-word codec once the phrase has been extracted.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Tuple, Union

from mailheaders.enums import TransferEncodingChoices
from mailheaders.exceptions import MalformedHeader
from mailheaders.formats.rfc2047 import codec
from mailheaders.formats.rfc2231.parameters import read_parameters
from mailheaders.formats.rfc5322.tokenizer import (
    HeaderTokenizer,
    Word,
    decode_8bit,
    quote_string,
    unfold,
)
from mailheaders.values import (
    RECEIVED_CLAUSES,
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

Address = Union[Mailbox, Group]

DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
MONTH_NAMES = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)  # fmt: skip

# obs-zone of RFC 5322 section 4.3, plus UTC which is seen in the wild.
# Values are offsets in hours.
OBSOLETE_ZONES = {
    "ut": 0,
    "utc": 0,
    "gmt": 0,
    "est": -5,
    "edt": -4,
    "cst": -6,
    "cdt": -5,
    "mst": -7,
    "mdt": -6,
    "pst": -8,
    "pdt": -7,
}


def _tokenizer(value: str) -> HeaderTokenizer:
    return HeaderTokenizer(decode_8bit(unfold(value)))


def _decode_phrase(words: List[Word]) -> str:
    """Turn the words of a phrase into text, decoding encoded-words."""
    fragments = []
    for index, word in enumerate(words):
        if index and word.spaced:
            fragments.append(codec.Fragment(codec.WHITESPACE, " "))
        if word.quoted and not codec.is_encoded_sequence(word.text):
            fragments.append(codec.Fragment(codec.TEXT, word.text))
        else:
            fragments.extend(codec.iter_fragments(word.text))
    return codec.join_fragments(fragments)


def _decode_domain(domain: str) -> str:
    """Decode the IDNA A-labels of a domain to Unicode."""
    if domain.startswith("[") or "xn--" not in domain.lower():
        return domain
    labels = []
    for label in domain.split("."):
        if label.lower().startswith("xn--"):
            try:
                label = label.encode("ascii").decode("idna")
            except UnicodeError:
                logger.warning("Keeping undecodable IDNA label %r", label)
        labels.append(label)
    return ".".join(labels)


# Addresses


def read_addr_spec(tokenizer: HeaderTokenizer) -> AddrSpec:
    """Read `local-part@domain`."""
    tokenizer.skip_cfws()
    local_part = tokenizer.read_local_part()
    tokenizer.skip_cfws()
    tokenizer.expect("@")
    domain = tokenizer.read_domain()
    return AddrSpec(local_part, _decode_domain(domain))


def _read_obsolete_route(tokenizer: HeaderTokenizer):
    """Skip an obs-route (`@relay1,@relay2:`) inside an angle-addr."""
    start = tokenizer.pos
    while True:
        tokenizer.skip_cfws()
        if tokenizer.peek() == ",":
            tokenizer.pos += 1
            continue
        if tokenizer.peek() == ":":
            tokenizer.pos += 1
            break
        tokenizer.expect("@")
        tokenizer.read_domain()
    logger.debug("Ignoring obsolete route %r", tokenizer.text[start : tokenizer.pos])


def read_angle_addr(tokenizer: HeaderTokenizer) -> AddrSpec:
    """Read `<addr-spec>`, accepting whitespace and a route inside."""
    tokenizer.skip_cfws()
    tokenizer.expect("<")
    tokenizer.skip_cfws()
    if tokenizer.peek() == "@":
        _read_obsolete_route(tokenizer)
    addr_spec = read_addr_spec(tokenizer)
    tokenizer.skip_cfws()
    tokenizer.expect(">")
    tokenizer.skip_cfws()
    return addr_spec


def read_mailbox(tokenizer: HeaderTokenizer) -> Mailbox:
    """Read a mailbox: `name-addr` or a bare `addr-spec`."""
    start = tokenizer.pos
    tokenizer.skip_cfws()
    if tokenizer.peek() == "<":
        return Mailbox(read_angle_addr(tokenizer))
    words = tokenizer.read_phrase()
    tokenizer.skip_cfws()
    if tokenizer.peek() == "<":
        display_name = _decode_phrase(words)
        return Mailbox(read_angle_addr(tokenizer), display_name)
    # No angle bracket, the words were the start of an addr-spec
    tokenizer.pos = start
    addr_spec = read_addr_spec(tokenizer)
    tokenizer.skip_cfws()
    return Mailbox(addr_spec)


def _read_list(
    tokenizer: HeaderTokenizer,
    read_item: Callable[[HeaderTokenizer], object],
    terminator: str = "",
) -> list:
    """Read a comma separated list, skipping empty elements (obs-list)."""
    items = []
    while True:
        tokenizer.skip_cfws()
        if tokenizer.at_end() or (terminator and tokenizer.peek() == terminator):
            return items
        if tokenizer.peek() == ",":
            logger.debug("Skipping empty list element at offset %s", tokenizer.pos)
            tokenizer.pos += 1
            continue
        items.append(read_item(tokenizer))
        tokenizer.skip_cfws()
        if tokenizer.peek() != ",":
            return items
        tokenizer.pos += 1


def read_group(tokenizer: HeaderTokenizer) -> Group:
    """Read `display-name: [mailbox-list];`."""
    tokenizer.skip_cfws()
    name_offset = tokenizer.pos
    display_name = _decode_phrase(tokenizer.read_phrase())
    if not display_name:
        raise tokenizer.error("group display name is mandatory", offset=name_offset)
    tokenizer.skip_cfws()
    tokenizer.expect(":")
    mailboxes = _read_list(tokenizer, read_mailbox, terminator=";")
    tokenizer.skip_cfws()
    tokenizer.expect(";")
    tokenizer.skip_cfws()
    return Group(display_name, tuple(mailboxes))


def read_address(tokenizer: HeaderTokenizer) -> Address:
    """Read an address: a mailbox or a group."""
    start = tokenizer.pos
    tokenizer.skip_cfws()
    if tokenizer.peek() != "<":
        words = tokenizer.read_phrase()
        tokenizer.skip_cfws()
        if tokenizer.peek() == ":" and words:
            tokenizer.pos = start
            return read_group(tokenizer)
    tokenizer.pos = start
    return read_mailbox(tokenizer)


def parse_mailbox(value: str) -> Mailbox:
    """Parse a single mailbox (Sender, Resent-Sender)."""
    tokenizer = _tokenizer(value)
    mailbox = read_mailbox(tokenizer)
    tokenizer.expect_end()
    return mailbox


def parse_opt_mailbox_list(value: str) -> Tuple[Mailbox, ...]:
    """Parse a possibly empty list of mailboxes."""
    tokenizer = _tokenizer(value)
    mailboxes = _read_list(tokenizer, read_mailbox)
    tokenizer.expect_end()
    return tuple(mailboxes)


def parse_mailbox_list(value: str) -> Tuple[Mailbox, ...]:
    """Parse a list of at least one mailbox (From, Resent-From)."""
    mailboxes = parse_opt_mailbox_list(value)
    if not mailboxes:
        raise MalformedHeader("at least one mailbox is required", offset=0)
    return mailboxes


def parse_opt_address_list(value: str) -> Tuple[Address, ...]:
    """Parse a possibly empty list of mailboxes and groups (Bcc)."""
    tokenizer = _tokenizer(value)
    addresses = _read_list(tokenizer, read_address)
    tokenizer.expect_end()
    return tuple(addresses)


def parse_address_list(value: str) -> Tuple[Address, ...]:
    """Parse a list of at least one mailbox or group (To, Cc, Reply-To)."""
    addresses = parse_opt_address_list(value)
    if not addresses:
        raise MalformedHeader("at least one address is required", offset=0)
    return addresses


def parse_path(value: str) -> Path:
    """Parse a Return-Path: `<addr-spec>` or the null path `<>`."""
    tokenizer = _tokenizer(value)
    tokenizer.skip_cfws()
    if tokenizer.peek() != "<":
        logger.debug("Accepting Return-Path without angle brackets: %r", value)
        addr_spec = read_addr_spec(tokenizer)
        tokenizer.expect_end()
        return Path(addr_spec)
    tokenizer.pos += 1
    tokenizer.skip_cfws()
    if tokenizer.peek() == ">":
        tokenizer.pos += 1
        tokenizer.expect_end()
        return Path()
    if tokenizer.peek() == "@":
        _read_obsolete_route(tokenizer)
    addr_spec = read_addr_spec(tokenizer)
    tokenizer.skip_cfws()
    tokenizer.expect(">")
    tokenizer.expect_end()
    return Path(addr_spec)


# Message identifiers


def read_msg_id(tokenizer: HeaderTokenizer) -> MessageID:
    """Read `<id-left@id-right>`, or the bracket-less obsolete form."""
    tokenizer.skip_cfws()
    bracketed = tokenizer.peek() == "<"
    if bracketed:
        tokenizer.pos += 1
    left = tokenizer.read_local_part()
    tokenizer.skip_cfws()
    tokenizer.expect("@")
    right = tokenizer.read_domain()
    if bracketed:
        tokenizer.expect(">")
    else:
        logger.debug("Accepting message id without angle brackets")
    tokenizer.skip_cfws()
    return MessageID(left, right)


def parse_message_id(value: str) -> MessageID:
    """Parse a single message identifier (Message-ID, Content-ID)."""
    tokenizer = _tokenizer(value)
    message_id = read_msg_id(tokenizer)
    tokenizer.expect_end()
    return message_id


def parse_message_id_list(value: str) -> Tuple[MessageID, ...]:
    """
    Parse a possibly empty list of message identifiers (In-Reply-To, References).

    Order and duplicates are preserved. Phrases between identifiers
    (obs-in-reply-to) and commas are skipped.
    """
    tokenizer = _tokenizer(value)
    message_ids = []
    while True:
        tokenizer.skip_cfws()
        if tokenizer.at_end():
            return tuple(message_ids)
        if tokenizer.peek() == ",":
            tokenizer.pos += 1
            continue
        start = tokenizer.pos
        try:
            message_ids.append(read_msg_id(tokenizer))
            continue
        except MalformedHeader as e:
            if tokenizer.text[start] == "<":
                raise
            error = e
        tokenizer.pos = start
        if not tokenizer.read_phrase():
            raise error
        logger.debug(
            "Skipping phrase %r in message id list",
            tokenizer.text[start : tokenizer.pos],
        )


# Date and time


def _read_number(
    tokenizer: HeaderTokenizer, what: str, min_digits: int, max_digits: int
) -> int:
    offset = tokenizer.pos
    text = tokenizer.read_atom_text()
    if not text.isdigit() or not min_digits <= len(text) <= max_digits:
        raise tokenizer.error(f"invalid {what} {text!r}", offset=offset)
    return int(text)


def _read_zone(tokenizer: HeaderTokenizer) -> timezone:
    offset = tokenizer.pos
    sign = tokenizer.peek()
    if sign and sign in "+-":
        tokenizer.pos += 1
        digits = tokenizer.read_atom_text() if tokenizer.peek() else ""
        if len(digits) != 4 or not digits.isdigit():
            raise tokenizer.error(
                f"numeric zone must be exactly +HHMM or -HHMM, found {sign}{digits}",
                offset=offset,
            )
        hours, minutes = int(digits[:2]), int(digits[2:])
        if hours > 23:
            raise tokenizer.error(
                f"invalid zone hours in {sign}{digits}", offset=offset
            )
        if minutes > 59:
            raise tokenizer.error(
                f"invalid zone minutes in {sign}{digits}", offset=offset
            )
        if sign == "-" and hours == 0 and minutes == 0:
            # -0000: the local time zone is unknown, the time is in UTC
            return timezone.utc
        delta = timedelta(hours=hours, minutes=minutes)
        return timezone(-delta if sign == "-" else delta)
    if not tokenizer.peek():
        raise tokenizer.error("missing time zone")
    name = tokenizer.read_atom_text()
    hours = OBSOLETE_ZONES.get(name.lower())
    if hours is not None:
        logger.debug("Accepting obsolete zone %s", name)
        return timezone(timedelta(hours=hours)) if hours else timezone.utc
    if len(name) == 1 and name.isalpha() and name.lower() != "j":
        # Military zones were defined with inverted signs, RFC 5322 reads them as -0000
        logger.debug("Accepting military zone %s as -0000", name)
        return timezone.utc
    raise tokenizer.error(f"unknown time zone {name!r}", offset=offset)


def read_date_time(tokenizer: HeaderTokenizer) -> datetime:
    """Read `[day-of-week ,] day month year hour:minute[:second] zone`."""
    tokenizer.skip_cfws()
    start = tokenizer.pos
    day_name = None
    text = tokenizer.read_atom_text()
    if not text.isdigit():
        if text[:3].lower() not in DAY_NAMES:
            raise tokenizer.error(f"invalid day of week {text!r}", offset=start)
        day_name = text[:3].lower()
        tokenizer.skip_cfws()
        if tokenizer.peek() == ",":
            tokenizer.pos += 1
        else:
            logger.debug("Accepting day of week without comma")
        tokenizer.skip_cfws()
    else:
        tokenizer.pos = start

    day = _read_number(tokenizer, "day", 1, 2)
    tokenizer.skip_cfws()
    offset = tokenizer.pos
    month_text = tokenizer.read_atom_text()
    if month_text[:3].lower() not in MONTH_NAMES or (
        len(month_text) > 3 and not month_text.isalpha()
    ):
        raise tokenizer.error(f"invalid month {month_text!r}", offset=offset)
    month = MONTH_NAMES.index(month_text[:3].lower()) + 1
    tokenizer.skip_cfws()
    offset = tokenizer.pos
    year_text = tokenizer.read_atom_text()
    if not year_text.isdigit() or len(year_text) < 2:
        raise tokenizer.error(f"invalid year {year_text!r}", offset=offset)
    year = int(year_text)
    if len(year_text) == 2:
        # RFC 5322 section 4.3
        year += 2000 if year < 50 else 1900
    elif len(year_text) == 3:
        year += 1900

    tokenizer.skip_cfws()
    hour = _read_number(tokenizer, "hour", 1, 2)
    tokenizer.skip_cfws()
    tokenizer.expect(":")
    tokenizer.skip_cfws()
    minute = _read_number(tokenizer, "minute", 1, 2)
    tokenizer.skip_cfws()
    second = 0
    if tokenizer.peek() == ":":
        tokenizer.pos += 1
        tokenizer.skip_cfws()
        second = _read_number(tokenizer, "second", 1, 2)
        tokenizer.skip_cfws()
    if second == 60:
        logger.debug("Reading leap second as second 59")
        second = 59
    zone = _read_zone(tokenizer)
    tokenizer.skip_cfws()

    try:
        value = datetime(year, month, day, hour, minute, second, tzinfo=zone)
    except ValueError as e:
        raise tokenizer.error(f"invalid date components: {e}", offset=start) from e
    if day_name is not None and DAY_NAMES[value.weekday()] != day_name:
        logger.warning(
            "Day of week %s does not match date %s", day_name, value.date().isoformat()
        )
    return value


def parse_date_time(value: str) -> datetime:
    """Parse an RFC 5322 date-time into an aware datetime."""
    tokenizer = _tokenizer(value)
    result = read_date_time(tokenizer)
    tokenizer.expect_end()
    return result


# Unstructured text and phrases


def parse_unstructured(value: str) -> str:
    """Parse unstructured text (Subject, Comments, Content-Description)."""
    return codec.decode_text(decode_8bit(unfold(value)).strip(" \t"))


def parse_phrase_list(value: str) -> Tuple[str, ...]:
    """Parse a comma separated list of phrases (Keywords)."""
    tokenizer = _tokenizer(value)
    phrases = []
    while True:
        tokenizer.skip_cfws()
        if tokenizer.at_end():
            return tuple(phrases)
        if tokenizer.peek() == ",":
            tokenizer.pos += 1
            continue
        words = tokenizer.read_phrase()
        if not words:
            raise tokenizer.error(
                f"unexpected character {tokenizer.peek()!r} in phrase"
            )
        phrases.append(_decode_phrase(words))
        tokenizer.skip_cfws()
        if not tokenizer.at_end():
            tokenizer.expect(",")


def parse_unknown(value: str) -> str:
    """Keep the value of an unrecognised header as opaque text."""
    return unfold(value).lstrip(" \t")


# Trace fields


def _read_received_item(tokenizer: HeaderTokenizer) -> Tuple[str, bool]:
    """Read one received-token, return its text and whether it is a bare word."""
    char = tokenizer.peek()
    if char == "<":
        return f"<{read_angle_addr(tokenizer)}>", False
    if char == '"':
        return quote_string(tokenizer.read_quoted_string()), False
    if char == "[":
        return tokenizer.read_domain_literal(), False
    start = tokenizer.pos
    while tokenizer.peek() and tokenizer.peek() not in ' \t\r\n(;<"':
        tokenizer.pos += 1
    if tokenizer.pos == start:
        raise tokenizer.error(f"unexpected character {char!r} in Received")
    return tokenizer.text[start : tokenizer.pos], True


def parse_received_token(value: str) -> ReceivedToken:
    """
    Parse a Received trace field.

    Clauses must follow the order from, by, via, with, id, for, each at most
    once, and the date-time after the semicolon is mandatory.
    """
    tokenizer = _tokenizer(value)
    clauses: List[Tuple[str, List[str]]] = []
    last_index = -1
    while True:
        tokenizer.skip_cfws()
        if tokenizer.at_end():
            raise tokenizer.error("missing date-time after ';'")
        if tokenizer.peek() == ";":
            tokenizer.pos += 1
            break
        offset = tokenizer.pos
        text, bare = _read_received_item(tokenizer)
        keyword = text.lower()
        if bare and keyword in RECEIVED_CLAUSES:
            index = RECEIVED_CLAUSES.index(keyword)
            if index <= last_index:
                raise tokenizer.error(
                    f"Received clause {keyword!r} out of order after {clauses[-1][0]!r}",
                    offset=offset,
                )
            if clauses and not clauses[-1][1]:
                raise tokenizer.error(
                    f"empty Received clause {clauses[-1][0]!r}", offset=offset
                )
            last_index = index
            clauses.append((keyword, []))
        elif not clauses:
            raise tokenizer.error(
                f"Received value must start with a clause name, found {text!r}",
                offset=offset,
            )
        else:
            clauses[-1][1].append(text)

    if clauses and not clauses[-1][1]:
        raise tokenizer.error(f"empty Received clause {clauses[-1][0]!r}")
    date = read_date_time(tokenizer)
    tokenizer.expect_end()
    return ReceivedToken(
        date=date, clauses=tuple((name, " ".join(words)) for name, words in clauses)
    )


# MIME fields


def parse_content_type(value: str) -> ContentType:
    """Parse a Content-Type: `type/subtype *(; parameter)`."""
    tokenizer = _tokenizer(value)
    tokenizer.skip_cfws()
    maintype = tokenizer.read_token()
    tokenizer.skip_cfws()
    tokenizer.expect("/")
    tokenizer.skip_cfws()
    subtype = tokenizer.read_token()
    params = read_parameters(tokenizer)
    return ContentType(maintype, subtype, tuple(params))


def parse_disposition(value: str) -> Disposition:
    """Parse a Content-Disposition: `type *(; parameter)`."""
    tokenizer = _tokenizer(value)
    tokenizer.skip_cfws()
    disposition_type = tokenizer.read_token()
    params = read_parameters(tokenizer)
    return Disposition(disposition_type, tuple(params))


def parse_transfer_encoding(value: str) -> Union[TransferEncodingChoices, str]:
    """
    Parse a Content-Transfer-Encoding.

    Registered encodings are returned as TransferEncodingChoices members,
    `x-` extension tokens as lowercased strings. Anything else fails.
    """
    tokenizer = _tokenizer(value)
    tokenizer.skip_cfws()
    offset = tokenizer.pos
    token = tokenizer.read_token().lower()
    tokenizer.expect_end()
    if token in TransferEncodingChoices.values:
        return TransferEncodingChoices(token)
    if token.startswith("x-") and len(token) > 2:
        return token
    raise MalformedHeader(f"unrecognized transfer encoding {token!r}", offset=offset)

