"""
Tests for the RFC5322 value parsers.
"""

from datetime import datetime, timedelta, timezone

import pytest

from mailheaders.enums import TransferEncodingChoices
from mailheaders.exceptions import MalformedHeader
from mailheaders.formats.rfc5322.parser import (
    parse_address_list,
    parse_content_type,
    parse_date_time,
    parse_disposition,
    parse_mailbox,
    parse_mailbox_list,
    parse_message_id,
    parse_message_id_list,
    parse_opt_address_list,
    parse_path,
    parse_phrase_list,
    parse_received_token,
    parse_transfer_encoding,
    parse_unknown,
    parse_unstructured,
)
from mailheaders.values import AddrSpec, Group, Mailbox, MessageID, Path


class TestMailboxParsing:
    """Tests for mailbox parsing."""

    def test_parse_bare_addr_spec(self):
        """Test parsing an address without a display name."""
        mailbox = parse_mailbox("user@example.com")
        assert mailbox == Mailbox(AddrSpec("user", "example.com"))
        assert mailbox.display_name is None

    def test_parse_name_addr(self):
        """Test parsing an address with a display name."""
        mailbox = parse_mailbox("Test User <user@example.com>")
        assert mailbox.display_name == "Test User"
        assert mailbox.address == "user@example.com"

    def test_parse_quoted_display_name_with_comma(self):
        """Test parsing a quoted display name containing a comma."""
        mailbox = parse_mailbox('"User, Test" <user@example.com>')
        assert mailbox.display_name == "User, Test"

    def test_parse_with_comments(self):
        """Test that comments around the address are ignored."""
        mailbox = parse_mailbox("Test User <user@example.com> (work)")
        assert mailbox.display_name == "Test User"
        assert mailbox.address == "user@example.com"

    def test_parse_quoted_local_part(self):
        """Test parsing an addr-spec with a quoted local-part."""
        mailbox = parse_mailbox('"john doe"@example.com')
        assert mailbox.addr_spec == AddrSpec("john doe", "example.com")

    def test_parse_encoded_display_name(self):
        """Test that encoded-words in a display name are decoded."""
        mailbox = parse_mailbox(
            "=?utf-8?q?Jos=C3=A9?= Garc=?iso-8859-1?q?=EDa?= <jg@example.com>"
        )
        assert mailbox.display_name == "José García"

    def test_parse_encoded_word_inside_quotes(self):
        """Test that a quoted display name made of encoded-words is decoded."""
        mailbox = parse_mailbox('"=?utf-8?b?SsO8cmdlbg==?=" <j@example.com>')
        assert mailbox.display_name == "Jürgen"

    def test_parse_utf8_display_name(self):
        """Test that raw UTF-8 in a display name is accepted."""
        mailbox = parse_mailbox("Renée <renee@example.com>".encode("utf-8"))
        assert mailbox.display_name == "Renée"

    def test_parse_obsolete_route(self):
        """Test that an obs-route inside the angle-addr is skipped."""
        mailbox = parse_mailbox("<@relay.example.net,@other.example:user@example.com>")
        assert mailbox.address == "user@example.com"

    def test_parse_whitespace_inside_angle_addr(self):
        """Test that whitespace inside the angle-addr is accepted."""
        mailbox = parse_mailbox("Name < user @ example.com >")
        assert mailbox.address == "user@example.com"

    def test_parse_punycode_domain(self):
        """Test that IDNA A-labels are decoded to Unicode."""
        mailbox = parse_mailbox("user@xn--bcher-kva.example")
        assert mailbox.addr_spec.domain == "bücher.example"

    def test_parse_domain_literal(self):
        """Test parsing a domain-literal."""
        mailbox = parse_mailbox("user@[192.0.2.1]")
        assert mailbox.addr_spec.domain == "[192.0.2.1]"

    def test_parse_folded_mailbox(self):
        """Test parsing a value that is still folded."""
        mailbox = parse_mailbox("Test\r\n User\r\n <user@example.com>")
        assert mailbox.display_name == "Test User"

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "Not an email address",
            "user@",
            "<user@example.com",
            '"unterminated <user@example.com>',
            "a@b.com, c@d.com",
        ],
    )
    def test_parse_invalid_mailbox(self, value):
        """Test that invalid mailboxes raise MalformedHeader."""
        with pytest.raises(MalformedHeader):
            parse_mailbox(value)


class TestAddressListParsing:
    """Tests for mailbox list and address list parsing."""

    def test_parse_mailbox_list(self):
        """Test parsing several mailboxes."""
        mailboxes = parse_mailbox_list(
            "Test User <user@example.com>, Another User <another@example.com>"
        )
        assert [mailbox.address for mailbox in mailboxes] == [
            "user@example.com",
            "another@example.com",
        ]

    def test_parse_empty_mailbox_list_fails(self):
        """Test that From needs at least one mailbox."""
        with pytest.raises(MalformedHeader, match="at least one mailbox"):
            parse_mailbox_list("  ")

    def test_parse_empty_elements(self):
        """Test that empty list elements (obs-mbox-list) are skipped."""
        mailboxes = parse_mailbox_list("a@example.com, , b@example.com,")
        assert [mailbox.address for mailbox in mailboxes] == [
            "a@example.com",
            "b@example.com",
        ]

    def test_parse_address_list_with_group(self):
        """Test parsing a list mixing mailboxes and groups."""
        addresses = parse_address_list(
            "alice@example.com, Friends: bob@example.com, Carol <carol@example.com>;,"
            " dave@example.com"
        )
        assert len(addresses) == 3
        assert addresses[0] == Mailbox(AddrSpec("alice", "example.com"))
        assert addresses[1] == Group(
            "Friends",
            (
                Mailbox(AddrSpec("bob", "example.com")),
                Mailbox(AddrSpec("carol", "example.com"), "Carol"),
            ),
        )
        assert addresses[2].address == "dave@example.com"

    def test_parse_undisclosed_recipients(self):
        """Test that a group may have no member."""
        addresses = parse_address_list("undisclosed-recipients:;")
        assert addresses == (Group("undisclosed-recipients"),)
        assert addresses[0].mailboxes == ()

    def test_parse_empty_optional_address_list(self):
        """Test that an empty Bcc value gives an empty list."""
        assert parse_opt_address_list("") == ()
        assert parse_opt_address_list("  \r\n ") == ()

    def test_parse_empty_address_list_fails(self):
        """Test that To needs at least one address."""
        with pytest.raises(MalformedHeader):
            parse_address_list("")

    def test_parse_group_without_semicolon_fails(self):
        """Test that a group must be closed."""
        with pytest.raises(MalformedHeader):
            parse_address_list("Friends: bob@example.com")


class TestPathParsing:
    """Tests for Return-Path parsing."""

    def test_parse_path(self):
        """Test parsing a regular reverse-path."""
        expected = Path(AddrSpec("bounce", "example.com"))
        assert parse_path("<bounce@example.com>") == expected

    def test_parse_null_path(self):
        """Test parsing the null reverse-path."""
        path = parse_path("<>")
        assert path.is_null
        assert str(path) == "<>"

    def test_parse_path_without_brackets(self):
        """Test that a bare addr-spec is accepted."""
        assert parse_path("bounce@example.com").addr_spec.local_part == "bounce"


class TestMessageIdParsing:
    """Tests for message identifier parsing."""

    def test_parse_message_id(self):
        """Test parsing a message identifier."""
        message_id = parse_message_id("<1234.5678@mail.example.com>")
        assert message_id == MessageID("1234.5678", "mail.example.com")
        assert str(message_id) == "<1234.5678@mail.example.com>"

    def test_parse_message_id_without_brackets(self):
        """Test that the obsolete bracket-less form is accepted."""
        assert parse_message_id("abc@example.com") == MessageID("abc", "example.com")

    def test_parse_message_id_with_literal(self):
        """Test a message identifier whose right part is a literal."""
        assert parse_message_id("<abc@[127.0.0.1]>").right == "[127.0.0.1]"

    def test_parse_unterminated_message_id(self):
        """Test that a missing closing bracket fails."""
        with pytest.raises(MalformedHeader):
            parse_message_id("<abc@example.com")

    def test_parse_references_keeps_order_and_duplicates(self):
        """Test that references keep their order and duplicates."""
        message_ids = parse_message_id_list(
            "<a@example.com>\r\n <b@example.com> <a@example.com>"
        )
        assert [message_id.left for message_id in message_ids] == ["a", "b", "a"]

    def test_parse_empty_message_id_list(self):
        """Test that an empty list is valid."""
        assert parse_message_id_list("") == ()

    def test_parse_obsolete_in_reply_to(self):
        """Test that phrases between message identifiers are skipped."""
        message_ids = parse_message_id_list(
            'Your message of "Monday" <a@example.com>, <b@example.com>'
        )
        assert message_ids == (
            MessageID("a", "example.com"),
            MessageID("b", "example.com"),
        )


class TestDateTimeParsing:
    """Tests for date-time parsing."""

    def test_parse_rfc5322_date(self):
        """Test parsing a standard date."""
        parsed = parse_date_time("Mon, 15 Jan 2024 10:30:00 +0000")
        assert parsed == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_parse_offset(self):
        """Test that the numeric zone is kept."""
        parsed = parse_date_time("Fri, 21 Nov 1997 09:55:06 -0600")
        assert parsed.utcoffset() == timedelta(hours=-6)
        assert parsed.hour == 9

    def test_parse_without_day_of_week_and_seconds(self):
        """Test that the day of week and the seconds are optional."""
        parsed = parse_date_time("1 Feb 2024 08:05 +0100")
        assert parsed == datetime(2024, 2, 1, 8, 5, tzinfo=timezone(timedelta(hours=1)))

    def test_parse_trailing_comment(self):
        """Test that a comment after the zone is ignored."""
        parsed = parse_date_time("Thu, 13 Feb 1969 23:32:54 -0330 (Newfoundland Time)")
        assert parsed.utcoffset() == timedelta(hours=-3, minutes=-30)

    def test_parse_unknown_local_zone(self):
        """Test that -0000 is read as UTC."""
        assert parse_date_time("1 Jan 2024 00:00:00 -0000").tzinfo == timezone.utc

    @pytest.mark.parametrize(
        "zone,hours",
        [("GMT", 0), ("UT", 0), ("UTC", 0), ("EST", -5), ("PDT", -7), ("Z", 0)],
    )
    def test_parse_obsolete_zones(self, zone, hours):
        """Test named and military zones."""
        parsed = parse_date_time(f"Tue, 2 Jan 2024 12:00:00 {zone}")
        assert parsed.utcoffset() == timedelta(hours=hours)

    @pytest.mark.parametrize(
        "year,expected",
        [("24", 2024), ("49", 2049), ("50", 1950), ("99", 1999), ("124", 2024)],
    )
    def test_parse_short_years(self, year, expected):
        """Test the two and three digit year pivot."""
        assert parse_date_time(f"1 Jan {year} 00:00 +0000").year == expected

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "not a date",
            "Mon, 15 Jan 2024 10:30:00 +100",
            "Mon, 15 Jan 2024 10:30:00 +01:00",
            "Mon, 15 Jan 2024 10:30:00 +0175",
            "Mon, 15 Jan 2024 10:30:00 +2400",
            "Mon, 15 Jan 2024 10:30:00 -9900",
            "Mon, 15 Jan 2024 10:30:00",
            "Mon, 15 Foo 2024 10:30:00 +0000",
            "Mon, 32 Jan 2024 10:30:00 +0000",
            "Mon, 15 Jan 2024 25:30:00 +0000",
            "Mon, 15 Jan 2024 10:30:00 +0000 trailing",
        ],
    )
    def test_parse_invalid_dates(self, value):
        """Test that invalid dates raise MalformedHeader."""
        with pytest.raises(MalformedHeader):
            parse_date_time(value)

    @pytest.mark.parametrize("zone", ["+2400", "+9900", "-2500"])
    def test_parse_zone_hours_out_of_range(self, zone):
        """Test that a zone of a day or more is malformed, not a ValueError."""
        with pytest.raises(MalformedHeader, match="invalid zone hours") as excinfo:
            parse_date_time(f"Mon, 15 Jan 2024 10:30:00 {zone}")
        assert excinfo.value.offset == 26

    def test_parse_largest_zone(self):
        """Test the largest offset a zone can carry."""
        parsed = parse_date_time("Mon, 15 Jan 2024 10:30:00 -2359")
        assert parsed.utcoffset() == -timedelta(hours=23, minutes=59)

    def test_day_of_week_mismatch_is_logged(self, caplog):
        """Test that a wrong day of week is accepted with a warning."""
        parsed = parse_date_time("Sun, 15 Jan 2024 10:30:00 +0000")
        assert parsed.day == 15
        assert "does not match" in caplog.text


class TestTextParsing:
    """Tests for unstructured text and phrase lists."""

    def test_parse_unstructured(self):
        """Test that folding and surrounding whitespace are removed."""
        assert parse_unstructured(" Hello\r\n  World ") == "Hello  World"

    def test_parse_unstructured_encoded_words(self):
        """Test that encoded-words are decoded in unstructured text."""
        assert (
            parse_unstructured("Re: =?utf-8?q?Caf=C3=A9?= =?utf-8?q?_cr=C3=A8me?= ok")
            == "Re: Café crème ok"
        )

    def test_parse_phrase_list(self):
        """Test that phrase lists split on top-level commas only."""
        assert parse_phrase_list('budget, "Q1, Q2" (a, comment), forecast') == (
            "budget",
            "Q1, Q2",
            "forecast",
        )

    def test_parse_phrase_list_encoded(self):
        """Test that phrases are decoded."""
        assert parse_phrase_list("=?utf-8?q?r=C3=A9union?=, agenda") == (
            "réunion",
            "agenda",
        )

    def test_parse_unknown_keeps_text(self):
        """Test that unknown values are kept as they are, unfolded."""
        value = " a  (b) =?utf-8?q?c?=\r\n\td "
        assert parse_unknown(value) == "a  (b) =?utf-8?q?c?=\td "


class TestReceivedParsing:
    """Tests for Received trace fields."""

    def test_parse_received(self):
        """Test parsing a Received field with clauses in order."""
        received = parse_received_token(
            "from mail.example.com (mail.example.com [192.0.2.1])\r\n"
            "\tby mx.example.net with ESMTPS id 4Xyz12\r\n"
            "\tfor <user@example.net>; Mon, 15 Jan 2024 10:30:00 +0000"
        )
        assert received.clauses == (
            ("from", "mail.example.com"),
            ("by", "mx.example.net"),
            ("with", "ESMTPS"),
            ("id", "4Xyz12"),
            ("for", "<user@example.net>"),
        )
        assert received.get("BY") == "mx.example.net"
        assert received.get("via") is None
        assert received.date == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_parse_received_only_date(self):
        """Test that every clause is optional."""
        received = parse_received_token("; Mon, 15 Jan 2024 10:30:00 +0000")
        assert received.clauses == ()

    def test_parse_received_out_of_order(self):
        """Test that clauses out of order are rejected."""
        with pytest.raises(MalformedHeader, match="out of order"):
            parse_received_token("by Y from X; Mon, 15 Jan 2024 10:30:00 +0000")

    def test_parse_received_in_order(self):
        """Test the same clauses in the right order."""
        received = parse_received_token("from X by Y; Mon, 15 Jan 2024 10:30:00 +0000")
        assert received.clauses == (("from", "X"), ("by", "Y"))

    def test_parse_received_quoted_string(self):
        """Test that a quoted-string clause value keeps its escapes."""
        received = parse_received_token(
            'from X with "a\\"b c"; Mon, 15 Jan 2024 10:30:00 +0000'
        )
        assert received.get("with") == '"a\\"b c"'

    def test_parse_received_without_date(self):
        """Test that the date is mandatory."""
        with pytest.raises(MalformedHeader, match="missing date-time"):
            parse_received_token("from X by Y")

    def test_parse_received_repeated_clause(self):
        """Test that a clause may not appear twice."""
        with pytest.raises(MalformedHeader):
            parse_received_token("from X from Y; Mon, 15 Jan 2024 10:30:00 +0000")

    def test_parse_received_empty_clause(self):
        """Test that a clause needs a value."""
        with pytest.raises(MalformedHeader, match="empty Received clause"):
            parse_received_token("from by Y; Mon, 15 Jan 2024 10:30:00 +0000")


class TestMimeParsing:
    """Tests for Content-Type, Content-Disposition and transfer encodings."""

    def test_parse_content_type(self):
        """Test parsing a media type with parameters."""
        content_type = parse_content_type('Text/HTML; Charset="UTF-8"; format=flowed')
        assert content_type.mime_type == "text/html"
        assert content_type.params == (("charset", "UTF-8"), ("format", "flowed"))
        assert content_type.get_param("CHARSET") == "UTF-8"

    def test_parse_content_type_with_comments(self):
        """Test that comments are allowed around the media type."""
        content_type = parse_content_type(
            "text/plain (body) ; charset=us-ascii (ascii)"
        )
        assert content_type.mime_type == "text/plain"
        assert content_type.get_param("charset") == "us-ascii"

    def test_parse_multipart_boundary(self):
        """Test that unquoted boundaries with special characters are accepted."""
        content_type = parse_content_type(
            "multipart/mixed;\r\n\tboundary=----=_Part_1234_5678.90"
        )
        assert content_type.is_multipart
        assert content_type.get_param("boundary") == "----=_Part_1234_5678.90"

    def test_parse_unknown_parameters_are_kept(self):
        """Test that parameters are preserved even when not standard."""
        content_type = parse_content_type("application/x-foo; x-custom=1; name=a.bin")
        assert content_type.params == (("x-custom", "1"), ("name", "a.bin"))

    def test_parse_content_type_without_subtype_fails(self):
        """Test that the subtype is mandatory."""
        with pytest.raises(MalformedHeader):
            parse_content_type("text")

    def test_parse_disposition(self):
        """Test parsing a disposition with a filename."""
        disposition = parse_disposition(
            'Attachment; filename="report 2024.pdf"; size=1024'
        )
        assert disposition.is_attachment
        assert disposition.filename == "report 2024.pdf"
        assert disposition.get_param("size") == "1024"

    def test_parse_extension_disposition(self):
        """Test that extension disposition types are kept."""
        disposition = parse_disposition("x-preview")
        assert disposition.disposition_type == "x-preview"
        assert not disposition.is_inline

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("7bit", TransferEncodingChoices.SEVEN_BIT),
            (" Base64 ", TransferEncodingChoices.BASE64),
            ("QUOTED-PRINTABLE", TransferEncodingChoices.QUOTED_PRINTABLE),
            ("binary (raw)", TransferEncodingChoices.BINARY),
            ("x-uuencode", "x-uuencode"),
        ],
    )
    def test_parse_transfer_encoding(self, value, expected):
        """Test registered and extension transfer encodings."""
        assert parse_transfer_encoding(value) == expected

    @pytest.mark.parametrize("value", ["uuencode", "x-", "", "7bit 8bit"])
    def test_parse_invalid_transfer_encoding(self, value):
        """Test that unrecognized transfer encodings fail."""
        with pytest.raises(MalformedHeader):
            parse_transfer_encoding(value)
