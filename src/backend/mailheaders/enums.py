"""
Header fields enums declaration
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class FieldType(models.TextChoices):
    """Defines the grammar used to parse and compose a header field value."""

    DATE_TIME = "date_time", _("Date-time")
    MAILBOX = "mailbox", _("Mailbox")
    MAILBOX_LIST = "mailbox_list", _("Mailbox list")
    ADDRESS_LIST = "address_list", _("Address list")
    OPT_MAILBOX_LIST = "opt_mailbox_list", _("Optional mailbox list")
    OPT_ADDRESS_LIST = "opt_address_list", _("Optional address list")
    MESSAGE_ID = "message_id", _("Message identifier")
    MESSAGE_ID_LIST = "message_id_list", _("Message identifier list")
    UNSTRUCTURED = "unstructured", _("Unstructured")
    # Older MIME documents say "text" where RFC 5322 says "unstructured",
    # both tags share a single grammar implementation.
    TEXT = "text", _("Text")
    PHRASE_LIST = "phrase_list", _("Phrase list")
    PATH = "path", _("Path")
    RECEIVED_TOKEN = "received_token", _("Received token")
    MIME = "mime", _("MIME content type")
    TRANSFER_ENCODING = "transfer_encoding", _("Content transfer encoding")
    DISPOSITION = "disposition", _("Content disposition")
    UNKNOWN = "unknown", _("Unknown")


class Multiplicity(models.TextChoices):
    """Defines how many times a header field may appear in a message."""

    EXACTLY_ONE = "exactly_one", _("Exactly one")
    AT_MOST_ONE = "at_most_one", _("At most one")
    ZERO_OR_MORE = "zero_or_more", _("Zero or more")
    ONE_OR_MORE_ORDERED_TRACE = "ordered_trace", _("One or more, ordered trace")


class TransferEncodingChoices(models.TextChoices):
    """Defines the registered content transfer encodings (RFC 2045)."""

    SEVEN_BIT = "7bit", _("7bit")
    EIGHT_BIT = "8bit", _("8bit")
    BINARY = "binary", _("Binary")
    QUOTED_PRINTABLE = "quoted-printable", _("Quoted-printable")
    BASE64 = "base64", _("Base64")


class DispositionTypeChoices(models.TextChoices):
    """Defines the registered content disposition types (RFC 2183)."""

    INLINE = "inline", _("Inline")
    ATTACHMENT = "attachment", _("Attachment")
