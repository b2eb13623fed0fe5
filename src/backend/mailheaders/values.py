"""
Typed values of header fields.

Every value is immutable once created. Parsers build them from header text and
composers render them back, so a value owns all of its strings and can outlive
the message it was read from.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional, Tuple, Union

from mailheaders.enums import DispositionTypeChoices

logger = logging.getLogger(__name__)

Params = Tuple[Tuple[str, str], ...]

# Order in which the clauses of a Received trace field must appear
RECEIVED_CLAUSES = ("from", "by", "via", "with", "id", "for")

# RFC 2046 boundary characters, the space is never used last
BOUNDARY_CHARS = (
    " '()+,-./0123456789:=?"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"
)
BOUNDARY_LENGTH = 66


def normalize_params(
    params: Union[Mapping[str, str], Iterable[Tuple[str, str]], None],
) -> Params:
    """
    Normalize MIME parameters to an ordered tuple of (name, value) pairs.

    Names are case-insensitive and stored lowercased. When a name repeats, the
    last value wins and keeps the position of the first occurrence.
    """
    if params is None:
        return ()
    items = params.items() if isinstance(params, Mapping) else params
    merged = {}
    for name, value in items:
        key = str(name).lower()
        if key in merged and merged[key] != value:
            logger.warning(
                "Duplicate MIME parameter %s, keeping the last value", key
            )
        merged[key] = str(value)
    return tuple(merged.items())


@dataclass(frozen=True)
class AddrSpec:
    """An addr-spec, `local-part@domain`, without display name."""

    local_part: str
    domain: str

    def __str__(self):
        return f"{self.local_part}@{self.domain}"


@dataclass(frozen=True)
class Mailbox:
    """A mailbox: an addr-spec with an optional display name."""

    addr_spec: AddrSpec
    display_name: Optional[str] = None

    def __post_init__(self):
        if not self.display_name:
            object.__setattr__(self, "display_name", None)

    @property
    def address(self) -> str:
        """The addr-spec as `local-part@domain`."""
        return str(self.addr_spec)

    def __str__(self):
        if self.display_name:
            return f"{self.display_name} <{self.addr_spec}>"
        return str(self.addr_spec)


@dataclass(frozen=True)
class Group:
    """A named group of mailboxes, possibly empty (`undisclosed-recipients:;`)."""

    display_name: str
    mailboxes: Tuple[Mailbox, ...] = ()

    def __post_init__(self):
        if not self.display_name:
            raise ValueError("A group requires a display name")
        object.__setattr__(self, "mailboxes", tuple(self.mailboxes))


@dataclass(frozen=True)
class MessageID:
    """A message identifier `<left@right>`, both sides are opaque tokens."""

    left: str
    right: str

    def __str__(self):
        return f"<{self.left}@{self.right}>"


@dataclass(frozen=True)
class Path:
    """The Return-Path value, an addr-spec or the null path `<>`."""

    addr_spec: Optional[AddrSpec] = None

    @property
    def is_null(self) -> bool:
        """Whether this is the null reverse-path used by bounces."""
        return self.addr_spec is None

    def __str__(self):
        return f"<{self.addr_spec or ''}>"


@dataclass(frozen=True)
class ReceivedToken:
    """
    One hop of message transit.

    Clauses are (name, value) pairs whose names are taken from
    RECEIVED_CLAUSES, each appearing at most once and in that relative order.
    """

    date: datetime
    clauses: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        clauses = tuple((name.lower(), value) for name, value in self.clauses)
        last_index = -1
        for name, value in clauses:
            if name not in RECEIVED_CLAUSES:
                raise ValueError(f"Unknown Received clause: {name}")
            index = RECEIVED_CLAUSES.index(name)
            if index <= last_index:
                raise ValueError(f"Received clause {name} is out of order")
            if not value:
                raise ValueError(f"Received clause {name} has no value")
            last_index = index
        object.__setattr__(self, "clauses", clauses)

    def get(self, name: str) -> Optional[str]:
        """Return the value of a clause, or None when it is absent."""
        return dict(self.clauses).get(name.lower())


@dataclass(frozen=True)
class ContentType:
    """A MIME media type with its parameters (Content-Type)."""

    maintype: str
    subtype: str
    params: Params = field(default=())

    def __post_init__(self):
        object.__setattr__(self, "maintype", self.maintype.lower())
        object.__setattr__(self, "subtype", self.subtype.lower())
        object.__setattr__(self, "params", normalize_params(self.params))

    @property
    def mime_type(self) -> str:
        """The `type/subtype` string."""
        return f"{self.maintype}/{self.subtype}"

    @property
    def is_multipart(self) -> bool:
        """Whether the media type is a multipart one."""
        return self.maintype == "multipart"

    def get_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return a parameter value, looked up case-insensitively."""
        return dict(self.params).get(name.lower(), default)

    @classmethod
    def multipart(cls, subtype: str, boundary: Optional[str] = None):
        """
        Build a `multipart/<subtype>` content type.

        Without an explicit boundary a random one is generated. It starts with
        `=_`, which is valid in neither base64 nor quoted-printable bodies, and
        is 66 characters long so that `boundary="..."` fits on a folded line.
        """
        if boundary is None:
            body = "".join(
                secrets.choice(BOUNDARY_CHARS) for _ in range(BOUNDARY_LENGTH - 3)
            )
            boundary = "=_" + body + secrets.choice(BOUNDARY_CHARS[1:])
        return cls("multipart", subtype, (("boundary", boundary),))


@dataclass(frozen=True)
class Disposition:
    """A content disposition with its parameters (Content-Disposition)."""

    disposition_type: str
    params: Params = field(default=())

    def __post_init__(self):
        object.__setattr__(self, "disposition_type", self.disposition_type.lower())
        object.__setattr__(self, "params", normalize_params(self.params))

    @property
    def is_attachment(self) -> bool:
        """Whether the part is meant to be shown as an attachment."""
        return self.disposition_type == DispositionTypeChoices.ATTACHMENT

    @property
    def is_inline(self) -> bool:
        """Whether the part is meant to be displayed inline."""
        return self.disposition_type == DispositionTypeChoices.INLINE

    @property
    def filename(self) -> Optional[str]:
        """The suggested file name, if any."""
        return self.get_param("filename")

    def get_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return a parameter value, looked up case-insensitively."""
        return dict(self.params).get(name.lower(), default)
