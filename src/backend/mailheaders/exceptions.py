"""
Errors raised while parsing and composing header fields.
"""


class HeaderError(Exception):
    """Base class for all header field errors."""


class MalformedHeader(HeaderError):
    """A header value violates the grammar of its field type."""

    def __init__(self, reason, offset=None, name=None):
        self.reason = reason
        self.offset = offset
        self.name = name
        super().__init__(reason)

    def __str__(self):
        message = self.reason
        if self.offset is not None:
            message = f"{message} (at offset {self.offset})"
        if self.name:
            message = f"{self.name}: {message}"
        return message


class UnsupportedCharset(HeaderError):
    """An encoded-word or parameter names a charset that cannot be handled."""

    def __init__(self, charset):
        self.charset = charset
        super().__init__(f"unsupported charset: {charset!r}")


class ValueTooLong(HeaderError):
    """A composed header line cannot be folded within the hard line limit."""

    def __init__(self, length, limit, name=None):
        self.length = length
        self.limit = limit
        self.name = name
        super().__init__(
            f"header line of {length} octets exceeds the limit of {limit} octets"
        )


class UnencodableValue(HeaderError):
    """A value cannot be represented in a 7-bit header field at all."""


class HeaderValidationError(HeaderError):
    """A set of header fields violates the message-level constraints."""

    def __init__(self, violations):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))
