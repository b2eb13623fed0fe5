"""
Settings of the mail headers library.

Values are read from the Django settings when they are configured, which lets
a project tune folding and parsing limits. Outside of a configured Django
project the defaults below apply.
"""

from django.conf import settings

DEFAULTS = {
    # Recommended maximum length of a physical header line, CRLF excluded
    "MAILHEADERS_LINE_LENGTH": 78,
    # Hard maximum length of a physical header line, CRLF excluded
    "MAILHEADERS_MAX_LINE_LENGTH": 998,
    # Comments nest, parsing fails beyond this depth
    "MAILHEADERS_MAX_COMMENT_DEPTH": 32,
    # Charset used for produced encoded-words and RFC 2231 parameter values
    "MAILHEADERS_ENCODED_WORD_CHARSET": "utf-8",
    "MAILHEADERS_CHARSET_BACKEND": "mailheaders.charsets.CodecsCharsetBackend",
}


def get_setting(name):
    """Return the configured value of a library setting, or its default."""
    if settings.configured:
        return getattr(settings, name, DEFAULTS[name])
    return DEFAULTS[name]
