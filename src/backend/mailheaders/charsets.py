"""
Charset collaborator used by the encoded-word codec and RFC 2231 parameters.

The header grammar treats charset names as opaque tokens, the translation
between bytes and text is delegated to a backend selected with the
MAILHEADERS_CHARSET_BACKEND setting.
"""

import codecs
import functools
import logging

from django.utils.module_loading import import_string

from mailheaders.conf import get_setting
from mailheaders.exceptions import UnencodableValue, UnsupportedCharset

logger = logging.getLogger(__name__)

UTF8_ALIASES = frozenset({"utf-8", "utf8", "us-ascii", "ascii"})

# Labels used by mail software when the real charset was lost
UNKNOWN_CHARSETS = frozenset({"unknown-8bit", "x-unknown", "unknown"})


class CodecsCharsetBackend:
    """Charset backend built on the codecs registered with Python."""

    def decode(self, charset: str, data: bytes) -> str:
        """Decode bytes declared in the given charset."""
        name = charset.strip().lower()
        if name in UTF8_ALIASES or name in UNKNOWN_CHARSETS:
            return data.decode("utf-8", errors="replace")
        try:
            codecs.lookup(name)
        except LookupError as e:
            raise UnsupportedCharset(charset) from e
        return data.decode(name, errors="replace")

    def encode(self, charset: str, text: str) -> bytes:
        """Encode text in the given charset."""
        name = charset.strip().lower()
        if name in UNKNOWN_CHARSETS:
            raise UnsupportedCharset(charset)
        try:
            return text.encode(name)
        except LookupError as e:
            raise UnsupportedCharset(charset) from e
        except UnicodeEncodeError as e:
            raise UnencodableValue(
                f"text cannot be represented in charset {charset}: {e.reason}"
            ) from e


@functools.lru_cache(maxsize=None)
def _load_backend(path):
    logger.debug("Loading charset backend %s", path)
    return import_string(path)()


def get_charset_backend():
    """Return the charset backend configured for the library."""
    return _load_backend(get_setting("MAILHEADERS_CHARSET_BACKEND"))
