"""
Lexical primitives of RFC 5322 section 3.2.

The tokenizer walks an unfolded header value and exposes the atoms of the
grammar: atoms, dot-atoms, quoted-strings, nested comments and CFWS, plus the
addr-spec building blocks shared by every structured field. Obsolete RFC 822
forms (CFWS around dots, control characters in quoted text and comments) are
accepted when reading. Every failure raises MalformedHeader with the offset of
the offending character, nothing is silently truncated.
"""

import logging
import re
from typing import List, NamedTuple, Union

from mailheaders.conf import get_setting
from mailheaders.exceptions import MalformedHeader

logger = logging.getLogger(__name__)

WSP = " \t"
# CR and LF only appear when a caller hands over a value that is still folded
FWS_CHARS = " \t\r\n"
SPECIALS = '()<>[]:;@\\,."'
# RFC 2045 tspecials, used for MIME tokens
TSPECIALS = '()<>@,;:\\"/[]?='

FOLDING_RE = re.compile(r"\r?\n(?=[ \t])")
# Bytes that were not valid UTF-8, kept as lone surrogates by unfold()
ESCAPED_BYTES_RE = re.compile("[\udc80-\udcff]+")


class Word(NamedTuple):
    """A word of a phrase: an atom or the content of a quoted-string."""

    text: str
    quoted: bool = False
    # Whether CFWS separated this word from the previous one
    spaced: bool = False


def unfold(value: Union[str, bytes]) -> str:
    """
    Remove the line folding of a header value.

    Every CRLF (or bare LF) followed by whitespace is removed, the whitespace
    itself is kept. Byte values are decoded as UTF-8, undecodable bytes are
    preserved as surrogates so that they can be written back unchanged.
    """
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="surrogateescape")
    return FOLDING_RE.sub("", value).rstrip("\r\n")


def decode_8bit(text: str) -> str:
    """
    Read the bytes that unfold() kept as surrogates as Latin-1 text.

    Raw 8-bit header text that is not UTF-8 is most often in a Latin charset.
    Values of unrecognised headers keep the surrogates instead.
    """

    def latin1(match):
        return match.group().encode("utf-8", "surrogateescape").decode("latin-1")

    return ESCAPED_BYTES_RE.sub(latin1, text)


def is_ctl(char: str) -> bool:
    """Return whether the character is an ASCII control character."""
    return ord(char) < 32 or ord(char) == 127


def is_atext(char: str) -> bool:
    """Return whether the character may appear in an atom (RFC 5322 / 6532)."""
    if ord(char) > 127:
        return True
    return not is_ctl(char) and char != " " and char not in SPECIALS


def is_token_char(char: str) -> bool:
    """Return whether the character may appear in a MIME token (RFC 2045)."""
    return 32 < ord(char) < 127 and char not in TSPECIALS


def is_dot_atom_text(text: str) -> bool:
    """Return whether the text is a valid dot-atom-text."""
    return bool(text) and all(
        part and all(is_atext(char) for char in part) for part in text.split(".")
    )


def quote_string(text: str) -> str:
    """Render text as a quoted-string, escaping backslashes and quotes."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class HeaderTokenizer:
    """Cursor over an unfolded header value."""

    def __init__(self, text: str, max_comment_depth: int = None):
        self.text = text
        self.pos = 0
        if max_comment_depth is None:
            max_comment_depth = get_setting("MAILHEADERS_MAX_COMMENT_DEPTH")
        self.max_comment_depth = max_comment_depth

    def __repr__(self):
        before, after = self.text[: self.pos], self.text[self.pos :]
        return f"<HeaderTokenizer {before!r} | {after!r}>"

    def error(self, reason: str, offset: int = None) -> MalformedHeader:
        """Build the error reported for the current position."""
        return MalformedHeader(reason, offset=self.pos if offset is None else offset)

    def at_end(self) -> bool:
        """Return whether the whole value has been consumed."""
        return self.pos >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        """Return the character ahead of the cursor, or "" at the end."""
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def expect(self, char: str):
        """Consume the given character or fail."""
        if self.peek() != char:
            found = repr(self.peek()) if self.peek() else "end of value"
            raise self.error(f"expected {char!r}, found {found}")
        self.pos += 1

    def expect_end(self):
        """Fail unless only CFWS remains."""
        self.skip_cfws()
        if not self.at_end():
            raise self.error(f"unexpected text {self.text[self.pos:]!r}")

    def skip_fws(self) -> bool:
        """Skip folding whitespace, return whether any was found."""
        start = self.pos
        while self.peek() and self.peek() in FWS_CHARS:
            self.pos += 1
        return self.pos > start

    def skip_cfws(self) -> bool:
        """Skip comments and folding whitespace, return whether any was found."""
        found = False
        while True:
            if self.skip_fws():
                found = True
            elif self.peek() == "(":
                self.read_comment()
                found = True
            else:
                return found

    def read_comment(self, depth: int = 1) -> str:
        """
        Read a comment, nested comments included, and return its text.

        The nesting depth is bounded so that adversarial input fails instead of
        exhausting the stack.
        """
        if depth > self.max_comment_depth:
            raise self.error(
                f"comments nested deeper than {self.max_comment_depth} levels"
            )
        start = self.pos
        self.expect("(")
        parts = []
        while True:
            char = self.peek()
            if not char:
                raise self.error("unterminated comment", offset=start)
            if char == ")":
                self.pos += 1
                return "".join(parts)
            if char == "(":
                parts.append("(" + self.read_comment(depth + 1) + ")")
            elif char == "\\":
                parts.append(self._read_quoted_pair())
            elif char in "\r\n":
                self.pos += 1
            else:
                parts.append(char)
                self.pos += 1

    def _read_quoted_pair(self) -> str:
        start = self.pos
        self.pos += 1
        char = self.peek()
        if not char:
            raise self.error("backslash at end of value", offset=start)
        self.pos += 1
        return char

    def read_quoted_string(self) -> str:
        """Read a quoted-string and return its unescaped content."""
        start = self.pos
        self.expect('"')
        parts = []
        while True:
            char = self.peek()
            if not char:
                raise self.error("unterminated quoted-string", offset=start)
            if char == '"':
                self.pos += 1
                return "".join(parts)
            if char == "\\":
                parts.append(self._read_quoted_pair())
            elif char in "\r\n":
                self.pos += 1
            else:
                # obs-qtext: control characters are kept as they are
                parts.append(char)
                self.pos += 1

    def read_atom_text(self) -> str:
        """Read the characters of an atom."""
        start = self.pos
        while self.peek() and is_atext(self.peek()):
            self.pos += 1
        if self.pos == start:
            found = repr(self.peek()) if self.peek() else "end of value"
            raise self.error(f"expected an atom, found {found}")
        return self.text[start : self.pos]

    def read_dot_atom_text(self) -> str:
        """Read a dot-atom-text, without CFWS around the dots."""
        parts = [self.read_atom_text()]
        while self.peek() == "." and self.peek(1) and is_atext(self.peek(1)):
            self.pos += 1
            parts.append(self.read_atom_text())
        return ".".join(parts)

    def read_token(self) -> str:
        """Read a MIME token (RFC 2045)."""
        start = self.pos
        while self.peek() and is_token_char(self.peek()):
            self.pos += 1
        if self.pos == start:
            found = repr(self.peek()) if self.peek() else "end of value"
            raise self.error(f"expected a token, found {found}")
        return self.text[start : self.pos]

    def read_word(self) -> Word:
        """Read a word (atom or quoted-string) surrounded by optional CFWS."""
        spaced = self.skip_cfws()
        if self.peek() == '"':
            word = Word(self.read_quoted_string(), quoted=True, spaced=spaced)
        else:
            word = Word(self.read_atom_text(), spaced=spaced)
        self.skip_cfws()
        return word

    def read_phrase(self) -> List[Word]:
        """
        Read the words of a phrase, stopping before the first special.

        Periods are accepted after the first word (obs-phrase). The returned
        list is empty when no word starts at the cursor.
        """
        words = []
        while True:
            spaced = self.skip_cfws() and bool(words)
            char = self.peek()
            if char == '"':
                words.append(Word(self.read_quoted_string(), True, spaced))
            elif char == "." and words:
                self.pos += 1
                words.append(Word(".", False, spaced))
            elif char and is_atext(char):
                words.append(Word(self.read_atom_text(), False, spaced))
            else:
                return words

    def read_local_part(self) -> str:
        """
        Read a local-part and return its semantic text.

        Accepts dot-atom, quoted-string and obs-local-part (words joined by
        dots with CFWS around them).
        """
        words = [self.read_word()]
        while self.peek() == ".":
            self.pos += 1
            words.append(self.read_word())
        if len(words) > 1 and any(word.quoted for word in words):
            logger.debug("Accepting obsolete local-part %r", words)
        return ".".join(word.text for word in words)

    def read_domain(self) -> str:
        """Read a domain: dot-atom, domain-literal or obs-domain."""
        self.skip_cfws()
        if self.peek() == "[":
            return self.read_domain_literal()
        parts = [self.read_atom_text()]
        self.skip_cfws()
        while self.peek() == ".":
            self.pos += 1
            self.skip_cfws()
            parts.append(self.read_atom_text())
            self.skip_cfws()
        return ".".join(parts)

    def read_domain_literal(self) -> str:
        """Read a domain-literal such as `[192.0.2.1]`, brackets included."""
        start = self.pos
        self.expect("[")
        parts = []
        while True:
            char = self.peek()
            if not char:
                raise self.error("unterminated domain-literal", offset=start)
            if char == "]":
                self.pos += 1
                break
            if char == "[":
                raise self.error("unexpected '[' in domain-literal")
            if char == "\\":
                parts.append(self._read_quoted_pair())
            elif char in FWS_CHARS:
                self.pos += 1
            else:
                parts.append(char)
                self.pos += 1
        self.skip_cfws()
        return "[" + "".join(parts) + "]"
