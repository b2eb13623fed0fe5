"""
RFC 2047 encoded-word codec.

Decoding splits header text into fragments (plain text, whitespace and
encoded-words) and folds them back into a string. The fold is where the
adjacency rule of RFC 2047 section 6.2 lives: whitespace that only separates
two encoded-words is dropped, and consecutive encoded-words in the same
charset are decoded together so that a character split across two words is
rebuilt.

Encoding picks, per word, the shorter of the Q and B encodings and splits
long text into several encoded-words of at most 75 characters.
"""

import base64
import binascii
import logging
import re
from typing import Iterable, Iterator, List, NamedTuple, Optional

from mailheaders.charsets import get_charset_backend
from mailheaders.conf import get_setting

logger = logging.getLogger(__name__)

ENCODED_WORD_RE = re.compile(
    r"=\?(?P<charset>[^?*\s]+)(?:\*(?P<language>[^?\s]*))?"
    r"\?(?P<encoding>[bBqQ])\?(?P<text>[^?\s]*)\?="
)
ENCODED_SEQUENCE_RE = re.compile(
    r"\s*(?:" + ENCODED_WORD_RE.pattern + r"\s*)+", re.DOTALL
)
WHITESPACE_RE = re.compile(r"[ \t\r\n]+")

# RFC 2047 section 2
MAX_ENCODED_WORD_LENGTH = 75

# Characters left as they are by Q encoding. This is the set allowed in a
# phrase (RFC 2047 section 5), which is also valid in text and comments.
Q_SAFE = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!*+-/"
)

TEXT = "text"
WHITESPACE = "whitespace"
ENCODED = "encoded"


class Fragment(NamedTuple):
    """A piece of header text on its way to being decoded."""

    kind: str
    text: str = ""
    charset: Optional[str] = None
    data: bytes = b""


def decode_q(text: str) -> bytes:
    """Decode the text of a Q encoded-word."""
    return binascii.a2b_qp(text.encode("ascii"), header=True)


def decode_b(text: str) -> bytes:
    """Decode the text of a B encoded-word, tolerating missing padding."""
    padded = text + "=" * (-len(text) % 4)
    return base64.b64decode(padded, validate=True)


def encode_q(data: bytes) -> str:
    """Q-encode bytes for use in any encoded-word context."""
    parts = []
    for byte in data:
        if byte in Q_SAFE:
            parts.append(chr(byte))
        elif byte == 0x20:
            parts.append("_")
        else:
            parts.append(f"={byte:02X}")
    return "".join(parts)


def is_encoded_sequence(text: str) -> bool:
    """Return whether the text only holds encoded-words and whitespace."""
    return bool(text) and ENCODED_SEQUENCE_RE.fullmatch(text) is not None


def _encoded_fragment(match) -> Fragment:
    """Build the fragment of an encoded-word, or a text one if it is malformed."""
    charset = match.group("charset")
    try:
        if match.group("encoding").lower() == "q":
            data = decode_q(match.group("text"))
        else:
            data = decode_b(match.group("text"))
    except (binascii.Error, ValueError) as e:
        logger.warning(
            "Leaving malformed encoded-word %r as text: %s", match.group(0), e
        )
        return Fragment(TEXT, match.group(0))
    return Fragment(ENCODED, charset=charset.lower(), data=data)


def iter_fragments(text: str) -> Iterator[Fragment]:
    """Split header text into text, whitespace and encoded-word fragments."""
    position = 0
    for match in ENCODED_WORD_RE.finditer(text):
        yield from _plain_fragments(text[position : match.start()])
        yield _encoded_fragment(match)
        position = match.end()
    yield from _plain_fragments(text[position:])


def _plain_fragments(text: str) -> Iterator[Fragment]:
    position = 0
    for match in WHITESPACE_RE.finditer(text):
        if match.start() > position:
            yield Fragment(TEXT, text[position : match.start()])
        yield Fragment(WHITESPACE, match.group(0))
        position = match.end()
    if position < len(text):
        yield Fragment(TEXT, text[position:])


def join_fragments(fragments: Iterable[Fragment]) -> str:
    """
    Fold fragments into decoded text.

    Whitespace between two encoded-words is discarded. Runs of encoded-words
    sharing a charset are decoded as a single byte string.
    """
    backend = get_charset_backend()
    output: List[str] = []
    pending_whitespace = ""
    run_charset = None
    run_data = b""
    previous_kind = None

    def flush_run():
        if run_charset is not None:
            output.append(backend.decode(run_charset, run_data))

    for fragment in fragments:
        if fragment.kind == WHITESPACE:
            pending_whitespace += fragment.text
            continue

        if fragment.kind == ENCODED and previous_kind == ENCODED:
            # Adjacent encoded-words: the whitespace between them goes away
            pending_whitespace = ""
            if fragment.charset == run_charset:
                run_data += fragment.data
            else:
                flush_run()
                run_charset, run_data = fragment.charset, fragment.data
        else:
            flush_run()
            run_charset, run_data = None, b""
            output.append(pending_whitespace)
            pending_whitespace = ""
            if fragment.kind == ENCODED:
                run_charset, run_data = fragment.charset, fragment.data
            else:
                output.append(fragment.text)
        previous_kind = fragment.kind

    flush_run()
    output.append(pending_whitespace)
    return "".join(output)


def decode_text(text: str) -> str:
    """
    Decode the encoded-words found in unstructured header text.

    Encoded-words are recognised even when they touch surrounding text, as
    many mailers produce them that way.
    """
    if "=?" not in text:
        return text
    return join_fragments(iter_fragments(text))


def needs_encoding(text: str) -> bool:
    """
    Return whether text cannot be written as it is in a header.

    That is the case for non-ASCII and control characters, and for text that
    would be mistaken for an encoded-word.
    """
    if "=?" in text:
        return True
    return any(ord(char) > 126 or (ord(char) < 32 and char != "\t") for char in text)


def _encode_chunk(chunk: str, charset: str) -> str:
    data = get_charset_backend().encode(charset, chunk)
    q_text = encode_q(data)
    b_text = base64.b64encode(data).decode("ascii")
    if len(b_text) < len(q_text):
        return f"=?{charset}?b?{b_text}?="
    return f"=?{charset}?q?{q_text}?="


def encode_words(
    text: str,
    charset: Optional[str] = None,
    max_length: int = MAX_ENCODED_WORD_LENGTH,
) -> List[str]:
    """
    Encode text as a list of encoded-words of at most max_length characters.

    Text is split on character boundaries only, so every encoded-word decodes
    on its own. Joined back by the decoder the words give the original text.
    """
    if charset is None:
        charset = get_setting("MAILHEADERS_ENCODED_WORD_CHARSET")
    words = []
    chunk = ""
    encoded = ""
    for char in text:
        candidate = _encode_chunk(chunk + char, charset)
        if chunk and len(candidate) > max_length:
            words.append(encoded)
            chunk = char
            encoded = _encode_chunk(char, charset)
        else:
            chunk += char
            encoded = candidate
    if chunk:
        words.append(encoded)
    return words


def encode_text(text: str, charset: Optional[str] = None) -> List[str]:
    """
    Encode unstructured text as a list of words separated by whitespace.

    The returned list alternates whitespace runs and words, starting with a
    word (so even indexes are words). Words that can be written as they are
    stay raw, runs of words that need encoding (with the whitespace between
    them) become encoded-words. Encoded-words produced for one run follow each
    other separated by a single space, which the decoder discards.
    """
    items = re.split(r"([ \t]+)", text)
    words, separators = items[0::2], items[1::2]
    output: List[str] = []
    index = 0
    while index < len(words):
        word = words[index]
        if not needs_encoding(word):
            if output:
                output.append(separators[index - 1])
            output.append(word)
            index += 1
            continue
        run = word
        end = index + 1
        while end < len(words) and needs_encoding(words[end]):
            run += separators[end - 1] + words[end]
            end += 1
        for position, encoded in enumerate(encode_words(run, charset)):
            if output:
                output.append(separators[index - 1] if position == 0 else " ")
            output.append(encoded)
        index = end
    return output
