"""
Tests for the RFC2047 encoded-word codec.
"""

from email.header import Header

import pytest

from mailheaders.exceptions import UnsupportedCharset
from mailheaders.formats.rfc2047 import codec


class TestDecoding:
    """Tests for encoded-word decoding."""

    def test_decode_plain_text(self):
        """Test that text without encoded-words is unchanged."""
        assert codec.decode_text("Simple text") == "Simple text"

    def test_decode_empty(self):
        """Test decoding an empty value."""
        assert codec.decode_text("") == ""

    def test_decode_header_encoded_by_stdlib(self):
        """Test decoding what the standard library encoder produces."""
        encoded = Header("Tést with açcents", "utf-8").encode()
        assert codec.decode_text(encoded) == "Tést with açcents"

    def test_decode_encoded_words_touching_text(self):
        """Test encoded-words glued to surrounding text."""
        decoded = codec.decode_text("=?utf-8?Q?=C2=A3?=200.00=?UTF-8?q?_=F0=9F=92=B5?=")
        assert decoded == "£200.00 💵"

    def test_decode_text_with_encoded_word_marker(self):
        """Test text that contains =? without being an encoded-word."""
        decoded = codec.decode_text("Subject with =? marker and =?utf-8?B?8J+YgA==?=")
        assert decoded == "Subject with =? marker and 😀"

    def test_adjacent_encoded_words_drop_whitespace(self):
        """Test that whitespace between two encoded-words is discarded."""
        assert codec.decode_text("=?utf-8?q?Hello?=  =?utf-8?q?World?=") == "HelloWorld"

    def test_adjacent_encoded_words_across_folding(self):
        """Test that folding whitespace between encoded-words is discarded too."""
        text = "=?utf-8?q?Hello?=\r\n =?utf-8?q?World?="
        assert codec.decode_text(text) == "HelloWorld"

    def test_whitespace_next_to_text_is_kept(self):
        """Test that whitespace between an encoded-word and text is kept."""
        assert codec.decode_text("=?utf-8?q?Hello?=  World") == "Hello  World"

    def test_adjacent_words_in_different_charsets(self):
        """Test joining encoded-words declared in different charsets."""
        decoded = codec.decode_text(
            "=?ISO-8859-1?B?SWYgeW91IGNhbiByZWFkIHRoaXMgeW8=?= "
            "=?ISO-8859-2?B?dSB1bmRlcnN0YW5kIHRoZSBleGFtcGxlLg==?="
        )
        assert decoded == "If you can read this you understand the example."

    def test_character_split_across_words(self):
        """Test that a multibyte character split over two words is rebuilt."""
        assert codec.decode_text("=?utf-8?q?caf=C3?= =?utf-8?q?=A9?=") == "café"

    def test_decode_latin1(self):
        """Test decoding a Q encoded-word in ISO-8859-1."""
        text = "=?ISO-8859-1?Q?Patrik_F=E4ltstr=F6m?="
        assert codec.decode_text(text) == "Patrik Fältström"

    def test_decode_b_without_padding(self):
        """Test that missing base64 padding is tolerated."""
        assert codec.decode_text("=?utf-8?b?Y2Fmw6k?=") == "café"

    def test_decode_language_tag(self):
        """Test that an RFC 2231 language tag in the charset is ignored."""
        assert codec.decode_text("=?utf-8*fr?q?caf=C3=A9?=") == "café"

    def test_malformed_encoded_word_is_kept(self, caplog):
        """Test that an undecodable encoded-word is left as text."""
        text = "bad =?utf-8?b?!!!?= word"
        assert codec.decode_text(text) == text
        assert "malformed encoded-word" in caplog.text

    def test_unknown_8bit(self):
        """Test that the unknown-8bit charset decodes as UTF-8 with replacement."""
        assert codec.decode_text("=?unknown-8bit?q?caf=C3=A9=FF?=") == "café�"

    def test_unsupported_charset(self):
        """Test that a charset nobody knows raises UnsupportedCharset."""
        with pytest.raises(UnsupportedCharset) as excinfo:
            codec.decode_text("=?x-made-up?q?abc?=")
        assert excinfo.value.charset == "x-made-up"

    def test_iter_fragments(self):
        """Test splitting text into fragments."""
        fragments = list(codec.iter_fragments("a =?utf-8?q?b?="))
        assert [fragment.kind for fragment in fragments] == [
            codec.TEXT,
            codec.WHITESPACE,
            codec.ENCODED,
        ]
        assert fragments[2].data == b"b"

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("=?utf-8?q?a?=", True),
            (" =?utf-8?q?a?= =?utf-8?b?Yg==?= ", True),
            ("x=?utf-8?q?a?=", False),
            ("", False),
        ],
    )
    def test_is_encoded_sequence(self, text, expected):
        """Test recognition of text made only of encoded-words."""
        assert codec.is_encoded_sequence(text) is expected


class TestEncoding:
    """Tests for encoded-word encoding."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("plain ascii", False),
            ("tab\tseparated", False),
            ("café", True),
            ("bell\x07", True),
            ("looks =?like?= one", True),
        ],
    )
    def test_needs_encoding(self, text, expected):
        """Test detection of text that cannot be written raw."""
        assert codec.needs_encoding(text) is expected

    def test_encode_q(self):
        """Test that Q encoding escapes specials and maps spaces."""
        assert codec.encode_q(b"a b=?_\xe9") == "a_b=3D=3F=5F=E9"

    def test_prefers_q_for_mostly_ascii(self):
        """Test that Q is chosen when it is shorter."""
        words = codec.encode_words("Ceci est très")
        assert words == ["=?utf-8?q?Ceci_est_tr=C3=A8s?="]

    def test_prefers_b_for_non_latin(self):
        """Test that B is chosen when it is shorter."""
        assert codec.encode_words("日本語") == ["=?utf-8?b?5pel5pys6Kqe?="]

    def test_long_text_is_split(self):
        """Test that long text gives several words of at most 75 characters."""
        text = "Привет, это очень длинная тема письма на русском языке"
        words = codec.encode_words(text)
        assert len(words) > 1
        assert all(len(word) <= 75 for word in words)
        assert codec.decode_text(" ".join(words)) == text

    def test_charset_from_settings(self, settings):
        """Test that the produced charset comes from the settings."""
        settings.MAILHEADERS_ENCODED_WORD_CHARSET = "iso-8859-1"
        assert codec.encode_words("café") == ["=?iso-8859-1?q?caf=E9?="]

    def test_encode_text_keeps_ascii_words(self):
        """Test that only the words needing it are encoded."""
        items = codec.encode_text("Hello   wörld and all")
        assert items[:2] == ["Hello", "   "]
        assert items[2].startswith("=?utf-8?")
        assert items[3:] == [" ", "and", " ", "all"]

    def test_encode_text_merges_runs(self):
        """Test that neighbouring words needing encoding share encoded-words."""
        items = codec.encode_text("ok très élevé ok")
        assert len(items) == 5
        assert codec.decode_text("".join(items)) == "ok très élevé ok"

    def test_encode_text_round_trip(self):
        """Test that decoding the encoded text gives the original back."""
        text = "Re: [list] Résumé =?not-a-word?= \tend"
        assert codec.decode_text("".join(codec.encode_text(text))) == text
