"""
RFC5322 header field grammar.

This package provides the lexical primitives, the typed value parsers and the
composers of RFC5322 header fields.
"""

from .composer import fold_header
from .parser import parse_address_list, parse_date_time, parse_mailbox
from .tokenizer import HeaderTokenizer, unfold

__all__ = [
    "HeaderTokenizer",
    "unfold",
    "parse_mailbox",
    "parse_address_list",
    "parse_date_time",
    "fold_header",
]
