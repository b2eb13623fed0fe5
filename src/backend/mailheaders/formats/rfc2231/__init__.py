"""MIME parameter lists with RFC2231 extensions."""
