"""RFC2047 encoded-word codec."""
