"""Local HTTP/HTTPS proxy that splits TLS ClientHello records for blacklisted sites."""

__version__ = "0.1.0"
__all__ = ["conn", "prettylog", "proxy"]