"""Building blocks for bridging SIP calls into media rooms: messages, URIs, REFER/NOTIFY helpers, call status, metrics and service bookkeeping."""

__version__ = "0.0.1"
__all__ = ["__version__"]