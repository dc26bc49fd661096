"""Version of the SIP bridge."""

VERSION = "0.0.1"


def version_string() -> str:
    """Return the version of the SIP bridge."""
    return VERSION