"""
Exception types.

ConfigurationError is user-correctable (HTTP 400). Everything else raised by the
upstream client or the encoder ends up as a generic HTTP 500 message; the
details only go to the log.
"""

from __future__ import annotations


class IcsUntisError(Exception):
    """Base class for all errors raised by icsuntis."""


class ConfigurationError(IcsUntisError):
    """Required configuration (e.g. WebUntis credentials) is missing."""


class UpstreamError(IcsUntisError):
    """The remote timetable service could not be used."""


class UpstreamAuthError(UpstreamError):
    """The remote service rejected the login."""


class UpstreamFetchError(UpstreamError):
    """Network failure or error response while fetching the timetable."""


class EncodeError(IcsUntisError):
    """Event data that cannot be serialized into a calendar file."""
