# -*- coding: utf-8 -*-
"""
errors.py - Exception hierarchy for Lighthead.

Validation errors are raised before any browser is launched. Navigation
errors are raised after the browser session has been torn down.
"""


class LightheadError(Exception):
    """Base class for every error raised by Lighthead."""


# --- Validation (pre-flight, never touches the network) ---

class ValidationError(LightheadError):
    """Raised when a user-supplied value is rejected before fetching."""


class InvalidUrlError(ValidationError):
    """The target does not parse as an absolute URL."""


class UnsupportedProtocolError(ValidationError):
    """The target URL uses a scheme other than http or https."""


class InvalidFormatError(ValidationError):
    """The requested output format is not recognized."""


class InvalidRangeError(ValidationError):
    """A numeric option is not an integer within its allowed range."""


class InvalidBooleanError(ValidationError):
    """A boolean query parameter is neither 'true' nor 'false'."""


# --- Fetch ---

class NavigationError(LightheadError):
    """Raised when the browser cannot load the target (timeout, DNS, refused...)."""


class NavigationAbortedError(NavigationError):
    """The browser aborted the navigation, typically because a download started."""


class UnknownResultTypeError(LightheadError):
    """Raised when a result is neither HTML nor binary."""
