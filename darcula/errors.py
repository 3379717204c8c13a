"""Exception types raised by pydarcula.

Every error derives from :class:`DarculaError`.  Where a built-in exception
kind already describes the failure (``ValueError`` for bad input,
``FileNotFoundError`` for a missing file) the class inherits from it too, so
callers that only know the built-ins still catch them.
"""

from __future__ import annotations


class DarculaError(Exception):
    """Base class for every pydarcula failure."""


class FormatError(DarculaError, ValueError):
    """The asar container is malformed or not laid out as expected."""


class AnchorNotFoundError(DarculaError):
    """A literal anchor was not found in the target bundle source."""


class PatchVerificationError(DarculaError):
    """The patched text does not contain every expected fragment."""


class ManifestError(DarculaError):
    """Reading or writing the Info.plist integrity field failed."""


class NotFoundError(DarculaError, FileNotFoundError):
    """A required file (app bundle, archive entry, backup) does not exist."""


class ConfigError(DarculaError, ValueError):
    """The YAML configuration file is invalid."""


class CdpError(DarculaError):
    """A DevTools protocol call returned an error."""


class CdpUnavailableError(CdpError):
    """The DevTools HTTP endpoint could not be reached."""
