"""Error definitions for quickget.

Every exception carries a stable ``code`` so that the CLI (and any other
caller) can branch on the failure category without parsing messages.
"""

# Error codes
RELEASE_LOOKUP_FAILED = "release_lookup_failed"
URL_LOOKUP_FAILED = "url_lookup_failed"
CHECKSUM_LOOKUP_FAILED = "checksum_lookup_failed"
HTTP_ERROR = "http_error"
TIMEOUT = "timeout"
NETWORK_ERROR = "network_error"
OS_ERROR = "os_error"
UNKNOWN_ALGORITHM = "unknown_algorithm"
READ_ERROR = "read_error"
CHECKSUM_MISMATCH = "checksum_mismatch"
VERIFICATION_FAILED = "verification_failed"
CONFIG_FAILED = "config_failed"


class QuickgetError(Exception):
    """Base class for all quickget errors."""

    default_code = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class SourceError(QuickgetError):
    """Raised when a source cannot supply releases, URLs or metadata."""

    default_code = NETWORK_ERROR


class DownloadError(QuickgetError):
    """Raised when an artifact download fails."""

    default_code = "download_error"


class ChecksumError(QuickgetError):
    """Raised when a digest cannot be computed or its algorithm guessed."""

    default_code = UNKNOWN_ALGORITHM


class VerificationError(QuickgetError):
    """Raised when downloaded artifacts fail verification.

    The artifacts are left on disk.
    """

    default_code = CHECKSUM_MISMATCH


class ConfigEmissionError(QuickgetError):
    """Raised when a VM configuration cannot be produced."""

    default_code = CONFIG_FAILED


__all__ = [
    "CHECKSUM_LOOKUP_FAILED",
    "CHECKSUM_MISMATCH",
    "CONFIG_FAILED",
    "ChecksumError",
    "ConfigEmissionError",
    "DownloadError",
    "HTTP_ERROR",
    "NETWORK_ERROR",
    "OS_ERROR",
    "QuickgetError",
    "READ_ERROR",
    "RELEASE_LOOKUP_FAILED",
    "SourceError",
    "TIMEOUT",
    "UNKNOWN_ALGORITHM",
    "URL_LOOKUP_FAILED",
    "VERIFICATION_FAILED",
    "VerificationError",
]
