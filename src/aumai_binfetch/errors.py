"""Error taxonomy for aumai-binfetch."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable identifiers for every failure the installer can surface."""

    release_not_found = "ReleaseNotFound"
    rate_limited = "RateLimited"
    network_error = "NetworkError"
    no_matching_asset = "NoMatchingAsset"
    ambiguous_match = "AmbiguousMatch"
    checksum_unavailable = "ChecksumUnavailable"
    checksum_mismatch = "ChecksumMismatch"
    signature_parse_error = "SignatureParseError"
    signature_mismatch = "SignatureMismatch"
    signature_unavailable = "SignatureUnavailable"
    unsupported_archive_format = "UnsupportedArchiveFormat"
    binary_not_found_in_archive = "BinaryNotFoundInArchive"
    install_error = "InstallError"


class InstallerError(Exception):
    """Base class for all failures raised by aumai-binfetch.

    Every subclass pins a :class:`ErrorKind`.  Keyword arguments passed to
    the constructor are kept in :attr:`context` so callers can report the
    asset name, digests or key IDs without parsing the message.
    """

    kind: ErrorKind = ErrorKind.install_error

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def __str__(self) -> str:
        return self.message

    def cause_chain(self) -> list[str]:
        """Return the messages of every chained exception, outermost first."""
        chain: list[str] = []
        current: BaseException | None = self.__cause__ or self.__context__
        while current is not None:
            chain.append(f"{type(current).__name__}: {current}")
            current = current.__cause__ or current.__context__
        return chain


class ReleaseNotFound(InstallerError):
    kind = ErrorKind.release_not_found


class RateLimited(InstallerError):
    """Upstream throttling; the caller may retry after ``reset_at``."""

    kind = ErrorKind.rate_limited

    @property
    def reset_at(self) -> int | None:
        return self.context.get("reset_at")


class NetworkError(InstallerError):
    kind = ErrorKind.network_error


class NoMatchingAsset(InstallerError):
    kind = ErrorKind.no_matching_asset


class AmbiguousMatch(InstallerError):
    kind = ErrorKind.ambiguous_match


class ChecksumUnavailable(InstallerError):
    kind = ErrorKind.checksum_unavailable


class ChecksumMismatch(InstallerError):
    kind = ErrorKind.checksum_mismatch


class SignatureParseError(InstallerError):
    kind = ErrorKind.signature_parse_error


class SignatureMismatch(InstallerError):
    kind = ErrorKind.signature_mismatch


class SignatureUnavailable(InstallerError):
    kind = ErrorKind.signature_unavailable


class UnsupportedArchiveFormat(InstallerError):
    kind = ErrorKind.unsupported_archive_format


class BinaryNotFoundInArchive(InstallerError):
    kind = ErrorKind.binary_not_found_in_archive


class InstallError(InstallerError):
    kind = ErrorKind.install_error


__all__ = [
    "AmbiguousMatch",
    "BinaryNotFoundInArchive",
    "ChecksumMismatch",
    "ChecksumUnavailable",
    "ErrorKind",
    "InstallError",
    "InstallerError",
    "NetworkError",
    "NoMatchingAsset",
    "RateLimited",
    "ReleaseNotFound",
    "SignatureMismatch",
    "SignatureParseError",
    "SignatureUnavailable",
    "UnsupportedArchiveFormat",
]
