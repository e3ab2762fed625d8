"""aumai-binfetch: Verified installation of binaries from GitHub releases."""

__version__ = "0.1.0"

from aumai_binfetch.archive import ArchiveExtractor, ArchiveFormat
from aumai_binfetch.checksum import ChecksumVerifier
from aumai_binfetch.core import Installer, place_binary
from aumai_binfetch.errors import ErrorKind, InstallerError
from aumai_binfetch.models import (
    Asset,
    CheckStatus,
    InstallRequest,
    InstallResult,
    PlatformProfile,
    PublicKeySource,
    Release,
    ReleaseReference,
    SelectionMethod,
    SelectionResult,
    VerificationOutcome,
    VerificationPolicy,
)
from aumai_binfetch.platforms import detect_platform
from aumai_binfetch.release import ReleaseClient
from aumai_binfetch.selector import AssetSelector
from aumai_binfetch.signature import KeyLoader, SignatureVerifier

__all__ = [
    "ArchiveExtractor",
    "ArchiveFormat",
    "Asset",
    "AssetSelector",
    "CheckStatus",
    "ChecksumVerifier",
    "ErrorKind",
    "InstallRequest",
    "InstallResult",
    "Installer",
    "InstallerError",
    "KeyLoader",
    "PlatformProfile",
    "PublicKeySource",
    "Release",
    "ReleaseClient",
    "ReleaseReference",
    "SelectionMethod",
    "SelectionResult",
    "SignatureVerifier",
    "VerificationOutcome",
    "VerificationPolicy",
    "detect_platform",
    "place_binary",
]
