"""Pydantic models for aumai-binfetch."""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_REPOSITORY_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_SHA256_HEX_RE = re.compile(r"^[0-9a-fA-F]{64}$")

LATEST = "latest"


class ReleaseReference(BaseModel):
    """A repository (``owner/name``) and a version selector."""

    model_config = ConfigDict(frozen=True)

    repository: str
    version: str = LATEST

    @field_validator("repository")
    @classmethod
    def _check_repository(cls, value: str) -> str:
        value = value.strip()
        if not _REPOSITORY_RE.match(value):
            raise ValueError(
                f"repository must look like 'owner/name', got {value!r}"
            )
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("version must not be empty")
        return value

    @property
    def is_latest(self) -> bool:
        return self.version == LATEST


class Asset(BaseModel):
    """A single downloadable file attached to a release."""

    model_config = ConfigDict(frozen=True)

    name: str
    download_url: str
    size: int = Field(default=0, ge=0)


class Release(BaseModel):
    """A resolved release and its assets, in the order the API returned them."""

    tag_name: str
    assets: list[Asset] = Field(default_factory=list)
    draft: bool = False
    prerelease: bool = False

    def asset_names(self) -> list[str]:
        return [asset.name for asset in self.assets]


class PlatformProfile(BaseModel):
    """The (OS, CPU architecture) pair used to pick an asset automatically."""

    model_config = ConfigDict(frozen=True)

    os_family: str
    architecture: str
    os_aliases: tuple[str, ...] = ()
    arch_aliases: tuple[str, ...] = ()

    def os_names(self) -> frozenset[str]:
        return frozenset({self.os_family, *self.os_aliases})

    def arch_names(self) -> frozenset[str]:
        return frozenset({self.architecture, *self.arch_aliases})


class SelectionMethod(str, Enum):
    """How the asset was chosen."""

    pattern = "pattern"
    platform = "platform"


class SelectionResult(BaseModel):
    """The chosen asset plus enough detail to explain the choice."""

    asset: Asset
    method: SelectionMethod
    score: int = 0
    has_signature: bool = False


class KeySourceKind(str, Enum):
    """Where public key material comes from."""

    inline = "inline"
    path = "path"
    url = "url"


class PublicKeySource(BaseModel):
    """Location of the OpenPGP public key used for signature verification."""

    model_config = ConfigDict(frozen=True)

    kind: KeySourceKind
    value: str

    @classmethod
    def parse(cls, raw: str) -> PublicKeySource:
        """Classify *raw* as a URL, an existing file path, or inline key text."""
        stripped = raw.strip()
        if stripped.startswith(("http://", "https://")):
            return cls(kind=KeySourceKind.url, value=stripped)
        try:
            is_file = Path(stripped).is_file()
        except (OSError, ValueError):
            # ENAMETOOLONG for long inline key blocks
            is_file = False
        if is_file:
            return cls(kind=KeySourceKind.path, value=stripped)
        return cls(kind=KeySourceKind.inline, value=raw)

    def describe(self) -> str:
        if self.kind == KeySourceKind.inline:
            return "inline key"
        return f"{self.kind.value} {self.value}"


class VerificationPolicy(BaseModel):
    """Which integrity checks the caller requires.  Never mutated internally."""

    model_config = ConfigDict(frozen=True)

    require_checksum: bool = False
    require_signature: bool = False
    public_key_source: PublicKeySource | None = None
    expected_checksum: str | None = None

    @field_validator("expected_checksum")
    @classmethod
    def _check_expected_checksum(cls, value: str | None) -> str | None:
        if value is None:
            return None
        algorithm, sep, digest = value.strip().partition(":")
        if not sep:
            algorithm, digest = "sha256", algorithm
        if algorithm.lower() != "sha256":
            raise ValueError("only sha256 checksums are supported")
        if not _SHA256_HEX_RE.match(digest):
            raise ValueError("expected checksum must be 64 hexadecimal characters")
        return digest.lower()

    @model_validator(mode="after")
    def _check_signature_requirement(self) -> VerificationPolicy:
        if self.require_signature and self.public_key_source is None:
            raise ValueError("require_signature needs a public_key_source")
        return self

    @property
    def signature_enabled(self) -> bool:
        return self.public_key_source is not None


class CheckStatus(str, Enum):
    """Result of one verification step.  Failures are raised, not recorded."""

    passed = "passed"
    skipped = "skipped"


class VerificationOutcome(BaseModel):
    """What was actually verified for the installed asset."""

    checksum: CheckStatus = CheckStatus.skipped
    checksum_source: str | None = None
    signature: CheckStatus = CheckStatus.skipped
    signature_source: str | None = None
    signer_key_id: str | None = None

    @property
    def verified(self) -> bool:
        return CheckStatus.passed in (self.checksum, self.signature)


class ExtractedArtifact(BaseModel):
    """Binaries resolved inside a scratch directory owned by one install."""

    scratch_dir: Path
    binaries: dict[str, Path] = Field(default_factory=dict)


class InstallRequest(BaseModel):
    """Everything the installer needs for one install operation."""

    reference: ReleaseReference
    binary_names: list[str] = Field(min_length=1)
    destination: Path = Path("/usr/local/bin")
    pattern: str | None = None
    policy: VerificationPolicy = Field(default_factory=VerificationPolicy)
    include_prereleases: bool = False

    @field_validator("binary_names")
    @classmethod
    def _check_binary_names(cls, value: list[str]) -> list[str]:
        names = [name.strip() for name in value if name.strip()]
        if not names:
            raise ValueError("at least one binary name is required")
        for name in names:
            if "/" in name or "\\" in name or name in (".", ".."):
                raise ValueError(f"binary name must be a plain file name: {name!r}")
        return names


class InstallResult(BaseModel):
    """Report returned after the binaries reached their destination."""

    tag_name: str
    selection: SelectionResult
    verification: VerificationOutcome
    installed: list[Path] = Field(default_factory=list)


__all__ = [
    "LATEST",
    "Asset",
    "CheckStatus",
    "ExtractedArtifact",
    "InstallRequest",
    "InstallResult",
    "KeySourceKind",
    "PlatformProfile",
    "PublicKeySource",
    "Release",
    "ReleaseReference",
    "SelectionMethod",
    "SelectionResult",
    "VerificationOutcome",
    "VerificationPolicy",
]
