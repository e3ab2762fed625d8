"""Install orchestration: resolve, select, download, verify, extract, place."""

from __future__ import annotations

import functools
import logging
import os
import shutil
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from aumai_binfetch.archive import ArchiveExtractor
from aumai_binfetch.checksum import ChecksumVerifier
from aumai_binfetch.errors import InstallError
from aumai_binfetch.models import (
    Asset,
    ExtractedArtifact,
    InstallRequest,
    InstallResult,
    PlatformProfile,
    Release,
    ReleaseReference,
    SelectionResult,
    VerificationOutcome,
    VerificationPolicy,
)
from aumai_binfetch.platforms import detect_platform
from aumai_binfetch.release import GITHUB_API_URL, ReleaseClient
from aumai_binfetch.selector import AssetSelector
from aumai_binfetch.signature import KeyLoader, SignatureVerifier
from aumai_binfetch.transport import DEFAULT_TIMEOUT, HttpClient

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "aumai-binfetch-"
EXECUTABLE_MODE = 0o755

# ---------------------------------------------------------------------------
# Strategy interfaces
# ---------------------------------------------------------------------------


class ReleaseSource(Protocol):
    def fetch(
        self, reference: ReleaseReference, include_prereleases: bool = False
    ) -> Release: ...


class SelectionStrategy(Protocol):
    def select(
        self, assets: Sequence[Asset], pattern: str | None = None
    ) -> SelectionResult: ...


class Transfer(Protocol):
    def download(self, url: str, destination: Path) -> Path: ...

    def fetch_bytes(self, url: str) -> bytes: ...


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------


def place_binary(
    source: Path, destination_dir: Path, name: str, mode: int = EXECUTABLE_MODE
) -> Path:
    """Atomically install *source* as ``destination_dir/name``.

    The content is written to a temporary file in *destination_dir*, made
    executable, and renamed over the final path, so the destination name never
    refers to a partially written file.

    Raises:
        InstallError: on any permission or I/O failure.
    """
    destination = destination_dir / name
    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{name}.", suffix=".tmp", dir=destination_dir
        )
    except OSError as exc:
        raise InstallError(
            f"Cannot write to {destination_dir}: {exc}", destination=str(destination)
        ) from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as dst, source.open("rb") as src:
            shutil.copyfileobj(src, dst, 65536)
            dst.flush()
            os.fsync(dst.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, destination)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise InstallError(
            f"Failed to install {name} to {destination}: {exc}",
            destination=str(destination),
        ) from exc

    logger.info("Installed %s -> %s", name, destination)
    return destination


# ---------------------------------------------------------------------------
# Installer
# ---------------------------------------------------------------------------


class Installer:
    """Sequence every stage of one install and own its scratch directory.

    Each collaborator is injected so tests can substitute canned releases,
    fixed asset lists or an in-memory transport.

    Args:
        release_client: Resolves a :class:`ReleaseReference` to a release.
        selector: Picks one asset from the release.
        http: Downloads the asset and its sidecar files.
        checksum_verifier: Applies the checksum part of the policy.
        signature_verifier: Applies the signature part of the policy.
        extractor: Unpacks the asset and locates binaries.
        scratch_root: Parent directory for scratch directories; the system
            temporary directory when ``None``.
    """

    def __init__(
        self,
        release_client: ReleaseSource,
        selector: SelectionStrategy,
        http: Transfer,
        checksum_verifier: ChecksumVerifier | None = None,
        signature_verifier: SignatureVerifier | None = None,
        extractor: ArchiveExtractor | None = None,
        scratch_root: Path | None = None,
    ) -> None:
        self.release_client = release_client
        self.selector = selector
        self.http = http
        self.checksum_verifier = checksum_verifier or ChecksumVerifier()
        self.signature_verifier = signature_verifier or SignatureVerifier()
        self.extractor = extractor or ArchiveExtractor()
        self.scratch_root = scratch_root

    @classmethod
    def default(
        cls,
        profile: PlatformProfile | None = None,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        api_url: str = GITHUB_API_URL,
        scratch_root: Path | None = None,
    ) -> Installer:
        """Wire the real GitHub client, platform selector and verifiers."""
        http = HttpClient(token=token, timeout=timeout)
        return cls(
            release_client=ReleaseClient(http, api_url=api_url),
            selector=AssetSelector(profile or detect_platform()),
            http=http,
            signature_verifier=SignatureVerifier(KeyLoader(http)),
            scratch_root=scratch_root,
        )

    @contextmanager
    def scratch(self) -> Iterator[Path]:
        """A private scratch directory, removed on every exit path."""
        if self.scratch_root is not None:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(
            prefix=SCRATCH_PREFIX, dir=self.scratch_root
        ) as tmp:
            logger.debug("Using scratch directory %s", tmp)
            yield Path(tmp)

    def verify(
        self,
        asset: Asset,
        payload: Path,
        assets: Sequence[Asset],
        policy: VerificationPolicy,
    ) -> VerificationOutcome:
        """Run the signature and checksum steps required by *policy*."""
        # Sidecars looked up by both steps (e.g. ``.asc``) are downloaded once.
        fetch = functools.lru_cache(maxsize=None)(self.http.fetch_bytes)

        sig_status, sig_source, signer = self.signature_verifier.check(
            asset, payload, assets, policy, fetch
        )
        sum_status, sum_source = self.checksum_verifier.check(
            asset, payload, assets, policy, fetch
        )
        outcome = VerificationOutcome(
            checksum=sum_status,
            checksum_source=sum_source,
            signature=sig_status,
            signature_source=sig_source,
            signer_key_id=signer,
        )
        if not outcome.verified:
            logger.warning("%s was installed without any verification", asset.name)
        return outcome

    def install(self, request: InstallRequest) -> InstallResult:
        """Run one complete install.

        Nothing reaches ``request.destination`` unless extraction and every
        verification step required by ``request.policy`` succeeded.

        Raises:
            InstallerError: the first fatal error of any stage.
        """
        reference = request.reference
        logger.info("Fetching release information for %s", reference.repository)
        release = self.release_client.fetch(reference, request.include_prereleases)
        logger.info("Installing from release %s", release.tag_name)

        selection = self.selector.select(release.assets, request.pattern)
        asset = selection.asset

        with self.scratch() as scratch_dir:
            download_dir = scratch_dir / "download"
            download_dir.mkdir()
            logger.info("Downloading %s", asset.name)
            payload = self.http.download(
                asset.download_url, download_dir / Path(asset.name).name
            )

            outcome = self.verify(asset, payload, release.assets, request.policy)

            artifact = ExtractedArtifact(
                scratch_dir=scratch_dir,
                binaries=self.extractor.extract(
                    payload, asset.name, scratch_dir, request.binary_names
                ),
            )
            installed = [
                place_binary(path, request.destination, name)
                for name, path in artifact.binaries.items()
            ]

        logger.info("Installation complete")
        return InstallResult(
            tag_name=release.tag_name,
            selection=selection,
            verification=outcome,
            installed=installed,
        )


__all__ = [
    "EXECUTABLE_MODE",
    "Installer",
    "ReleaseSource",
    "SelectionStrategy",
    "Transfer",
    "place_binary",
]
