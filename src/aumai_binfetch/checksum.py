"""SHA-256 digests and checksum-sidecar discovery for release assets."""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Callable, Sequence
from pathlib import Path

from aumai_binfetch.errors import ChecksumMismatch, ChecksumUnavailable
from aumai_binfetch.models import Asset, CheckStatus, VerificationPolicy
from aumai_binfetch.openpgp import looks_like_signature

logger = logging.getLogger(__name__)

# Looked up in this order; the first one present in the release wins.
CHECKSUM_SIDECARS: tuple[str, ...] = (
    "{asset}.sha256",
    "{asset}.sha256sum",
    "{asset}.asc",
    "checksums.txt",
    "SHA256SUMS",
    "sha256sums.txt",
)

_HEX = r"[0-9a-fA-F]{64}"
_BSD_LINE = re.compile(rf"^SHA256\s*\((?P<file>.+)\)\s*=\s*(?P<digest>{_HEX})$")
_GNU_LINE = re.compile(rf"^(?P<digest>{_HEX})\s+\*?(?P<file>\S.*)$")
_COLON_LINE = re.compile(rf"^(?P<file>.+?):\s*(?P<digest>{_HEX})$")
_BARE_LINE = re.compile(rf"^(?P<digest>{_HEX})$")

Fetcher = Callable[[str], bytes]


def normalize_digest(value: str) -> str:
    """Lower-case *value* and strip an optional ``sha256:`` prefix."""
    value = value.strip()
    if value.lower().startswith("sha256:"):
        value = value[len("sha256:"):]
    return value.strip().lower()


def sidecar_names(asset_name: str) -> list[str]:
    """Expand :data:`CHECKSUM_SIDECARS` for *asset_name*, keeping the order."""
    return [template.format(asset=asset_name) for template in CHECKSUM_SIDECARS]


def find_sidecars(asset_name: str, assets: Sequence[Asset]) -> list[Asset]:
    """Return the checksum sidecars present in *assets*, in lookup order."""
    by_name = {asset.name.lower(): asset for asset in assets}
    found: list[Asset] = []
    for name in sidecar_names(asset_name):
        sidecar = by_name.get(name.lower())
        if sidecar is not None:
            found.append(sidecar)
    return found


def _entry_matches(entry: str, asset_name: str) -> bool:
    entry = entry.strip().replace("\\", "/")
    return entry == asset_name or entry.endswith("/" + asset_name)


def parse_checksum_file(
    text: str, asset_name: str, sole_entry: bool = False
) -> str | None:
    """Extract the expected digest for *asset_name* from a checksum file.

    Understands ``<digest>  <file>`` (and the ``*<file>`` binary marker),
    ``<file>: <digest>``, BSD-style ``SHA256 (<file>) = <digest>`` and a
    file that holds nothing but a single digest.  Returns ``None`` when no
    line applies to *asset_name*.

    With *sole_entry* set (the file is a per-asset sidecar), a file holding
    exactly one digest applies to the asset whatever file name it records.
    """
    bare: list[str] = []
    named: list[str] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        for pattern in (_BSD_LINE, _GNU_LINE, _COLON_LINE):
            match = pattern.match(line)
            if match:
                if _entry_matches(match.group("file"), asset_name):
                    return match.group("digest").lower()
                named.append(match.group("digest").lower())
                break
        else:
            match = _BARE_LINE.match(line)
            if match:
                bare.append(match.group("digest").lower())
    if len(bare) == 1:
        return bare[0]
    if sole_entry and not bare and len(named) == 1:
        return named[0]
    return None


class ChecksumVerifier:
    """Compute and compare SHA-256 digests, and apply the checksum policy."""

    def compute(self, data: bytes) -> str:
        """Return the hex-encoded SHA-256 digest of *data*."""
        return hashlib.sha256(data).hexdigest()

    def compute_file(self, path: Path) -> str:
        """Return the hex-encoded SHA-256 digest of the file at *path*."""
        hasher = hashlib.sha256()
        with path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(65536), b""):
                hasher.update(chunk)
        return hasher.hexdigest()

    def verify(self, data: bytes, expected: str, asset_name: str = "") -> bool:
        """Return ``True`` when *data* hashes to *expected*.

        Raises:
            ChecksumMismatch: when the digests differ.
        """
        return self._compare(self.compute(data), expected, asset_name)

    def verify_file(self, path: Path, expected: str, asset_name: str = "") -> bool:
        """Streaming counterpart of :meth:`verify`."""
        return self._compare(self.compute_file(path), expected, asset_name or path.name)

    @staticmethod
    def _compare(actual: str, expected: str, asset_name: str) -> bool:
        expected_norm = normalize_digest(expected)
        if actual.lower() != expected_norm:
            raise ChecksumMismatch(
                f"Checksum mismatch for {asset_name or 'payload'}: "
                f"expected {expected_norm}, got {actual}",
                asset=asset_name,
                expected=expected_norm,
                actual=actual,
            )
        return True

    def discover(
        self,
        asset: Asset,
        assets: Sequence[Asset],
        fetch: Fetcher,
    ) -> tuple[str, str | None] | None:
        """Locate the checksum sidecar for *asset* and parse it.

        Returns ``(sidecar_name, digest)`` for the first digest-bearing
        sidecar, where ``digest`` is ``None`` if that sidecar has no entry for
        the asset, or ``None`` when the release carries no sidecar at all.
        """
        for sidecar in find_sidecars(asset.name, assets):
            body = fetch(sidecar.download_url)
            if sidecar.name.lower().endswith(".asc") and looks_like_signature(body):
                logger.debug("%s is a detached signature, not a checksum", sidecar.name)
                continue
            text = body.decode("utf-8", errors="replace")
            per_asset = sidecar.name.lower().startswith(asset.name.lower() + ".")
            return sidecar.name, parse_checksum_file(text, asset.name, per_asset)
        return None

    def check(
        self,
        asset: Asset,
        payload: Path,
        assets: Sequence[Asset],
        policy: VerificationPolicy,
        fetch: Fetcher,
    ) -> tuple[CheckStatus, str | None]:
        """Apply *policy* to the downloaded *payload*.

        Returns the check status and the source of the expected digest.
        Missing checksums are only tolerated when the policy does not
        require them; mismatches always raise.
        """
        if policy.expected_checksum is not None:
            self.verify_file(payload, policy.expected_checksum, asset.name)
            logger.info("Checksum verified against the supplied digest")
            return CheckStatus.passed, "inline"

        found = self.discover(asset, assets, fetch)
        if found is None or found[1] is None:
            reason = (
                f"no checksum file found for {asset.name}"
                if found is None
                else f"{found[0]} has no entry for {asset.name}"
            )
            if policy.require_checksum:
                raise ChecksumUnavailable(
                    f"Checksum verification required but {reason}",
                    asset=asset.name,
                    sidecar=found[0] if found else None,
                )
            logger.warning("Skipping checksum verification: %s", reason)
            return CheckStatus.skipped, None

        sidecar_name, digest = found
        self.verify_file(payload, digest, asset.name)
        logger.info("Checksum verified against %s", sidecar_name)
        return CheckStatus.passed, sidecar_name


__all__ = [
    "CHECKSUM_SIDECARS",
    "ChecksumVerifier",
    "find_sidecars",
    "normalize_digest",
    "parse_checksum_file",
    "sidecar_names",
]
