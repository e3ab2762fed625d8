"""Deterministic selection of the release asset for a platform."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from aumai_binfetch.archive import ArchiveFormat, detect_format, is_supported
from aumai_binfetch.errors import AmbiguousMatch, NoMatchingAsset
from aumai_binfetch.models import Asset, PlatformProfile, SelectionMethod, SelectionResult
from aumai_binfetch.signature import has_signature_sidecar

logger = logging.getLogger(__name__)

SIDECAR_SUFFIXES: tuple[str, ...] = (
    ".sha256",
    ".sha256sum",
    ".sha512",
    ".sha512sum",
    ".md5",
    ".asc",
    ".sig",
    ".minisig",
    ".pem",
    ".crt",
    ".sbom",
    ".intoto.jsonl",
)
CHECKSUM_LIST_NAMES = frozenset(
    {"checksums.txt", "checksums", "sha256sums", "sha256sums.txt", "checksums.sha256"}
)
NON_BINARY_SUFFIXES: tuple[str, ...] = (".txt", ".json", ".md", ".yaml", ".yml", ".pub")

# Lower index wins.
FORMAT_PREFERENCE: tuple[ArchiveFormat, ...] = (
    ArchiveFormat.tar_xz,
    ArchiveFormat.tar_lzma,
    ArchiveFormat.tar_gz,
    ArchiveFormat.zip,
    ArchiveFormat.raw,
)

# macOS fat binaries carry no architecture token.
UNIVERSAL_ARCH_TOKENS = frozenset({"universal", "universal2"})

_TOKEN_RE = re.compile(r"x86[_-]64|[a-z0-9]+")


def is_sidecar(name: str) -> bool:
    """Checksum lists and signature/attestation files are never the asset."""
    lower = name.lower()
    return lower in CHECKSUM_LIST_NAMES or lower.endswith(SIDECAR_SUFFIXES)


def tokenize(name: str) -> list[str]:
    """Split an asset name into lower-case tokens, keeping ``x86_64`` whole."""
    return [token.replace("-", "_") for token in _TOKEN_RE.findall(name.lower())]


def format_rank(name: str) -> int:
    return FORMAT_PREFERENCE.index(detect_format(name))


class AssetSelector:
    """Pick exactly one asset from a release.

    Selection is either pattern-driven (a regular expression supplied by the
    caller) or platform-driven (token scoring against the
    :class:`PlatformProfile`).  Both paths fail loudly instead of guessing.
    """

    def __init__(self, profile: PlatformProfile) -> None:
        self.profile = profile
        self._os_names = {n.lower() for n in profile.os_names()}
        self._arch_names = {n.lower() for n in profile.arch_names()}

    def select(
        self, assets: Sequence[Asset], pattern: str | None = None
    ) -> SelectionResult:
        if pattern:
            return self.select_by_pattern(assets, pattern)
        return self.select_by_platform(assets)

    def select_by_pattern(
        self, assets: Sequence[Asset], pattern: str
    ) -> SelectionResult:
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise NoMatchingAsset(
                f"Invalid asset pattern {pattern!r}: {exc}", pattern=pattern
            ) from exc

        names = [a.name for a in assets]
        matches = [
            a for a in assets if not is_sidecar(a.name) and regex.search(a.name)
        ]
        if not matches:
            raise NoMatchingAsset(
                f"No asset matches pattern {pattern!r}", pattern=pattern, assets=names
            )
        if len(matches) > 1:
            raise AmbiguousMatch(
                f"Pattern {pattern!r} matches {len(matches)} assets "
                f"({', '.join(a.name for a in matches)}); refine the pattern",
                pattern=pattern,
                candidates=[a.name for a in matches],
            )
        chosen = matches[0]
        logger.info("Selected %s by pattern %r", chosen.name, pattern)
        return SelectionResult(
            asset=chosen,
            method=SelectionMethod.pattern,
            has_signature=has_signature_sidecar(chosen.name, names),
        )

    def score(self, asset: Asset) -> int:
        """Count platform tokens in the name; 0 unless both OS and arch match."""
        tokens = tokenize(asset.name)
        os_hits = sum(1 for t in tokens if t in self._os_names)
        arch_hits = sum(1 for t in tokens if t in self._arch_names)
        if not arch_hits and self.profile.os_family == "darwin":
            arch_hits = sum(1 for t in tokens if t in UNIVERSAL_ARCH_TOKENS)
        if not os_hits or not arch_hits:
            return 0
        return os_hits + arch_hits

    def _is_candidate(self, asset: Asset) -> bool:
        lower = asset.name.lower()
        if is_sidecar(lower) or lower.endswith(NON_BINARY_SUFFIXES):
            return False
        return is_supported(asset.name)

    def select_by_platform(self, assets: Sequence[Asset]) -> SelectionResult:
        names = [a.name for a in assets]
        scored = [
            (self.score(a), a) for a in assets if self._is_candidate(a)
        ]
        scored = [(s, a) for s, a in scored if s > 0]
        target = f"{self.profile.os_family}/{self.profile.architecture}"
        if not scored:
            raise NoMatchingAsset(
                f"No asset matches platform {target}", platform=target, assets=names
            )

        def rank(score: int, asset: Asset) -> tuple[int, int, int]:
            signed = has_signature_sidecar(asset.name, names)
            return (-score, 0 if signed else 1, format_rank(asset.name))

        ranked = sorted(scored, key=lambda item: rank(*item))
        best = rank(*ranked[0])
        tied = [asset for score, asset in ranked if rank(score, asset) == best]
        if len(tied) > 1:
            raise AmbiguousMatch(
                f"Several assets match platform {target} equally well "
                f"({', '.join(a.name for a in tied)}); pass a pattern to choose",
                platform=target,
                candidates=[a.name for a in tied],
            )

        score, chosen = ranked[0]
        signed = has_signature_sidecar(chosen.name, names)
        logger.info("Selected %s for %s (score %d)", chosen.name, target, score)
        return SelectionResult(
            asset=chosen,
            method=SelectionMethod.platform,
            score=score,
            has_signature=signed,
        )


__all__ = [
    "CHECKSUM_LIST_NAMES",
    "FORMAT_PREFERENCE",
    "SIDECAR_SUFFIXES",
    "AssetSelector",
    "format_rank",
    "is_sidecar",
    "tokenize",
]
