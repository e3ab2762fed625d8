"""Tests for aumai_binfetch.models and the error taxonomy."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from aumai_binfetch.errors import (
    ChecksumMismatch,
    ErrorKind,
    InstallerError,
    NetworkError,
    RateLimited,
)
from aumai_binfetch.models import (
    Asset,
    CheckStatus,
    InstallRequest,
    KeySourceKind,
    PlatformProfile,
    PublicKeySource,
    Release,
    ReleaseReference,
    VerificationOutcome,
    VerificationPolicy,
)

DIGEST = "ab" * 32

# ===========================================================================
# ReleaseReference
# ===========================================================================


class TestReleaseReference:
    def test_defaults_to_latest(self) -> None:
        ref = ReleaseReference(repository="org/tool")
        assert ref.version == "latest"
        assert ref.is_latest

    def test_explicit_tag_is_not_latest(self) -> None:
        ref = ReleaseReference(repository="org/tool", version="v1.2.3")
        assert not ref.is_latest

    def test_repository_is_stripped(self) -> None:
        assert ReleaseReference(repository="  org/tool ").repository == "org/tool"

    @pytest.mark.parametrize("bad", ["tool", "org/", "/tool", "a/b/c", "org tool/x", ""])
    def test_rejects_malformed_repository(self, bad: str) -> None:
        with pytest.raises(ValidationError):
            ReleaseReference(repository=bad)

    def test_rejects_empty_version(self) -> None:
        with pytest.raises(ValidationError):
            ReleaseReference(repository="org/tool", version="   ")

    def test_is_frozen(self) -> None:
        ref = ReleaseReference(repository="org/tool")
        with pytest.raises(ValidationError):
            ref.version = "v2"  # type: ignore[misc]


# ===========================================================================
# Asset / Release / PlatformProfile
# ===========================================================================


class TestAssetAndRelease:
    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Asset(name="x", download_url="https://e/x", size=-1)

    def test_asset_names_keep_api_order(self) -> None:
        release = Release(
            tag_name="v1",
            assets=[
                Asset(name="b", download_url="https://e/b"),
                Asset(name="a", download_url="https://e/a"),
            ],
        )
        assert release.asset_names() == ["b", "a"]

    def test_profile_name_sets_include_aliases(self) -> None:
        profile = PlatformProfile(
            os_family="darwin",
            architecture="aarch64",
            os_aliases=("macos",),
            arch_aliases=("arm64",),
        )
        assert profile.os_names() == {"darwin", "macos"}
        assert profile.arch_names() == {"aarch64", "arm64"}


# ===========================================================================
# PublicKeySource
# ===========================================================================


class TestPublicKeySource:
    def test_url_is_detected(self) -> None:
        source = PublicKeySource.parse("https://example.com/key.asc")
        assert source.kind == KeySourceKind.url

    def test_existing_file_is_a_path(self, tmp_path: Path) -> None:
        key_file = tmp_path / "key.asc"
        key_file.write_text("key", encoding="utf-8")
        source = PublicKeySource.parse(str(key_file))
        assert source.kind == KeySourceKind.path
        assert source.value == str(key_file)

    def test_armored_text_is_inline(self) -> None:
        text = "-----BEGIN PGP PUBLIC KEY BLOCK-----\n\nAAAA\n-----END PGP PUBLIC KEY BLOCK-----\n"
        source = PublicKeySource.parse(text)
        assert source.kind == KeySourceKind.inline
        assert source.value == text

    def test_very_long_inline_text_is_not_treated_as_path(self) -> None:
        source = PublicKeySource.parse("A" * 10_000)
        assert source.kind == KeySourceKind.inline

    def test_describe_hides_inline_material(self) -> None:
        assert PublicKeySource.parse("secret-ish").describe() == "inline key"


# ===========================================================================
# VerificationPolicy
# ===========================================================================


class TestVerificationPolicy:
    def test_default_is_best_effort(self) -> None:
        policy = VerificationPolicy()
        assert not policy.require_checksum
        assert not policy.signature_enabled

    def test_prefixed_checksum_is_normalized(self) -> None:
        policy = VerificationPolicy(expected_checksum=f"sha256:{DIGEST.upper()}")
        assert policy.expected_checksum == DIGEST

    def test_bare_checksum_is_accepted(self) -> None:
        assert VerificationPolicy(expected_checksum=DIGEST).expected_checksum == DIGEST

    @pytest.mark.parametrize("bad", ["md5:" + "ab" * 16, "sha256:xyz", "ab" * 31])
    def test_invalid_checksum_rejected(self, bad: str) -> None:
        with pytest.raises(ValidationError):
            VerificationPolicy(expected_checksum=bad)

    def test_signature_requirement_needs_key(self) -> None:
        with pytest.raises(ValidationError):
            VerificationPolicy(require_signature=True)

    def test_key_enables_signature(self) -> None:
        policy = VerificationPolicy(
            require_signature=True,
            public_key_source=PublicKeySource(kind=KeySourceKind.inline, value="k"),
        )
        assert policy.signature_enabled


# ===========================================================================
# VerificationOutcome / InstallRequest
# ===========================================================================


class TestOutcomeAndRequest:
    def test_outcome_unverified_by_default(self) -> None:
        assert not VerificationOutcome().verified

    def test_outcome_verified_by_checksum_alone(self) -> None:
        assert VerificationOutcome(checksum=CheckStatus.passed).verified

    def test_request_defaults(self) -> None:
        request = InstallRequest(
            reference=ReleaseReference(repository="org/tool"), binary_names=["tool"]
        )
        assert request.destination == Path("/usr/local/bin")
        assert request.pattern is None
        assert not request.include_prereleases

    def test_request_strips_blank_names(self) -> None:
        request = InstallRequest(
            reference=ReleaseReference(repository="org/tool"),
            binary_names=[" tool ", "", "toolctl"],
        )
        assert request.binary_names == ["tool", "toolctl"]

    @pytest.mark.parametrize("names", [[], [" "], ["bin/tool"], [".."]])
    def test_request_rejects_bad_names(self, names: list[str]) -> None:
        with pytest.raises(ValidationError):
            InstallRequest(
                reference=ReleaseReference(repository="org/tool"), binary_names=names
            )


# ===========================================================================
# Errors
# ===========================================================================


class TestErrors:
    def test_every_error_is_an_installer_error(self) -> None:
        err = ChecksumMismatch("bad", expected="a", actual="b")
        assert isinstance(err, InstallerError)
        assert err.kind == ErrorKind.checksum_mismatch
        assert err.context == {"expected": "a", "actual": "b"}
        assert str(err) == "bad"

    def test_rate_limited_exposes_reset(self) -> None:
        assert RateLimited("slow down", reset_at=1234).reset_at == 1234
        assert RateLimited("slow down").reset_at is None

    def test_cause_chain_lists_underlying_errors(self) -> None:
        try:
            try:
                raise OSError("connection reset")
            except OSError as exc:
                raise NetworkError("download failed") from exc
        except NetworkError as err:
            assert err.cause_chain() == ["OSError: connection reset"]
