"""Detached OpenPGP signature verification for release assets."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from aumai_binfetch.errors import (
    SignatureMismatch,
    SignatureParseError,
    SignatureUnavailable,
)
from aumai_binfetch.models import (
    Asset,
    CheckStatus,
    KeySourceKind,
    PublicKeySource,
    VerificationPolicy,
)
from aumai_binfetch.openpgp import (
    GPG_BINARY,
    GpgUnavailable,
    Keyring,
    MalformedData,
    Signer,
    VerificationFailed,
    looks_like_signature,
)
from aumai_binfetch.transport import HttpClient

logger = logging.getLogger(__name__)

# Looked up in this order; an ``.asc`` that is not a signature is skipped.
SIGNATURE_SIDECARS: tuple[str, ...] = (
    "{asset}.asc",
    "{asset}.sig",
)

Fetcher = Callable[[str], bytes]


def signature_sidecar_names(asset_name: str) -> list[str]:
    return [template.format(asset=asset_name) for template in SIGNATURE_SIDECARS]


def has_signature_sidecar(asset_name: str, names: Sequence[str]) -> bool:
    """True when *names* contains a detached-signature sidecar for *asset_name*."""
    wanted = {name.lower() for name in signature_sidecar_names(asset_name)}
    return any(name.lower() in wanted for name in names)


class KeyLoader:
    """Load OpenPGP public key material from inline text, a file or a URL.

    Keys fetched over HTTP(S) are cached for the lifetime of the loader, so a
    run that verifies several assets downloads each key once.
    """

    def __init__(self, http: HttpClient | None = None) -> None:
        self.http = http
        self._cache: dict[str, bytes] = {}

    def load(self, source: PublicKeySource) -> bytes:
        """Return the raw key block for *source*.

        Raises:
            SignatureParseError: if a key file cannot be read or is empty.
            NetworkError: if a URL source cannot be fetched.
        """
        if source.kind == KeySourceKind.url and source.value in self._cache:
            logger.debug("Using cached public key from %s", source.value)
            return self._cache[source.value]

        material = self._read(source)
        if not material.strip():
            raise SignatureParseError(
                f"Invalid public key ({source.describe()}): no key data",
                key_source=source.describe(),
            )
        if source.kind == KeySourceKind.url:
            self._cache[source.value] = material
        return material

    def _read(self, source: PublicKeySource) -> bytes:
        if source.kind == KeySourceKind.url:
            if self.http is None:
                self.http = HttpClient()
            logger.info("Downloading public key from %s", source.value)
            return self.http.fetch_bytes(source.value)
        if source.kind == KeySourceKind.path:
            try:
                return Path(source.value).read_bytes()
            except OSError as exc:
                raise SignatureParseError(
                    f"Cannot read public key file {source.value}: {exc}",
                    key_source=source.describe(),
                ) from exc
        return source.value.encode("utf-8")


class SignatureVerifier:
    """Verify a detached signature over an asset against one public key.

    Verification is delegated to GnuPG through ``python-gnupg``; each call
    imports the key into a fresh temporary keyring.

    Args:
        key_loader: Source of key material; a plain :class:`KeyLoader` by default.
        gpg_binary: Name or path of the gpg executable.
    """

    def __init__(
        self, key_loader: KeyLoader | None = None, gpg_binary: str = GPG_BINARY
    ) -> None:
        self.key_loader = key_loader or KeyLoader()
        self.gpg_binary = gpg_binary

    def load_public_key(self, source: PublicKeySource) -> bytes:
        return self.key_loader.load(source)

    @contextmanager
    def _keyring(self, key: bytes, key_label: str) -> Iterator[Keyring]:
        try:
            with Keyring(self.gpg_binary) as keyring:
                try:
                    fingerprints = keyring.import_key(key)
                except MalformedData as exc:
                    raise SignatureParseError(
                        f"Invalid public key ({key_label}): {exc}",
                        key_source=key_label,
                    ) from exc
                logger.info("Loaded public key %s", ", ".join(fingerprints))
                yield keyring
        except GpgUnavailable as exc:
            raise SignatureUnavailable(
                f"Cannot verify signatures: {exc}", gpg_binary=self.gpg_binary
            ) from exc

    def identify_signer(
        self,
        data: bytes | Path,
        signature_bytes: bytes,
        key: bytes,
        asset_name: str = "",
        key_label: str = "supplied key",
    ) -> Signer:
        """Verify the signature and return the key that made it.

        Raises:
            SignatureParseError: if the key or signature cannot be read.
            SignatureMismatch: if the signature does not verify.
            SignatureUnavailable: if gpg cannot be run.
        """
        label = asset_name or "payload"
        with self._keyring(key, key_label) as keyring:
            try:
                return keyring.verify(signature_bytes, data)
            except MalformedData as exc:
                raise SignatureParseError(
                    f"Invalid signature for {label}: {exc}", asset=asset_name
                ) from exc
            except VerificationFailed as exc:
                raise SignatureMismatch(
                    f"Signature verification failed for {label}: {exc}",
                    asset=asset_name,
                    key=", ".join(keyring.fingerprints),
                ) from exc

    def verify(
        self,
        data: bytes | Path,
        signature_bytes: bytes,
        key: bytes,
        asset_name: str = "",
    ) -> bool:
        """Return ``True`` when the signature verifies; raise otherwise."""
        self.identify_signer(data, signature_bytes, key, asset_name)
        return True

    def find_signature(
        self,
        asset: Asset,
        assets: Sequence[Asset],
        fetch: Fetcher,
    ) -> tuple[str, bytes] | None:
        """Download the first detached-signature sidecar for *asset*.

        ``.asc`` bodies that are not signatures (checksum text, a public key)
        are passed over; a ``.sig`` is always returned for verification.
        """
        by_name = {a.name.lower(): a for a in assets}
        for name in signature_sidecar_names(asset.name):
            sidecar = by_name.get(name.lower())
            if sidecar is None:
                continue
            body = fetch(sidecar.download_url)
            if sidecar.name.lower().endswith(".asc") and not looks_like_signature(body):
                logger.debug("%s does not hold a signature", sidecar.name)
                continue
            return sidecar.name, body
        return None

    def check(
        self,
        asset: Asset,
        payload: Path,
        assets: Sequence[Asset],
        policy: VerificationPolicy,
        fetch: Fetcher,
    ) -> tuple[CheckStatus, str | None, str | None]:
        """Apply *policy*; returns ``(status, sidecar_name, signer_key_id)``."""
        source = policy.public_key_source
        if not policy.signature_enabled or source is None:
            logger.debug("No public key supplied; signature verification skipped")
            return CheckStatus.skipped, None, None

        key = self.load_public_key(source)
        found = self.find_signature(asset, assets, fetch)
        if found is None:
            raise SignatureUnavailable(
                f"A public key was supplied but {asset.name} has no detached "
                f"signature ({', '.join(signature_sidecar_names(asset.name))})",
                asset=asset.name,
            )
        sidecar_name, signature_bytes = found
        signer = self.identify_signer(
            payload, signature_bytes, key, asset.name, source.describe()
        )
        logger.info("Signature %s verified (key %s)", sidecar_name, signer.key_id)
        return CheckStatus.passed, sidecar_name, signer.key_id


__all__ = [
    "SIGNATURE_SIDECARS",
    "KeyLoader",
    "SignatureVerifier",
    "has_signature_sidecar",
    "signature_sidecar_names",
]
