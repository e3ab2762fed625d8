"""GnuPG-backed verification of detached OpenPGP signatures.

Each verification runs against a throwaway GnuPG home that holds nothing but
the supplied public key, so the user's own keyring and trust database never
take part.  There is no trust model: a signature is good when it verifies
against that one key block.
"""

from __future__ import annotations

import io
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

import gnupg

logger = logging.getLogger(__name__)

GPG_BINARY = "gpg"
ARMOR_SIGNATURE_HEADER = b"-----BEGIN PGP SIGNATURE-----"
TAG_SIGNATURE = 2

# Verify.status values gpg reports once it has read a signature packet.
_REJECTED_STATUSES = frozenset(
    {
        "signature bad",
        "signature error",
        "no public key",
        "signature expired",
        "signature made by expired key",
        "signature made by revoked key",
    }
)


class OpenPGPError(Exception):
    """Base class for failures of the GnuPG layer."""


class GpgUnavailable(OpenPGPError):
    """The gpg executable cannot be run."""


class MalformedData(OpenPGPError):
    """Key or signature data gpg could not read."""


class VerificationFailed(OpenPGPError):
    """A readable signature that does not verify against the key block."""


@dataclass(frozen=True)
class Signer:
    """The key that produced a good signature."""

    fingerprint: str
    primary_fingerprint: str
    username: str | None = None

    @property
    def key_id(self) -> str:
        return self.fingerprint[-16:].upper()


def looks_like_signature(data: bytes) -> bool:
    """Cheap check on leading bytes: armored signature or binary sig packet."""
    if data.lstrip().startswith(ARMOR_SIGNATURE_HEADER):
        return True
    if not data or not data[0] & 0x80:
        return False
    header = data[0]
    tag = header & 0x3F if header & 0x40 else (header >> 2) & 0x0F
    return tag == TAG_SIGNATURE


class Keyring:
    """A temporary GnuPG home used for one verification.

    Use as a context manager; the home directory is removed on exit.

    Args:
        gpg_binary: Name or path of the gpg executable.
    """

    def __init__(self, gpg_binary: str = GPG_BINARY) -> None:
        self.gpg_binary = gpg_binary
        self.fingerprints: list[str] = []
        self._home: tempfile.TemporaryDirectory[str] | None = None
        self._gpg: gnupg.GPG | None = None

    def __enter__(self) -> Keyring:
        self._home = tempfile.TemporaryDirectory(
            prefix="aumai-binfetch-gpg-", ignore_cleanup_errors=True
        )
        try:
            self._gpg = gnupg.GPG(gpgbinary=self.gpg_binary, gnupghome=self._home.name)
        except (OSError, ValueError) as exc:
            self._home.cleanup()
            self._home = None
            raise GpgUnavailable(f"cannot run {self.gpg_binary}: {exc}") from exc
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._home is not None:
            self._home.cleanup()
        self._home = None
        self._gpg = None

    @property
    def gpg(self) -> gnupg.GPG:
        if self._gpg is None:
            raise RuntimeError("Keyring must be used as a context manager")
        return self._gpg

    @property
    def home(self) -> Path:
        if self._home is None:
            raise RuntimeError("Keyring must be used as a context manager")
        return Path(self._home.name)

    def import_key(self, material: bytes) -> list[str]:
        """Import an armored or binary public key block; return its fingerprints.

        Raises:
            MalformedData: when gpg finds no usable key in *material*.
        """
        result = self.gpg.import_keys(material)
        fingerprints = [fp for fp in result.fingerprints if fp]
        if not fingerprints:
            raise MalformedData("no usable OpenPGP public key found")
        self.fingerprints.extend(fingerprints)
        logger.debug("Imported public key(s) %s", ", ".join(fingerprints))
        return fingerprints

    def verify(self, signature: bytes, data: bytes | Path) -> Signer:
        """Check the detached *signature* over *data*.

        Raises:
            MalformedData: if gpg cannot read a signature from *signature*.
            VerificationFailed: if the signature does not verify.
        """
        if isinstance(data, (bytes, bytearray)):
            target = self.home / "signed-data"
            target.write_bytes(data)
        else:
            target = data

        verified = self.gpg.verify_file(io.BytesIO(signature), data_filename=str(target))
        if verified.valid:
            fingerprint = verified.fingerprint or verified.key_id or ""
            return Signer(
                fingerprint=fingerprint,
                primary_fingerprint=verified.pubkey_fingerprint or fingerprint,
                username=verified.username,
            )
        if verified.status == "no public key":
            raise VerificationFailed(
                f"signature was issued by key {verified.key_id}, "
                "which is not in the supplied key block"
            )
        if verified.key_id or verified.status in _REJECTED_STATUSES:
            raise VerificationFailed(
                f"{verified.status or 'signature rejected'} (key {verified.key_id})"
            )
        raise MalformedData(
            f"no OpenPGP signature found ({verified.status or 'unreadable data'})"
        )


__all__ = [
    "GPG_BINARY",
    "GpgUnavailable",
    "Keyring",
    "MalformedData",
    "OpenPGPError",
    "Signer",
    "VerificationFailed",
    "looks_like_signature",
]
