"""Shared test fixtures for aumai-binfetch."""

from __future__ import annotations

import io
import json
import lzma
import tarfile
import zipfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import gnupg
import pytest

from aumai_binfetch.core import Installer
from aumai_binfetch.platforms import profile_for
from aumai_binfetch.release import ReleaseClient
from aumai_binfetch.selector import AssetSelector
from aumai_binfetch.signature import KeyLoader, SignatureVerifier
from aumai_binfetch.transport import HttpClient

API_URL = "https://api.github.test"
DOWNLOAD_URL = "https://downloads.github.test"
TOOL_BYTES = b"#!/bin/sh\necho tool 1.0\n"

# ---------------------------------------------------------------------------
# In-memory HTTP transport
# ---------------------------------------------------------------------------


class FakeResponse:
    """The subset of ``requests.Response`` used by the transport layer."""

    def __init__(
        self,
        status_code: int = 200,
        body: bytes = b"",
        headers: dict[str, str] | None = None,
        stream_error: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.stream_error = stream_error

    @property
    def content(self) -> bytes:
        return self.body

    def json(self) -> Any:
        return json.loads(self.body)

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for offset in range(0, len(self.body), chunk_size):
            yield self.body[offset:offset + chunk_size]
            if self.stream_error is not None:
                raise self.stream_error

    def close(self) -> None:
        pass

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class FakeSession:
    """Route GET requests to canned responses; unknown URLs answer 404."""

    def __init__(self) -> None:
        self.routes: dict[str, FakeResponse | Exception] = {}
        self.calls: list[tuple[str, dict[str, str]]] = []

    def add(
        self,
        url: str,
        body: bytes = b"",
        status: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.routes[url] = FakeResponse(status, body, headers)

    def add_json(
        self,
        url: str,
        payload: Any,
        status: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.add(url, json.dumps(payload).encode("utf-8"), status, headers)

    def fail(self, url: str, error: Exception) -> None:
        self.routes[url] = error

    def add_interrupted(self, url: str, body: bytes, error: Exception) -> None:
        """Serve the first chunk of *body*, then break the stream with *error*."""
        self.routes[url] = FakeResponse(200, body, stream_error=error)

    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        stream: bool = False,
    ) -> FakeResponse:
        self.calls.append((url, dict(headers or {})))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, b'{"message": "Not Found"}')
        if isinstance(route, Exception):
            raise route
        return route


class FakeGitHub:
    """Publish releases on a :class:`FakeSession` the way the REST API would."""

    def __init__(self, session: FakeSession) -> None:
        self.session = session

    def asset_url(self, repo: str, tag: str, name: str) -> str:
        return f"{DOWNLOAD_URL}/{repo}/releases/download/{tag}/{name}"

    def payload(
        self,
        repo: str,
        tag: str,
        assets: dict[str, bytes],
        prerelease: bool = False,
        draft: bool = False,
    ) -> dict[str, Any]:
        return {
            "tag_name": tag,
            "draft": draft,
            "prerelease": prerelease,
            "assets": [
                {
                    "name": name,
                    "browser_download_url": self.asset_url(repo, tag, name),
                    "size": len(body),
                }
                for name, body in assets.items()
            ],
        }

    def publish(
        self,
        repo: str,
        tag: str,
        assets: dict[str, bytes],
        latest: bool = True,
        prerelease: bool = False,
    ) -> dict[str, Any]:
        payload = self.payload(repo, tag, assets, prerelease=prerelease)
        for name, body in assets.items():
            self.session.add(self.asset_url(repo, tag, name), body)
        self.session.add_json(f"{API_URL}/repos/{repo}/releases/tags/{tag}", payload)
        if latest:
            self.session.add_json(f"{API_URL}/repos/{repo}/releases/latest", payload)
        return payload


# ---------------------------------------------------------------------------
# Archive builders
# ---------------------------------------------------------------------------


class ArchiveFactory:
    """Build release archives in memory."""

    def tar(self, files: dict[str, bytes], mode: str = "w:gz") -> bytes:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode=mode) as archive:
            for name, data in files.items():
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o755
                archive.addfile(info, io.BytesIO(data))
        return buf.getvalue()

    def tar_gz(self, files: dict[str, bytes]) -> bytes:
        return self.tar(files, "w:gz")

    def tar_xz(self, files: dict[str, bytes]) -> bytes:
        return self.tar(files, "w:xz")

    def tar_lzma(self, files: dict[str, bytes]) -> bytes:
        return lzma.compress(self.tar(files, "w"), format=lzma.FORMAT_ALONE)

    def zip(self, files: dict[str, bytes]) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as archive:
            for name, data in files.items():
                archive.writestr(name, data)
        return buf.getvalue()


# ---------------------------------------------------------------------------
# OpenPGP keys and signatures, made by a real gpg
# ---------------------------------------------------------------------------


class GpgKey:
    """A key pair held in the factory's keyring, known by its fingerprint."""

    def __init__(self, fingerprint: str) -> None:
        self.fingerprint = fingerprint

    @property
    def key_id(self) -> str:
        return self.fingerprint[-16:].upper()


class GpgFactory:
    """Generate keys, key blocks and detached signatures for tests."""

    def __init__(self, home: Path) -> None:
        home.chmod(0o700)
        self.gpg = gnupg.GPG(gnupghome=str(home))

    def _generate(self, **params: Any) -> GpgKey:
        result = self.gpg.gen_key(self.gpg.gen_key_input(no_protection=True, **params))
        if not result.fingerprint:
            raise RuntimeError(f"gpg key generation failed: {result.stderr}")
        return GpgKey(result.fingerprint)

    def rsa(
        self, name_email: str = "release@example.com", signing_subkey: bool = False
    ) -> GpgKey:
        params: dict[str, Any] = {
            "key_type": "RSA",
            "key_length": 2048,
            "name_real": "Release Signing",
            "name_email": name_email,
        }
        if signing_subkey:
            params.update(subkey_type="RSA", subkey_length=2048, subkey_usage="sign")
        return self._generate(**params)

    def ed25519(self, name_email: str = "ed25519@example.com") -> GpgKey:
        return self._generate(
            key_type="EDDSA",
            key_curve="ed25519",
            key_usage="sign",
            name_real="Release Signing",
            name_email=name_email,
        )

    def key_block(self, key: GpgKey, armored: bool = True) -> bytes:
        block = self.gpg.export_keys(key.fingerprint, armor=armored)
        if isinstance(block, str):
            block = block.encode("ascii")
        if not block:
            raise RuntimeError(f"gpg could not export {key.fingerprint}")
        return block

    def sign(
        self, key: GpgKey, data: bytes, armored: bool = True, textmode: bool = False
    ) -> bytes:
        result = self.gpg.sign(
            data,
            keyid=key.fingerprint,
            detach=True,
            binary=not armored,
            extra_args=["--textmode"] if textmode else None,
        )
        if not result.data:
            raise RuntimeError(f"gpg signing failed: {result.stderr}")
        return result.data


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def http(session: FakeSession) -> HttpClient:
    """An HttpClient whose session is the in-memory fake."""
    return HttpClient(session=session, token="test-token")


@pytest.fixture()
def github(session: FakeSession) -> FakeGitHub:
    return FakeGitHub(session)


@pytest.fixture(scope="session")
def archives() -> ArchiveFactory:
    return ArchiveFactory()


@pytest.fixture(scope="session")
def pgp(tmp_path_factory: pytest.TempPathFactory) -> GpgFactory:
    """A gpg keyring for making test keys; skips when gpg is not installed."""
    try:
        return GpgFactory(tmp_path_factory.mktemp("gnupg"))
    except OSError:
        pytest.skip("gpg is not installed")


@pytest.fixture(scope="session")
def signing_key(pgp: GpgFactory) -> GpgKey:
    """An RSA key shared by the whole session."""
    return pgp.rsa()


@pytest.fixture(scope="session")
def other_key(pgp: GpgFactory) -> GpgKey:
    """A second key that never signs the published assets."""
    return pgp.rsa(name_email="someone-else@example.com")


@pytest.fixture(scope="session")
def public_key_block(pgp: GpgFactory, signing_key: GpgKey) -> bytes:
    return pgp.key_block(signing_key)


@pytest.fixture()
def tool_archive(archives: ArchiveFactory) -> bytes:
    """``tool-1.0/tool`` packed as a tar.gz."""
    return archives.tar_gz({"tool-1.0/tool": TOOL_BYTES, "tool-1.0/README.md": b"docs"})


@pytest.fixture()
def installer(http: HttpClient, tmp_path: Path) -> Installer:
    """An Installer wired to the fake API for a linux/x86_64 host."""
    return Installer(
        release_client=ReleaseClient(http, api_url=API_URL),
        selector=AssetSelector(profile_for("linux", "x86_64")),
        http=http,
        signature_verifier=SignatureVerifier(KeyLoader(http)),
        scratch_root=tmp_path / "scratch",
    )
