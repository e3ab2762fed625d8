"""aumai-binfetch quickstart — offline demonstrations of the install pipeline.

Run this file directly to verify your installation:

    python examples/quickstart.py

No network access is needed: the demos build release assets in memory and
plug them into the installer through its release-source and transfer seams.
"""

from __future__ import annotations

import hashlib
import io
import tarfile
import tempfile
from pathlib import Path

from aumai_binfetch import (
    Asset,
    AssetSelector,
    ChecksumVerifier,
    InstallerError,
    Installer,
    InstallRequest,
    Release,
    ReleaseReference,
    VerificationPolicy,
)
from aumai_binfetch.checksum import parse_checksum_file
from aumai_binfetch.platforms import profile_for

TOOL = b"#!/bin/sh\necho hello from tool\n"


def _tar_gz(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class InMemoryRelease:
    """Serves one release and its asset bodies without touching the network."""

    def __init__(self, tag: str, bodies: dict[str, bytes]) -> None:
        self.bodies = bodies
        self.release = Release(
            tag_name=tag,
            assets=[
                Asset(name=name, download_url=f"mem://{name}", size=len(body))
                for name, body in bodies.items()
            ],
        )

    def fetch(self, reference: ReleaseReference, include_prereleases: bool = False) -> Release:
        return self.release

    def fetch_bytes(self, url: str) -> bytes:
        return self.bodies[url.removeprefix("mem://")]

    def download(self, url: str, destination: Path) -> Path:
        destination.write_bytes(self.fetch_bytes(url))
        return destination


# ---------------------------------------------------------------------------
# Demo 1: Platform-based asset selection
# ---------------------------------------------------------------------------

def demo_selection() -> None:
    """Show how one asset is picked from a typical release."""

    print("\n=== Demo 1: Asset Selection ===")
    names = [
        "tool-v1.0-darwin-arm64.tar.gz",
        "tool-v1.0-linux-amd64.tar.gz",
        "tool-v1.0-linux-amd64.tar.gz.sha256",
        "tool-v1.0-linux-arm64.tar.gz",
        "tool-v1.0-windows-amd64.zip",
        "checksums.txt",
    ]
    assets = [Asset(name=n, download_url=f"mem://{n}") for n in names]

    for os_name, arch in [("linux", "x86_64"), ("darwin", "arm64"), ("windows", "amd64")]:
        selection = AssetSelector(profile_for(os_name, arch)).select(assets)
        print(f"  {os_name}/{arch:<7} -> {selection.asset.name} (score {selection.score})")

    pinned = AssetSelector(profile_for("linux", "x86_64")).select(assets, r"linux-arm64")
    print(f"  pattern 'linux-arm64' -> {pinned.asset.name}")
    print("  Demo 1 passed.")


# ---------------------------------------------------------------------------
# Demo 2: Checksum files
# ---------------------------------------------------------------------------

def demo_checksums() -> None:
    """Parse the common checksum-file layouts and verify a payload."""

    print("\n=== Demo 2: Checksum Files ===")
    payload = b"release payload"
    digest = hashlib.sha256(payload).hexdigest()
    layouts = {
        "GNU": f"{digest}  tool.tar.gz\n",
        "BSD": f"SHA256 (tool.tar.gz) = {digest}\n",
        "single digest": f"{digest}\n",
    }
    for label, text in layouts.items():
        parsed = parse_checksum_file(text, "tool.tar.gz")
        print(f"  {label:<14} -> {parsed[:16]}...")
        assert parsed == digest

    verifier = ChecksumVerifier()
    assert verifier.verify(payload, f"sha256:{digest}")
    try:
        verifier.verify(payload + b"!", digest, "tool.tar.gz")
    except InstallerError as exc:
        print(f"  Tampered payload rejected: [{exc.kind.value}]")
    print("  Demo 2 passed.")


# ---------------------------------------------------------------------------
# Demo 3: Full offline install
# ---------------------------------------------------------------------------

def demo_install() -> None:
    """Run the complete pipeline into a temporary install directory."""

    print("\n=== Demo 3: Offline Install ===")
    archive = _tar_gz({"tool-1.0/tool": TOOL})
    name = "tool-linux-x86_64.tar.gz"
    source = InMemoryRelease(
        "v1.0.0",
        {
            name: archive,
            f"{name}.sha256": f"{hashlib.sha256(archive).hexdigest()}  {name}\n".encode(),
        },
    )

    with tempfile.TemporaryDirectory() as tmpdir:
        destination = Path(tmpdir) / "bin"
        installer = Installer(
            release_client=source,
            selector=AssetSelector(profile_for("linux", "x86_64")),
            http=source,
        )
        result = installer.install(
            InstallRequest(
                reference=ReleaseReference(repository="org/tool"),
                binary_names=["tool"],
                destination=destination,
                policy=VerificationPolicy(require_checksum=True),
            )
        )
        installed = result.installed[0]
        print(f"  Installed {installed.name} from {result.tag_name}")
        print(f"  Checksum: {result.verification.checksum.value} "
              f"({result.verification.checksum_source})")
        assert installed.read_bytes() == TOOL

    print("  Demo 3 passed.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Run all quickstart demos in sequence."""
    print("aumai-binfetch quickstart demos")
    print("=" * 45)

    demo_selection()
    demo_checksums()
    demo_install()

    print("\n" + "=" * 45)
    print("All demos completed successfully.")


if __name__ == "__main__":
    main()
