"""Platform detection and the naming synonyms used in release asset names."""

from __future__ import annotations

import platform

from aumai_binfetch.models import PlatformProfile

OS_ALIASES: dict[str, tuple[str, ...]] = {
    "linux": ("linux",),
    "darwin": ("macos", "osx", "apple", "mac"),
    "windows": ("win", "win64", "win32"),
    "freebsd": (),
}

ARCH_ALIASES: dict[str, tuple[str, ...]] = {
    "x86_64": ("amd64", "x64"),
    "aarch64": ("arm64", "armv8"),
    "armv7": ("armv7l", "armhf", "arm"),
    "i686": ("i386", "386", "x86"),
    "riscv64": (),
    "ppc64le": (),
    "s390x": (),
}


def normalize_os(system: str) -> str:
    s = system.strip().lower()
    if s.startswith(("win", "cygwin", "msys", "mingw")):
        return "windows"
    if s in ("darwin", "macos", "osx", "mac"):
        return "darwin"
    for family, aliases in OS_ALIASES.items():
        if s == family or s in aliases:
            return family
    return s


def normalize_arch(machine: str) -> str:
    m = machine.strip().lower().replace("-", "_")
    if m in ("x86_64", "amd64", "x64"):
        return "x86_64"
    if m in ("aarch64", "arm64") or m.startswith("armv8"):
        return "aarch64"
    if m.startswith("armv7") or m in ("arm", "armhf"):
        return "armv7"
    if m in ("i386", "i486", "i586", "i686", "x86", "386"):
        return "i686"
    return m


def profile_for(os_name: str, arch: str) -> PlatformProfile:
    """Build a :class:`PlatformProfile` from explicit names, adding synonyms."""
    os_family = normalize_os(os_name)
    architecture = normalize_arch(arch)
    return PlatformProfile(
        os_family=os_family,
        architecture=architecture,
        os_aliases=OS_ALIASES.get(os_family, ()),
        arch_aliases=ARCH_ALIASES.get(architecture, ()),
    )


def detect_platform(
    os_override: str | None = None,
    arch_override: str | None = None,
) -> PlatformProfile:
    """Profile the running interpreter, honouring explicit overrides."""
    return profile_for(
        os_override or platform.system(),
        arch_override or platform.machine(),
    )


__all__ = [
    "ARCH_ALIASES",
    "OS_ALIASES",
    "detect_platform",
    "normalize_arch",
    "normalize_os",
    "profile_for",
]
