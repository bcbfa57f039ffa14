"""Target triple parsing and host detection."""
from __future__ import annotations

from dataclasses import dataclass
import platform


_MACHINE_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "i386": "i686",
    "i686": "i686",
    "x86": "i686",
    "armv7l": "armv7",
}

_SKIA_CPU = {
    "x86_64": "x64",
    "aarch64": "arm64",
    "i686": "x86",
    "i586": "x86",
    "arm": "arm",
    "armv7": "arm",
    "thumbv7neon": "arm",
    "wasm32": "wasm",
}

_SKIA_OS = {
    "darwin": "mac",
    "windows": "win",
    "ios": "ios",
    "android": "android",
    "androideabi": "android",
    "linux": "linux",
}


@dataclass(frozen=True, slots=True)
class Target:
    """A Rust-style target triple, e.g. ``x86_64-unknown-linux-gnu``."""

    arch: str
    vendor: str | None
    system: str
    abi: str | None = None

    @classmethod
    def parse(cls, triple: str) -> "Target":
        parts = triple.strip().split("-")
        if len(parts) < 2 or not all(parts):
            raise ValueError(f"Invalid target triple '{triple}': expected <arch>[-<vendor>]-<system>[-<abi>]")
        if len(parts) == 2:
            # vendorless triples such as wasm32-wasi
            return cls(arch=parts[0], vendor=None, system=parts[1])
        arch, vendor, system = parts[0], parts[1], parts[2]
        abi = "-".join(parts[3:]) or None
        return cls(arch=arch, vendor=vendor, system=system, abi=abi)

    @classmethod
    def host(cls) -> "Target":
        machine = platform.machine().lower()
        arch = _MACHINE_ALIASES.get(machine, machine or "x86_64")
        system = platform.system().lower()
        if system == "darwin":
            return cls(arch=arch, vendor="apple", system="darwin")
        if system == "windows":
            return cls(arch=arch, vendor="pc", system="windows", abi="msvc")
        if system == "linux":
            return cls(arch=arch, vendor="unknown", system="linux", abi="gnu")
        return cls(arch=arch, vendor="unknown", system=system or "unknown")

    def __str__(self) -> str:
        parts = [self.arch, self.system] if self.vendor is None else [self.arch, self.vendor, self.system]
        if self.abi:
            parts.append(self.abi)
        return "-".join(parts)

    @property
    def is_windows(self) -> bool:
        return self.system == "windows"

    @property
    def is_msvc(self) -> bool:
        return self.is_windows and self.abi == "msvc"

    @property
    def is_apple(self) -> bool:
        return self.vendor == "apple"

    @property
    def is_macos(self) -> bool:
        return self.is_apple and self.system == "darwin"

    @property
    def is_ios(self) -> bool:
        return self.is_apple and self.system == "ios"

    @property
    def is_ios_simulator(self) -> bool:
        if not self.is_ios:
            return False
        return self.abi == "sim" or self.arch == "x86_64"

    @property
    def is_android(self) -> bool:
        return self.system in {"android", "androideabi"} or self.abi in {"android", "androideabi"}

    @property
    def is_linux(self) -> bool:
        return self.system == "linux" and not self.is_android

    @property
    def is_bsd(self) -> bool:
        return self.system.endswith("bsd")

    @property
    def os_name(self) -> str:
        """Operating system family used by capability platform rules."""
        if self.is_android:
            return "android"
        if self.is_macos:
            return "macos"
        if self.is_ios:
            return "ios"
        if self.is_windows:
            return "windows"
        if self.is_bsd:
            return "bsd"
        return self.system

    @property
    def skia_target_os(self) -> str:
        if self.is_android:
            return "android"
        return _SKIA_OS.get(self.system, self.system)

    @property
    def skia_target_cpu(self) -> str:
        return _SKIA_CPU.get(self.arch, self.arch)

    @property
    def static_library_pattern(self) -> str:
        return "{}.lib" if self.is_msvc else "lib{}.a"

    def static_library_name(self, name: str) -> str:
        return self.static_library_pattern.format(name)

    @property
    def executable_suffix(self) -> str:
        return ".exe" if self.is_windows else ""


__all__ = ["Target"]
