"""
Alias tables used by the asset-name classifier. Keys are lowercase; callers
lowercase the matched token before looking it up.
"""
from relprobe.kernel.contracts import DISPATCH_PLATFORMS, Arch, ArchiveFormat, Os, Platform

OS_ALIASES: dict[str, Os] = {
    "apple-darwin": Os.MACOS,
    "pc-windows-gnu": Os.WINDOWS,
    "pc-windows-msvc": Os.WINDOWS,
    "unknown-linux-gnu": Os.LINUX,
    "unknown-linux-musl": Os.LINUX,
    "darwin": Os.MACOS,
    "linux": Os.LINUX,
    "macos": Os.MACOS,
    "osx": Os.MACOS,
    "windows": Os.WINDOWS,
}

ARCH_ALIASES: dict[str, Arch] = {
    "aarch_64": Arch.AARCH64,
    "aarch64": Arch.AARCH64,
    "arm64": Arch.AARCH64,
    "amd64": Arch.X86_64,
    "x86_64": Arch.X86_64,
    "x64": Arch.X86_64,
}

# Spellings that name a whole platform at once.
IRREGULAR_PLATFORMS: dict[str, Platform] = {
    "macos-universal_binary": Platform.MACOS_UNIVERSAL,
    "osx-universal_binary": Platform.MACOS_UNIVERSAL,
    "win64": Platform.WINDOWS_X86_64,
}

FORMAT_SUFFIXES: dict[str, ArchiveFormat] = {
    f".{fmt.value}": fmt for fmt in ArchiveFormat
}


def platform_selectors() -> list[str]:
    """
    Every value accepted by `expand_platform_selectors`: "all", then each
    architecture, each OS and each concrete platform.
    """
    return [
        "all",
        *(arch.value for arch in Arch),
        *(os.value for os in Os),
        *(platform.value for platform in DISPATCH_PLATFORMS),
    ]
