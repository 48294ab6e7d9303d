"""
Pure data contracts shared by the classifier and the download pipeline.
"""
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Awaitable, Callable, Optional, Union


class Os(str, Enum):
    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"


class Arch(str, Enum):
    AARCH64 = "aarch64"
    X86_64 = "x86_64"


class Platform(str, Enum):
    """
    A canonical `{os}-{arch}` pair, plus `macos-universal` for binaries that
    carry both macOS architectures.
    """

    LINUX_AARCH64 = "linux-aarch64"
    LINUX_X86_64 = "linux-x86_64"
    MACOS_AARCH64 = "macos-aarch64"
    MACOS_X86_64 = "macos-x86_64"
    WINDOWS_AARCH64 = "windows-aarch64"
    WINDOWS_X86_64 = "windows-x86_64"
    MACOS_UNIVERSAL = "macos-universal"

    @classmethod
    def from_parts(cls, os: Os, arch: Arch) -> "Platform":
        return cls(f"{Os(os).value}-{Arch(arch).value}")

    @property
    def is_universal(self) -> bool:
        return self is Platform.MACOS_UNIVERSAL

    def covered_by(self, selected: AbstractSet["Platform"]) -> bool:
        """
        Whether this platform is wanted given a set of selected platforms.
        A universal binary serves either macOS architecture.
        """
        if self.is_universal:
            return Platform.MACOS_AARCH64 in selected or Platform.MACOS_X86_64 in selected
        return self in selected

    def __str__(self) -> str:
        return self.value


# Concrete platforms a manifest can address; macos-universal is not one of them.
DISPATCH_PLATFORMS = tuple(p for p in Platform if not p.is_universal)


class ArchiveFormat(str, Enum):
    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"
    TAR_ZST = "tar.zst"
    TAR = "tar"
    ZIP = "zip"
    GZ = "gz"
    XZ = "xz"
    ZST = "zst"

    @classmethod
    def coerce(cls, value: Union["ArchiveFormat", str, None]) -> Optional["ArchiveFormat"]:
        """
        Accepts an enum member, a format string (case-insensitive, leading dot
        allowed) or None. Unknown formats yield None rather than an error.
        """
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(value.strip().lower().lstrip("."))
        except ValueError:
            return None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AssetInfo:
    """
    Metadata derived from an asset filename. `name` is always set; an asset
    without a `platform` could not be classified and cannot go in a manifest.
    """
    name: str
    version: Optional[str] = None
    platform: Optional[Platform] = None
    format: Optional[ArchiveFormat] = None

    @property
    def is_classified(self) -> bool:
        return self.platform is not None

    def to_filename(self) -> str:
        """
        Canonical filename for this asset; classifying it yields this record
        back. Unclassified assets serialize to their bare name.
        """
        if self.platform is None:
            return self.name

        parts = [self.name]
        if self.version is not None:
            parts.append(self.version)
        if self.platform.is_universal:
            parts.append("macos-universal_binary")
        else:
            parts.append(self.platform.value)

        filename = "-".join(parts)
        if self.format is not None:
            filename = f"{filename}.{self.format.value}"
        return filename


@dataclass(frozen=True)
class DownloadResult:
    """
    Outcome of one fetch. `archive_member_names` is None when the format has no
    archive adapter; otherwise it lists members in archive order.
    """
    digest: str
    archive_member_names: Optional[tuple[str, ...]] = None
    hash_algorithm: str = "blake3"
    size: int = 0


# Awaited (or called) with the cumulative byte count after every chunk.
ProgressCallback = Callable[[int], Union[Awaitable[None], None]]
