from relprobe.kernel.contracts.contracts import (
    DISPATCH_PLATFORMS,
    Arch,
    ArchiveFormat,
    AssetInfo,
    DownloadResult,
    Os,
    Platform,
    ProgressCallback,
)

__all__ = [
    "DISPATCH_PLATFORMS",
    "Arch",
    "ArchiveFormat",
    "AssetInfo",
    "DownloadResult",
    "Os",
    "Platform",
    "ProgressCallback",
]
