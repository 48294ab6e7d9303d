"""
relprobe: classify release asset names, then fetch, hash and list the
contents of the artifacts in a single streaming pass.
"""
from relprobe.internal.errors import (
    ArchiveCorruptError,
    ConfigurationError,
    InspectionError,
    NetworkError,
    RelprobeError,
)
from relprobe.kernel.classifier import classify, expand_platform_selectors, partition_assets
from relprobe.kernel.contracts import ArchiveFormat, AssetInfo, DownloadResult, Platform
from relprobe.kernel.pipeline import DownloadPipeline, fetch_and_inspect
from relprobe.kernel.serializer import DecodeSerializer

__version__ = "0.1.0"

__all__ = [
    "ArchiveCorruptError",
    "ArchiveFormat",
    "AssetInfo",
    "ConfigurationError",
    "DecodeSerializer",
    "DownloadPipeline",
    "DownloadResult",
    "InspectionError",
    "NetworkError",
    "Platform",
    "RelprobeError",
    "classify",
    "expand_platform_selectors",
    "fetch_and_inspect",
    "partition_assets",
]
