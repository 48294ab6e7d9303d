"""
Asset-name classifier.

A filename is read as

    name [sep v? version] sep platform (".exe")? ["." format]

where sep is "-" or "_". The platform part can be spelled three ways and each
spelling is its own matcher, tried in a fixed order: os-arch, arch-os, then an
irregular whole-platform token such as "win64". The first matcher that accepts
the whole filename wins.
"""
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, NamedTuple, Optional

from relprobe.internal.logging import get_logger
from relprobe.kernel.contracts import (
    DISPATCH_PLATFORMS,
    Arch,
    ArchiveFormat,
    AssetInfo,
    Os,
    Platform,
)
from relprobe.kernel.tokens import ARCH_ALIASES, FORMAT_SUFFIXES, IRREGULAR_PLATFORMS, OS_ALIASES

logger = get_logger(__name__)


def _alternation(tokens: Iterable[str]) -> str:
    # Longest first so that e.g. "tar.gz" is preferred over "gz".
    return "|".join(re.escape(token) for token in sorted(tokens, key=lambda t: (-len(t), t)))


_SEP = r"[-_]"
_NAME = r"(?P<name>[\w-]+)"
_VERSION = r"v?(?P<version>\d+(?:\.\d+)+(?:[-.][a-z]+[-.]?\d+)?)"
_OS = rf"(?P<os>{_alternation(OS_ALIASES)})"
_ARCH = rf"(?P<arch>{_alternation(ARCH_ALIASES)})"
_IRREGULAR = rf"(?P<platform>{_alternation(IRREGULAR_PLATFORMS)})"
_FORMAT = rf"(?P<format>{_alternation(suffix.lstrip('.') for suffix in FORMAT_SUFFIXES)})"
_TAIL = rf"(?:\.exe)?(?:\.{_FORMAT})?"

_FALLBACK_SEP = re.compile(_SEP)


@dataclass
class PlatformMatcher:
    """
    Matches whole filenames whose platform part follows one spelling.
    `resolve` maps the match to a canonical platform.
    """
    label: str
    platform_pattern: str
    resolve: Callable[[re.Match], Platform]
    regex: re.Pattern = field(init=False, repr=False)

    def __post_init__(self):
        self.regex = re.compile(
            rf"^{_NAME}(?:{_SEP}{_VERSION})?{_SEP}(?:{self.platform_pattern}){_TAIL}$",
            re.IGNORECASE,
        )

    def match(self, filename: str) -> Optional[AssetInfo]:
        match = self.regex.match(filename)
        if match is None:
            return None

        version = match.group("version")
        return AssetInfo(
            name=match.group("name").lower(),
            version=version.lower() if version is not None else None,
            platform=self.resolve(match),
            format=ArchiveFormat.coerce(match.group("format")),
        )


def _resolve_os_arch(match: re.Match) -> Platform:
    return Platform.from_parts(
        OS_ALIASES[match.group("os").lower()],
        ARCH_ALIASES[match.group("arch").lower()],
    )


def _resolve_irregular(match: re.Match) -> Platform:
    return IRREGULAR_PLATFORMS[match.group("platform").lower()]


OS_ARCH = PlatformMatcher("os-arch", rf"{_OS}{_SEP}{_ARCH}", _resolve_os_arch)
ARCH_OS = PlatformMatcher("arch-os", rf"{_ARCH}{_SEP}{_OS}", _resolve_os_arch)
IRREGULAR = PlatformMatcher("irregular", _IRREGULAR, _resolve_irregular)

MATCHERS: tuple[PlatformMatcher, ...] = (OS_ARCH, ARCH_OS, IRREGULAR)


def fallback_info(filename: str) -> AssetInfo:
    return AssetInfo(name=_FALLBACK_SEP.split(filename, 1)[0].lower())


def classify_all(filename: str, matchers: Iterable[PlatformMatcher] = MATCHERS) -> list[tuple[str, AssetInfo]]:
    """
    Every reading of `filename`, one per matcher that accepts it, in matcher order.
    """
    readings = []
    for matcher in matchers:
        info = matcher.match(filename)
        if info is not None:
            readings.append((matcher.label, info))
    return readings


def classify(filename: str, matchers: Iterable[PlatformMatcher] = MATCHERS) -> AssetInfo:
    """
    Parses an asset name such as `protoc-28.2-linux-x86_64.zip` into its parts.

    Never raises: a name that fits no matcher yields an AssetInfo holding only
    the text before the first separator, with no platform.
    """
    readings = classify_all(filename, matchers)
    if not readings:
        return fallback_info(filename)

    label, info = readings[0]
    if any(other.platform != info.platform for _, other in readings[1:]):
        logger.warning(
            "ambiguous asset name",
            filename=filename,
            chosen=label,
            readings={other_label: str(other.platform) for other_label, other in readings},
        )
    return info


# ---------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------

def expand_platform_selectors(selectors: Iterable[str]) -> set[Platform]:
    """
    Turns selectors ("all", an OS, an architecture or a concrete platform)
    into the set of platforms they stand for.
    """
    selected: set[Platform] = set()

    for selector in selectors:
        key = selector.strip().lower()
        if key == "all":
            selected.update(DISPATCH_PLATFORMS)
        elif key in {os.value for os in Os}:
            selected.update(Platform.from_parts(Os(key), arch) for arch in Arch)
        elif key in {arch.value for arch in Arch}:
            selected.update(Platform.from_parts(os, Arch(key)) for os in Os)
        elif key in {platform.value for platform in DISPATCH_PLATFORMS}:
            selected.add(Platform(key))
        else:
            raise ValueError(f"Unknown platform selector: {selector!r}")

    return selected


class ClassifiedAsset(NamedTuple):
    filename: str
    info: AssetInfo


@dataclass
class AssetPartition:
    by_name: dict[str, list[ClassifiedAsset]]
    unknown: list[str]


def partition_assets(
    filenames: Iterable[str],
    platforms: Optional[set[Platform]] = None,
) -> AssetPartition:
    """
    Classifies a batch of filenames and groups the recognised ones by logical
    name. Assets whose platform is not covered by `platforms` are dropped;
    unclassified filenames are collected in `unknown`.
    """
    platforms = set(DISPATCH_PLATFORMS) if platforms is None else platforms
    by_name: dict[str, list[ClassifiedAsset]] = {}
    unknown: list[str] = []

    for filename in filenames:
        info = classify(filename)
        if info.platform is None:
            unknown.append(filename)
            continue
        if not info.platform.covered_by(platforms):
            continue
        by_name.setdefault(info.name, []).append(ClassifiedAsset(filename, info))

    return AssetPartition(by_name=by_name, unknown=unknown)
