"""Files store: the per-snapshot copy area.

Every copied node is stored at a location derived from its absolute source
path. The volume designator (POSIX root, drive letter, UNC share) is
collapsed to at most one leading segment and the remaining components are
joined below the store root::

    /home/user/a.txt          -> files/home/user/a.txt
    C:\\Users\\a.txt            -> files/C/Users/a.txt
    \\\\server\\share\\dir\\a.txt -> files/server@share/dir/a.txt

The splitting of a path into components is done here rather than by the host
``pathlib`` flavour, so POSIX and Windows paths map the same way on any
platform.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Set
import logging
import os
import shutil
import stat

from pitbackup.paths import PathLike, canonicalize
from pitbackup.verify import IntegrityCheckResult, IntegrityProblem


logger = logging.getLogger(__name__)

FILES_DIRNAME = "files"

# joins server and share of a UNC volume into one segment
UNC_SEPARATOR = "@"

_VERBATIM_PREFIX = "\\\\?\\"
_DEVICE_PREFIX = "\\\\.\\"
_UNC_PREFIX = "\\\\"

_SYMLINKS_SUPPORTED = hasattr(os, "symlink") and os.name != "nt"


class FilesStoreError(Exception):
    """Raised when an entry cannot be stored."""
    pass


class UnsupportedEntryError(FilesStoreError):
    """Raised when the platform cannot recreate an entry of this kind."""
    pass


class UnknownEntryTypeError(FilesStoreError):
    """Raised for sockets, fifos, devices and other special nodes."""
    pass


class ComponentKind(Enum):
    VOLUME = "volume"
    ROOT = "root"
    NORMAL = "normal"


@dataclass(frozen=True)
class PathComponent:
    kind: ComponentKind
    value: str = ""


def _is_windows_style(path: str) -> bool:
    if path.startswith(_UNC_PREFIX):
        return True
    if len(path) >= 2 and path[1] == ":" and path[0].isalpha():
        return True
    # a backslash is an ordinary character in POSIX names
    return "\\" in path and not path.startswith("/")


def _split_segments(rest: str, separators: str) -> List[str]:
    for sep in separators[1:]:
        rest = rest.replace(sep, separators[0])
    return rest.split(separators[0])


def _split_windows_volume(path: str):
    """Return (volume component or None, has root, remainder)."""
    if path.startswith(_VERBATIM_PREFIX):
        rest = path[len(_VERBATIM_PREFIX):]
        head, _, tail = rest.partition("\\")
        if head.upper() == "UNC":
            server, _, tail = tail.partition("\\")
            share, _, tail = tail.partition("\\")
            volume = f"{server}{UNC_SEPARATOR}{share}" if share else server
            return PathComponent(ComponentKind.VOLUME, volume), True, tail
        if len(head) == 2 and head[1] == ":" and head[0].isalpha():
            return PathComponent(ComponentKind.VOLUME, head[0]), True, tail
        return PathComponent(ComponentKind.VOLUME, head), True, tail

    normalized = path.replace("/", "\\")
    if normalized.startswith(_DEVICE_PREFIX):
        head, _, tail = normalized[len(_DEVICE_PREFIX):].partition("\\")
        return PathComponent(ComponentKind.VOLUME, head), True, tail
    if normalized.startswith(_UNC_PREFIX):
        server, _, tail = normalized[len(_UNC_PREFIX):].partition("\\")
        share, _, tail = tail.partition("\\")
        volume = f"{server}{UNC_SEPARATOR}{share}" if share else server
        return PathComponent(ComponentKind.VOLUME, volume), True, tail
    if len(normalized) >= 2 and normalized[1] == ":" and normalized[0].isalpha():
        tail = normalized[2:]
        has_root = tail.startswith("\\")
        return PathComponent(ComponentKind.VOLUME, normalized[0]), has_root, tail
    return None, normalized.startswith("\\"), normalized


def split_components(path: PathLike) -> List[PathComponent]:
    """
    Split a POSIX-style or Windows-style path into abstract components.

    Empty segments and ``.`` are dropped and ``..`` removes the preceding
    normal segment. Verbatim (``\\\\?\\``) paths keep ``/`` as an ordinary
    character, as Windows itself does.
    """
    text = os.fspath(path)
    components: List[PathComponent] = []

    if _is_windows_style(text):
        volume, has_root, rest = _split_windows_volume(text)
        if volume is not None:
            components.append(volume)
        if has_root:
            components.append(PathComponent(ComponentKind.ROOT))
        separators = "\\" if text.startswith(_VERBATIM_PREFIX) else "\\/"
    else:
        if text.startswith("/"):
            components.append(PathComponent(ComponentKind.ROOT))
        rest = text
        separators = "/"

    for segment in _split_segments(rest, separators):
        if segment in ("", "."):
            continue
        if segment == "..":
            if components and components[-1].kind is ComponentKind.NORMAL:
                components.pop()
            continue
        components.append(PathComponent(ComponentKind.NORMAL, segment))
    return components


def to_store_parts(components: List[PathComponent]) -> List[str]:
    """Relative segments below the store root for the given components."""
    parts = []
    for component in components:
        if component.kind is ComponentKind.ROOT:
            continue
        parts.append(component.value)
    return parts


def to_store_path(root: PathLike, source: PathLike) -> Path:
    """Map an absolute source path to its location under ``root``."""
    return Path(root).joinpath(*to_store_parts(split_components(source)))


def disk_usage(root: PathLike) -> int:
    """Total size of all nodes below ``root``, links not followed."""
    total = 0
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        for name in dirnames + filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError:
                continue
    return total


class FilesStore:
    """Copy area of a single snapshot, rooted at ``<snapshot>/files``."""

    def __init__(self, root: PathLike):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.size_bytes = 0

    def location_of(self, source: PathLike) -> Path:
        return to_store_path(self.root, source)

    def copy_entry(self, path: PathLike) -> Path:
        """
        Copy one filesystem node into the store.

        Directories are created (existing ones are fine), regular files are
        copied byte for byte and symbolic links are recreated with the same
        raw target. Links are never followed.

        Returns:
            Location of the stored node

        Raises:
            OSError: If the node cannot be read or written
            UnsupportedEntryError: For links on platforms without symlinks
            UnknownEntryTypeError: For any other kind of node
        """
        path = Path(path)
        entry_stat = os.lstat(path)
        mode = entry_stat.st_mode
        destination = self.location_of(canonicalize(path))

        if stat.S_ISDIR(mode):
            destination.mkdir(parents=True, exist_ok=True)
        elif stat.S_ISREG(mode):
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, destination)
        elif stat.S_ISLNK(mode):
            if not _SYMLINKS_SUPPORTED:
                raise UnsupportedEntryError(
                    f"Copying symlinks is not supported on this platform: {path}"
                )
            target = os.readlink(path)
            destination.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(target, destination)
        else:
            raise UnknownEntryTypeError(f"Unknown entry type: {path}")

        self.size_bytes += entry_stat.st_size
        return destination

    @staticmethod
    def check_integrity(root: PathLike, expected_paths: List[Path]) -> IntegrityCheckResult:
        """
        Compare the physical content of a store with the paths it should hold.

        Directories that only exist because an expected path lies below them
        do not need an index entry of their own. The first mismatch is
        reported; this is not a full diff.
        """
        root = Path(root)
        if not root.is_dir():
            return IntegrityCheckResult.failed(IntegrityProblem.FILES_DIR_MISSING)

        expected: Dict[Path, Path] = {}
        for path in expected_paths:
            expected.setdefault(to_store_path(root, path), path)
        # the walk never yields the store root itself
        expected.pop(root, None)

        ancestors: Set[Path] = set()
        for location in expected:
            for parent in location.parents:
                if parent == root:
                    break
                ancestors.add(parent)

        walk_errors: List[OSError] = []
        logger.debug(f"Traversing snapshot files: {root}")
        for dirpath, dirnames, filenames in os.walk(
            root, onerror=walk_errors.append, followlinks=False
        ):
            if walk_errors:
                break
            dirnames.sort()
            for name in sorted(dirnames + filenames):
                entry = Path(dirpath) / name
                if expected.pop(entry, None) is None and entry not in ancestors:
                    return IntegrityCheckResult.failed(
                        IntegrityProblem.ENTRY_NOT_INDEXED, path=entry
                    )

        if walk_errors:
            return IntegrityCheckResult.failed(
                IntegrityProblem.UNEXPECTED_ERROR, detail=str(walk_errors[0])
            )

        for missing in expected.values():
            return IntegrityCheckResult.failed(
                IntegrityProblem.ENTRY_NOT_PRESENT, path=missing
            )
        return IntegrityCheckResult.ok()
