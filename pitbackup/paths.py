"""Path canonicalization and validation of user supplied input paths."""

from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union
import logging
import os


logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def canonicalize(path: PathLike) -> Path:
    """
    Return the absolute canonical form of an existing path.

    Symbolic links in the ancestors are resolved and ``.``/``..`` removed. A
    symbolic link itself is kept as a node of its own: its parent is resolved
    and its name is preserved, so a link is never confused with its target.

    Raises:
        OSError: If the path (or, for a link, its parent) does not exist
    """
    path = Path(path)
    if path.is_symlink():
        absolute = Path(os.path.abspath(path))
        return absolute.parent.resolve(strict=True) / absolute.name
    return path.resolve(strict=True)


def _try_canonicalize(path: Path) -> Optional[Path]:
    try:
        return canonicalize(path)
    except (OSError, RuntimeError) as e:
        logger.warning(f"Cannot resolve path \"{path}\", it will be ignored: {e}")
        return None


def remove_nonexistent_paths(paths: Iterable[PathLike]) -> List[Path]:
    filtered = []
    for path in paths:
        path = Path(path)
        if path.exists():
            filtered.append(path)
        else:
            logger.warning(f"Provided path doesn't exist: {path}")
    return filtered


def remove_duplicated_paths(paths: Iterable[Path]) -> List[Path]:
    """Keep the first of several paths that resolve to the same location."""
    kept: List[Tuple[Path, Path]] = []
    for path in paths:
        canonical = _try_canonicalize(path)
        if canonical is None:
            continue
        duplicate = next((p for p, c in kept if c == canonical), None)
        if duplicate is not None:
            logger.warning(f"Path \"{path}\" is the same as \"{duplicate}\"")
        else:
            kept.append((path, canonical))
    return [p for p, _ in kept]


def remove_overlapping_paths(paths: Iterable[Path]) -> List[Path]:
    """
    Drop every path that lies inside another input path.

    Only proper ancestors count, so two spellings of the same location are
    both kept here; duplicates are handled by ``remove_duplicated_paths``.
    """
    resolved: List[Tuple[Path, Path]] = []
    for path in paths:
        canonical = _try_canonicalize(path)
        if canonical is not None:
            resolved.append((path, canonical))

    filtered = []
    for path, canonical in resolved:
        prefix = next(
            (p for p, c in resolved if c != canonical and c in canonical.parents),
            None,
        )
        if prefix is not None:
            logger.warning(
                f"Path \"{prefix}\" includes \"{path}\". Child path will be ignored"
            )
        else:
            filtered.append(path)
    return filtered


def validate_input_paths(paths: Iterable[PathLike]) -> List[Path]:
    """
    Filter the caller's input paths before a snapshot is taken.

    Non-existent paths go first, then duplicates, then paths nested inside
    other inputs. The order of the last two steps decides which of two
    overlapping paths survives and must stay as it is.
    """
    existing = remove_nonexistent_paths(paths)
    without_duplicates = remove_duplicated_paths(existing)
    return remove_overlapping_paths(without_duplicates)
