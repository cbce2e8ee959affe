"""Snapshot index: the log mapping source paths to the snapshot owning them.

Each line of ``index.txt`` has the form ``<timestamp> <absolute-path>``. The
timestamp names the snapshot whose files store physically holds the bytes,
which for incremental snapshots is often an earlier snapshot.

``Index`` is the append-only log used while a snapshot is being built.
``IndexPreview`` is a read-only lookup built from a saved index and used as
the baseline of an incremental snapshot.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional
import logging
import os

from pitbackup.paths import PathLike, canonicalize
from pitbackup.timestamp import Timestamp, TimestampError
from pitbackup.verify import IntegrityCheckResult, IntegrityProblem


logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.txt"
INDEX_ENCODING = "utf-8"
# keeps undecodable POSIX file names intact across save/open
INDEX_ERRORS = "surrogateescape"
# the index is read with universal newlines, so both end a line
LINE_BREAKS = ("\n", "\r")


def is_indexable(path: PathLike) -> bool:
    """True if the path fits on a single index line."""
    text = str(path)
    return not any(brk in text for brk in LINE_BREAKS)


class ParseFailure(Enum):
    SYNTAX = "syntax"
    TIMESTAMP = "timestamp"
    PATH = "path"


class IndexFormatError(ValueError):
    """Raised when an index file contains a malformed line."""

    def __init__(self, message: str, reason: ParseFailure, line: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.line = line


@dataclass(frozen=True)
class IndexEntry:
    """One indexed path and the snapshot that owns its content."""
    timestamp: Timestamp
    path: Path

    @classmethod
    def from_line(cls, line: str) -> "IndexEntry":
        """
        Parse a single index line (without its trailing newline).

        The line is split on the first space only, so paths may contain
        spaces while the timestamp may not.

        Raises:
            IndexFormatError: If the line is malformed
        """
        timestamp_text, separator, path_text = line.partition(" ")
        if not separator:
            raise IndexFormatError(
                f"Index line has no separator: {line!r}", ParseFailure.SYNTAX
            )
        try:
            timestamp = Timestamp.parse(timestamp_text)
        except TimestampError as e:
            raise IndexFormatError(str(e), ParseFailure.TIMESTAMP) from e
        path = Path(path_text)
        if not path_text or not path.is_absolute():
            raise IndexFormatError(
                f"Index path is not absolute: {path_text!r}", ParseFailure.PATH
            )
        return cls(timestamp=timestamp, path=path)

    def to_line(self) -> str:
        return f"{self.timestamp} {self.path}"


def _strip_newline(line: str) -> str:
    return line[:-1] if line.endswith("\n") else line


def _read_entries(location: Path) -> Iterator[IndexEntry]:
    with open(location, "r", encoding=INDEX_ENCODING, errors=INDEX_ERRORS) as f:
        for line_num, line in enumerate(f, start=1):
            try:
                yield IndexEntry.from_line(_strip_newline(line))
            except IndexFormatError as e:
                e.line = line_num
                raise


class Index:
    """Ordered, append-only list of index entries backed by a text file."""

    def __init__(self, location: PathLike):
        self.location = Path(location)
        self.entries: List[IndexEntry] = []

    @classmethod
    def open(cls, location: PathLike) -> "Index":
        """
        Load a saved index.

        Raises:
            OSError: If the file cannot be read
            IndexFormatError: If any line is malformed; nothing is loaded
        """
        index = cls(location)
        index.entries = list(_read_entries(index.location))
        return index

    def push(self, timestamp: Timestamp, path: PathLike) -> None:
        self.entries.append(IndexEntry(timestamp=timestamp, path=Path(path)))

    def save(self) -> None:
        """Write every entry to the backing file and sync it to disk."""
        with open(
            self.location,
            "w",
            encoding=INDEX_ENCODING,
            errors=INDEX_ERRORS,
            newline="\n",
        ) as f:
            for entry in self.entries:
                f.write(entry.to_line())
                f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        logger.debug(f"Saved index with {len(self.entries)} entries: {self.location}")

    def entries_owned_by(self, timestamp: Timestamp) -> List[IndexEntry]:
        """Entries whose content lives in the snapshot named ``timestamp``."""
        return [e for e in self.entries if e.timestamp == timestamp]

    def __iter__(self) -> Iterator[IndexEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @staticmethod
    def check_integrity(location: PathLike) -> IntegrityCheckResult:
        """
        Check every line of an index file, stopping at the first problem.

        Line numbers in the result are 1-based.
        """
        location = Path(location)
        if not location.is_file():
            return IntegrityCheckResult.failed(IntegrityProblem.INDEX_MISSING)

        logger.debug(f"Checking index: {location}")
        line_num = 0
        try:
            with open(location, "r", encoding=INDEX_ENCODING, errors=INDEX_ERRORS) as f:
                while True:
                    line_num += 1
                    try:
                        line = f.readline()
                    except (OSError, UnicodeDecodeError) as e:
                        return IntegrityCheckResult.failed(
                            IntegrityProblem.INDEX_UNREADABLE, line=line_num, detail=str(e)
                        )
                    if not line:
                        break
                    try:
                        IndexEntry.from_line(_strip_newline(line))
                    except IndexFormatError as e:
                        return IntegrityCheckResult.failed(
                            _PROBLEM_BY_FAILURE[e.reason], line=line_num, detail=str(e)
                        )
        except OSError as e:
            return IntegrityCheckResult.failed(
                IntegrityProblem.UNEXPECTED_ERROR, detail=f"Cannot open index.txt: {e}"
            )
        return IntegrityCheckResult.ok()


_PROBLEM_BY_FAILURE = {
    ParseFailure.SYNTAX: IntegrityProblem.INDEX_MALFORMED_LINE,
    ParseFailure.TIMESTAMP: IntegrityProblem.INDEX_INVALID_TIMESTAMP,
    ParseFailure.PATH: IntegrityProblem.INDEX_INVALID_PATH,
}


class IndexPreview:
    """Read-only path to timestamp lookup over a saved index."""

    def __init__(self, entries: Dict[Path, Timestamp]):
        self._entries = entries

    @classmethod
    def open(cls, location: PathLike) -> "IndexPreview":
        """
        Build the lookup from a saved index file.

        Raises:
            OSError: If the file cannot be read
            IndexFormatError: If any line is malformed
        """
        entries = {e.path: e.timestamp for e in _read_entries(Path(location))}
        return cls(entries)

    def find(self, path: PathLike) -> Optional[Timestamp]:
        """Timestamp recorded for ``path``, or None if it was never indexed."""
        try:
            absolute = canonicalize(path)
        except (OSError, RuntimeError):
            return None
        return self._entries.get(absolute)

    def __contains__(self, path: PathLike) -> bool:
        return self.find(path) is not None

    def __len__(self) -> int:
        return len(self._entries)
