"""Integrity check results for pitbackup snapshots.

A check stops at the first problem it finds, so a result carries at most one
problem together with the line number or path it refers to.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class IntegrityProblem(Enum):
    """Kinds of problems an integrity check can report."""
    SNAPSHOT_NOT_FOUND = "snapshot_not_found"
    INVALID_SNAPSHOT_NAME = "invalid_snapshot_name"
    INDEX_MISSING = "index_missing"
    FILES_DIR_MISSING = "files_dir_missing"
    INDEX_UNREADABLE = "index_unreadable"
    INDEX_MALFORMED_LINE = "index_malformed_line"
    INDEX_INVALID_TIMESTAMP = "index_invalid_timestamp"
    INDEX_INVALID_PATH = "index_invalid_path"
    ENTRY_NOT_PRESENT = "entry_not_present"
    ENTRY_NOT_INDEXED = "entry_not_indexed"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(frozen=True)
class IntegrityCheckResult:
    """Outcome of a snapshot integrity check."""
    problem: Optional[IntegrityProblem] = None
    path: Optional[Path] = None
    line: Optional[int] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls) -> "IntegrityCheckResult":
        return cls()

    @classmethod
    def failed(
        cls,
        problem: IntegrityProblem,
        path: Optional[Path] = None,
        line: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> "IntegrityCheckResult":
        return cls(problem=problem, path=path, line=line, detail=detail)

    @property
    def success(self) -> bool:
        return self.problem is None

    @property
    def message(self) -> str:
        """Single human-readable line describing the result."""
        problem = self.problem
        if problem is None:
            return "No problems found."
        if problem is IntegrityProblem.SNAPSHOT_NOT_FOUND:
            return "Snapshot doesn't exist."
        if problem is IntegrityProblem.INVALID_SNAPSHOT_NAME:
            return f"Snapshot's name '{self.detail}' is not a correct timestamp."
        if problem is IntegrityProblem.INDEX_MISSING:
            return "File index.txt is missing."
        if problem is IntegrityProblem.FILES_DIR_MISSING:
            return "Folder files is missing."
        if problem is IntegrityProblem.INDEX_UNREADABLE:
            return f"Cannot read line {self.line} of index.txt."
        if problem is IntegrityProblem.INDEX_MALFORMED_LINE:
            return f"Malformed line {self.line} of index.txt."
        if problem is IntegrityProblem.INDEX_INVALID_TIMESTAMP:
            return f"Invalid timestamp in line {self.line} of index.txt."
        if problem is IntegrityProblem.INDEX_INVALID_PATH:
            return f"Invalid path in line {self.line} of index.txt."
        if problem is IntegrityProblem.ENTRY_NOT_PRESENT:
            return f"Entry '{self.path}' is indexed, but is missing in snapshot."
        if problem is IntegrityProblem.ENTRY_NOT_INDEXED:
            return f"Entry '{self.path}' is present in snapshot, but is not indexed."
        return f"Unexpected error occurred: {self.detail}"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form used by ``pitbackup verify --json``."""
        return {
            "success": self.success,
            "problem": self.problem.value if self.problem else None,
            "path": str(self.path) if self.path is not None else None,
            "line": self.line,
            "message": self.message,
        }

    def __str__(self) -> str:
        return self.message
