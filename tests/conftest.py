"""Pytest configuration and fixtures for pitbackup tests."""

import logging
import os
import tempfile
import time
from pathlib import Path

import pytest
from hypothesis import settings, Phase

from pitbackup.logger import LOGGER_NAME

# Configure hypothesis to use fewer examples for faster test runs
# Disable shrinking phase to speed up tests further
settings.register_profile(
    "fast",
    max_examples=2,
    deadline=10000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.register_profile("ci", max_examples=50, deadline=10000)
settings.register_profile("dev", max_examples=2, deadline=10000)

# Use the fast profile by default
settings.load_profile("fast")


# Creation time can't be moved back with os.utime, so files created by a test
# always look changed where the platform reports it.
HAS_BIRTHTIME = hasattr(os.stat(tempfile.gettempdir()), "st_birthtime")

requires_settable_times = pytest.mark.skipif(
    HAS_BIRTHTIME, reason="st_birthtime can't be set back on this platform"
)


def make_tree(base: Path, files: dict) -> None:
    """Create files below ``base`` from a {relative path: content} dict."""
    for rel_path, content in files.items():
        path = base / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def age_tree(base: Path, seconds: int = 3600) -> None:
    """Move the modification time of ``base`` and everything below it into the past."""
    past = time.time() - seconds
    os.utime(base, (past, past), follow_symlinks=False)
    for dirpath, dirnames, filenames in os.walk(base):
        for name in dirnames + filenames:
            os.utime(os.path.join(dirpath, name), (past, past), follow_symlinks=False)


@pytest.fixture
def temp_dir():
    """Temporary directory, resolved so it matches canonical index paths."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture(autouse=True)
def reset_logger():
    """Undo setup_logging so later tests see log records through caplog."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
