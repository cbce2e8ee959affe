"""Tests for the files store and its path mapping."""

import os
from pathlib import Path

import pytest

from pitbackup.files import (
    ComponentKind,
    FilesStore,
    PathComponent,
    UnknownEntryTypeError,
    disk_usage,
    split_components,
    to_store_parts,
    to_store_path,
)
from pitbackup.paths import canonicalize
from pitbackup.verify import IntegrityProblem


ROOT = PathComponent(ComponentKind.ROOT)


def normal(value):
    return PathComponent(ComponentKind.NORMAL, value)


def volume(value):
    return PathComponent(ComponentKind.VOLUME, value)


class TestSplitComponents:
    """Tests for the platform independent path algebra."""

    def test_posix_path(self):
        assert split_components("/home/user/a.txt") == [
            ROOT, normal("home"), normal("user"), normal("a.txt"),
        ]

    def test_posix_dot_segments(self):
        assert split_components("/a/./b/../c//d") == [
            ROOT, normal("a"), normal("c"), normal("d"),
        ]

    def test_posix_backslash_is_ordinary_character(self):
        assert split_components("/tmp/we\\ird") == [ROOT, normal("tmp"), normal("we\\ird")]

    def test_drive_path(self):
        assert split_components("C:\\Users\\a.txt") == [
            volume("C"), ROOT, normal("Users"), normal("a.txt"),
        ]

    def test_drive_path_with_forward_slashes(self):
        assert split_components("D:/data/x") == [
            volume("D"), ROOT, normal("data"), normal("x"),
        ]

    def test_unc_path(self):
        assert split_components("\\\\server\\share\\dir\\a.txt") == [
            volume("server@share"), ROOT, normal("dir"), normal("a.txt"),
        ]

    def test_verbatim_drive(self):
        assert split_components("\\\\?\\C:\\Users\\a.txt") == [
            volume("C"), ROOT, normal("Users"), normal("a.txt"),
        ]

    def test_verbatim_unc(self):
        assert split_components("\\\\?\\UNC\\server\\share\\x") == [
            volume("server@share"), ROOT, normal("x"),
        ]

    def test_verbatim_name(self):
        assert split_components("\\\\?\\Volume{1234}\\x") == [
            volume("Volume{1234}"), ROOT, normal("x"),
        ]

    def test_verbatim_keeps_forward_slash(self):
        assert split_components("\\\\?\\C:\\a/b") == [volume("C"), ROOT, normal("a/b")]

    def test_device_path(self):
        assert split_components("\\\\.\\PhysicalDrive0\\x") == [
            volume("PhysicalDrive0"), ROOT, normal("x"),
        ]


class TestStoreMapping:
    """Tests for to_store_parts and to_store_path."""

    @pytest.mark.parametrize("source,parts", [
        ("/home/user/a.txt", ["home", "user", "a.txt"]),
        ("/", []),
        ("C:\\Users\\a.txt", ["C", "Users", "a.txt"]),
        ("\\\\server\\share\\dir\\a.txt", ["server@share", "dir", "a.txt"]),
        ("\\\\?\\UNC\\server\\share\\a.txt", ["server@share", "a.txt"]),
        ("\\\\?\\C:\\a.txt", ["C", "a.txt"]),
    ])
    def test_store_parts(self, source, parts):
        assert to_store_parts(split_components(source)) == parts

    def test_store_path(self):
        root = Path("/backup/2021-01-01_00.00/files")
        assert to_store_path(root, "/home/u/a") == root / "home" / "u" / "a"

    def test_volume_is_single_segment(self):
        """Only the volume designator may contribute a leading segment."""
        for source in ("/x", "C:\\x", "\\\\srv\\shr\\x", "\\\\?\\C:\\x"):
            assert len(to_store_parts(split_components(source))) <= 2


class TestCopyEntry:
    """Tests for FilesStore.copy_entry."""

    def test_store_root_is_created(self, temp_dir):
        FilesStore(temp_dir / "snap" / "files")
        assert (temp_dir / "snap" / "files").is_dir()

    def test_copy_regular_file(self, temp_dir):
        source = temp_dir / "src" / "a.txt"
        source.parent.mkdir()
        source.write_bytes(b"hello\x00world")
        store = FilesStore(temp_dir / "files")

        destination = store.copy_entry(source)

        assert destination == to_store_path(store.root, canonicalize(source))
        assert destination.read_bytes() == b"hello\x00world"
        assert store.size_bytes == len(b"hello\x00world")

    def test_copy_directory(self, temp_dir):
        source = temp_dir / "src"
        source.mkdir()
        store = FilesStore(temp_dir / "files")

        destination = store.copy_entry(source)
        assert destination.is_dir()
        # existing directories are fine
        store.copy_entry(source)

    @pytest.mark.skipif(not hasattr(os, "symlink") or os.name == "nt",
                        reason="symlinks not supported")
    def test_copy_symlink_keeps_raw_target(self, temp_dir):
        (temp_dir / "src").mkdir()
        link = temp_dir / "src" / "link"
        os.symlink("../does/not/exist", link)
        store = FilesStore(temp_dir / "files")

        destination = store.copy_entry(link)

        assert destination.is_symlink()
        assert os.readlink(destination) == "../does/not/exist"

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="fifos not supported")
    def test_copy_fifo_fails(self, temp_dir):
        fifo = temp_dir / "pipe"
        os.mkfifo(fifo)
        store = FilesStore(temp_dir / "files")
        with pytest.raises(UnknownEntryTypeError):
            store.copy_entry(fifo)

    def test_copy_missing_entry_fails(self, temp_dir):
        store = FilesStore(temp_dir / "files")
        with pytest.raises(OSError):
            store.copy_entry(temp_dir / "missing")

    def test_disk_usage(self, temp_dir):
        source = temp_dir / "a.txt"
        source.write_text("12345")
        store = FilesStore(temp_dir / "files")
        store.copy_entry(source)
        assert disk_usage(store.root) >= 5


class TestFilesStoreIntegrity:
    """Tests for FilesStore.check_integrity."""

    def _store_with(self, temp_dir, names):
        source = temp_dir / "src"
        source.mkdir()
        store = FilesStore(temp_dir / "files")
        expected = [canonicalize(source)]
        store.copy_entry(source)
        for name in names:
            path = source / name
            path.write_text(name)
            store.copy_entry(path)
            expected.append(canonicalize(path))
        return store, expected

    def test_matching_store(self, temp_dir):
        store, expected = self._store_with(temp_dir, ["a", "b"])
        assert FilesStore.check_integrity(store.root, expected).success

    def test_empty_store(self, temp_dir):
        store = FilesStore(temp_dir / "files")
        assert FilesStore.check_integrity(store.root, []).success

    def test_missing_store(self, temp_dir):
        result = FilesStore.check_integrity(temp_dir / "files", [])
        assert result.problem is IntegrityProblem.FILES_DIR_MISSING

    def test_ancestors_need_no_entry(self, temp_dir):
        """Folders created only to hold deeper entries are not reported."""
        store, expected = self._store_with(temp_dir, ["a"])
        assert FilesStore.check_integrity(store.root, expected[1:]).success

    def test_unindexed_entry(self, temp_dir):
        store, expected = self._store_with(temp_dir, ["a"])
        extra = store.root / "extra.txt"
        extra.write_text("x")
        result = FilesStore.check_integrity(store.root, expected)
        assert result.problem is IntegrityProblem.ENTRY_NOT_INDEXED
        assert result.path == extra

    def test_missing_entry(self, temp_dir):
        store, expected = self._store_with(temp_dir, ["a", "b"])
        store.location_of(expected[2]).unlink()
        result = FilesStore.check_integrity(store.root, expected)
        assert result.problem is IntegrityProblem.ENTRY_NOT_PRESENT
        assert result.path == expected[2]
