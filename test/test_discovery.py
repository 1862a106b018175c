"""
Tests for proto file discovery and include path handling.
"""

import os
from unittest.mock import patch

import pytest

from protodeps.discovery import IncludePathSet, ProtoFile, discover
from protodeps.errors import DependencyPathNotFound


class TestDiscover:
    """Test recursive .proto discovery."""

    def test_finds_nested_proto_files(self, tmp_path, write_proto):
        write_proto(tmp_path, "products/events/order.proto")
        write_proto(tmp_path, "products/events/v2/refund.proto")
        write_proto(tmp_path, "products/other/ignored.proto")
        (tmp_path / "products" / "events" / "README.md").write_text("docs")
        (tmp_path / "products" / "events" / "fake.proto.bak").write_text("backup")

        files = discover(tmp_path, "products/events", repository="schemas",
                         include_roots=[tmp_path / "products"])

        assert sorted(f.import_path for f in files) == ["events/order.proto", "events/v2/refund.proto"]
        assert all(f.repository == "schemas" for f in files)
        assert all(f.path.is_absolute() for f in files)

    def test_directory_named_like_proto_excluded(self, tmp_path, write_proto):
        (tmp_path / "pkg" / "nested.proto").mkdir(parents=True)
        write_proto(tmp_path, "pkg/real.proto")

        files = discover(tmp_path, "pkg")

        assert [f.name for f in files] == ["real.proto"]

    def test_import_path_falls_back_to_root(self, tmp_path, write_proto):
        write_proto(tmp_path, "pkg/foo.proto")

        files = discover(tmp_path, "pkg", include_roots=[tmp_path / "elsewhere"])

        assert files[0].import_path == "pkg/foo.proto"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(DependencyPathNotFound) as exc_info:
            discover(tmp_path, "does/not/exist")
        assert exc_info.value.path == tmp_path / "does/not/exist"

    def test_file_instead_of_directory(self, tmp_path, write_proto):
        write_proto(tmp_path, "single.proto")
        with pytest.raises(DependencyPathNotFound):
            discover(tmp_path, "single.proto")

    def test_unreadable_directory(self, tmp_path, write_proto):
        write_proto(tmp_path, "pkg/foo.proto")

        def failing_walk(top, onerror=None):
            onerror(PermissionError(13, "Permission denied", str(top)))
            return iter(())

        with patch("protodeps.discovery.os.walk", side_effect=failing_walk):
            with pytest.raises(DependencyPathNotFound, match="Permission denied") as exc_info:
                discover(tmp_path, "pkg")

        assert exc_info.value.path == tmp_path / "pkg"
        assert isinstance(exc_info.value.__cause__, PermissionError)


class TestProtoFileIdentity:
    """Test identity by canonical path."""

    def test_equivalent_paths_are_equal(self, tmp_path, write_proto):
        path = write_proto(tmp_path, "pkg/foo.proto")
        via_parent = tmp_path / "pkg" / ".." / "pkg" / "foo.proto"

        a = ProtoFile(path, import_path="pkg/foo.proto")
        b = ProtoFile(via_parent)

        assert a == b
        assert len({a, b}) == 1

    def test_symlink_equal_to_target(self, tmp_path, write_proto):
        path = write_proto(tmp_path, "pkg/foo.proto")
        link = tmp_path / "link"
        os.symlink(tmp_path / "pkg", link)

        assert ProtoFile(link / "foo.proto") == ProtoFile(path)

    def test_relative_path_resolved(self, tmp_path, write_proto, monkeypatch):
        path = write_proto(tmp_path, "pkg/foo.proto")
        monkeypatch.chdir(tmp_path / "pkg")

        assert ProtoFile("foo.proto") == ProtoFile(path)


class TestIncludePathSet:
    """Test ordered include path bookkeeping."""

    def test_insertion_order_preserved(self, tmp_path):
        names = ["zeta", "alpha", "mid"]
        for name in names:
            (tmp_path / name).mkdir()

        include_paths = IncludePathSet(tmp_path / name for name in names)

        assert [p.name for p in include_paths] == names
        assert include_paths.as_args() == [f"--proto_path={(tmp_path / n).resolve()}" for n in names]

    def test_duplicates_ignored(self, tmp_path):
        include_paths = IncludePathSet()

        assert include_paths.add(tmp_path / "a")
        assert include_paths.add(tmp_path / "b")
        assert not include_paths.add(tmp_path / "a" / ".." / "a")

        assert len(include_paths) == 2
        assert [p.name for p in include_paths] == ["a", "b"]

    def test_root_for_first_match(self, tmp_path):
        include_paths = IncludePathSet([tmp_path / "repo" / "products", tmp_path / "repo"])

        file_path = tmp_path / "repo" / "products" / "events" / "order.proto"

        assert include_paths.root_for(file_path) == (tmp_path / "repo" / "products").resolve()
        assert include_paths.root_for(tmp_path / "other.proto") is None
        assert (tmp_path / "repo") in include_paths
