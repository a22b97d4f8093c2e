"""
Tests for repograb/files.py: filters and directory collection.
"""

import sys
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from repograb.config import AcquireOptions
from repograb.files import FileFilters, collect_files, is_safe_path, root_prefix, strip_root_prefix


@pytest.mark.parametrize("path,safe", [
    ("src/a.py", True),
    ("a..b.txt", True),
    ("/etc/passwd", False),
    ("../up.txt", False),
    ("src/../../up.txt", False),
    ("C:/windows/x", False),
    ("", False),
])
def test_is_safe_path(path, safe):
    assert is_safe_path(path) is safe


def test_root_prefix():
    assert root_prefix("psf-requests-abc123/README.md") == "psf-requests-abc123/"
    assert root_prefix("README.md") is None
    assert strip_root_prefix("p/a/b.py", "p/") == "a/b.py"
    assert strip_root_prefix("a/b.py", None) == "a/b.py"


class TestFileFilters:

    def test_from_options_merges_default_excludes(self):
        filters = FileFilters.from_options(AcquireOptions(exclude_dirs=["docs"], extensions=[".PY"], max_files=5))
        assert {"docs", "node_modules", ".git"} <= filters.exclude_dirs
        assert filters.extensions == [".py"]
        assert filters.max_files == 5

    def test_excluded_at_any_depth(self):
        filters = FileFilters()
        assert filters.is_excluded("packages/web/node_modules/x/index.js")
        assert not filters.is_excluded("src/build_utils.py")

    def test_extension_match_case_insensitive(self):
        filters = FileFilters(extensions=[".md"])
        assert filters.accepts("README.MD")
        assert not filters.accepts("main.py")


class TestCollectFiles:

    def _tree(self, root: Path):
        (root / "src").mkdir(parents=True)
        (root / "src" / "a.py").write_text("a = 1\n")
        (root / "src" / "b.md").write_text("# b\n")
        (root / ".git").mkdir()
        (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        (root / "image.bin").write_bytes(b"\x00\x01\x02")
        (root / "README").write_text("readme\n")

    def test_collects_text_skips_binary_and_excluded(self, tmp_path):
        self._tree(tmp_path)
        files = collect_files(tmp_path, FileFilters())
        assert [f.path for f in files] == ["README", "src/a.py", "src/b.md"]
        assert files[1].content == "a = 1\n"

    def test_extension_filter(self, tmp_path):
        self._tree(tmp_path)
        files = collect_files(tmp_path, FileFilters(extensions=[".py"]))
        assert [f.path for f in files] == ["src/a.py"]

    def test_max_files(self, tmp_path):
        self._tree(tmp_path)
        assert len(collect_files(tmp_path, FileFilters(max_files=1))) == 1
