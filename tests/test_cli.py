"""
Tests for scripts/grab.py.
"""

import sys
from pathlib import Path
from unittest.mock import patch

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from repograb.cache import MemoryCache
from repograb.errors import AuthRequired
from repograb.result import FetchResult
from scripts import grab


def test_options_from_flags():
    args = grab.build_parser().parse_args([
        "github.com/o/r", "--ext", "py,md", "--exclude-dir", "docs", "--exclude-dir", "tests",
        "--no-api", "--no-tree", "--refresh", "--depth", "1",
    ])
    options = grab.options_from_args(args)
    assert options.extensions == [".py", ".md"]
    assert options.exclude_dirs == ["docs", "tests"]
    assert options.use_api is False
    assert options.allow_fallback is True
    assert options.project_tree is False
    assert options.force_refresh is True
    assert options.max_depth == 1


def test_config_file_then_flags(tmp_path):
    config = tmp_path / "opts.yaml"
    config.write_text("max_pages: 7\nmax_depth: 4\n")
    args = grab.build_parser().parse_args(["example.com", "--config", str(config), "--depth", "1"])
    options = grab.options_from_args(args)
    assert options.max_pages == 7
    assert options.max_depth == 1


def test_markdown_to_stdout(capsys):
    with patch.object(grab, "acquire", return_value="Project Structure:\n") as acquire:
        code = grab.main(["github.com/o/r", "--cache-backend", "memory"])
    assert code == 0
    assert isinstance(acquire.call_args.kwargs["cache"], MemoryCache)
    out, err = capsys.readouterr()
    assert out.startswith("Project Structure:")
    assert "characters" in err


def test_json_to_file(tmp_path, capsys):
    result = FetchResult.from_files([("a.py", "x")])
    out_path = tmp_path / "out.json"
    with patch.object(grab, "acquire", return_value=result):
        code = grab.main(["github.com/o/r", "--format", "json", "--no-cache", "-o", str(out_path)])
    assert code == 0
    assert '"total_files": 1' in out_path.read_text()
    assert "1 files" in capsys.readouterr().out


def test_no_cache_passes_no_backend():
    with patch.object(grab, "acquire", return_value="") as acquire:
        grab.main(["example.com", "--no-cache"])
    assert acquire.call_args.kwargs["cache"] is None
    assert acquire.call_args.args[1].no_cache is True


def test_acquire_error_exit_code(capsys):
    with patch.object(grab, "acquire", side_effect=AuthRequired("Repository is private")):
        code = grab.main(["github.com/o/private", "--no-cache"])
    assert code == 1
    assert "Error: Repository is private" in capsys.readouterr().err


def test_bad_config_exit_code(tmp_path, capsys):
    code = grab.main(["example.com", "--config", str(tmp_path / "missing.yaml")])
    assert code == 2
    assert "Options file not found" in capsys.readouterr().err
