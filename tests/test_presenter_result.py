"""
Tests for repograb/presenter.py and repograb/result.py.
"""

import sys
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from repograb.crawler import CrawlerResult
from repograb.presenter import (
    crawl_results_to_markdown,
    pages_to_documents,
    render_file,
    render_markdown,
    render_tree,
    render_url_structure,
    render_website,
    write_output,
)
from repograb.result import FetchResult, build_tree

FILES = [
    ("src/a.py", "print('a')\n"),
    ("README.md", "# Title"),
    ("src/lib/b.py", "b = 2"),
]


class TestTree:

    def test_dirs_first_then_files(self):
        assert render_tree([p for p, _ in FILES]) == "\n".join([
            "Project Structure:",
            "├── src",
            "│   ├── lib",
            "│   │   └── b.py",
            "│   └── a.py",
            "└── README.md",
        ])

    def test_empty(self):
        assert render_tree([]) == "Project Structure:"


class TestRenderFile:

    def test_line_numbers(self):
        assert render_file("a.py", "x = 1\ny = 2") == "a.py\n```\n1 | x = 1\n2 | y = 2\n```"

    def test_line_numbers_right_justified(self):
        text = render_file("a.txt", "\n".join(str(i) for i in range(10)))
        assert "\n 1 | 0\n" in text
        assert "\n10 | 9\n" in text

    def test_without_line_numbers(self):
        assert render_file("a.py", "x = 1") == "a.py\n```\nx = 1\n```"

    def test_markdown_document(self):
        doc = render_markdown(FILES, project_tree=False, line_numbers=False)
        assert not doc.startswith("Project Structure:")
        assert "README.md\n```\n# Title\n```" in doc
        assert doc.endswith("```\n")


def _pages():
    return [
        CrawlerResult(url="https://example.com/docs/api", title="API", content="api text", depth=2),
        CrawlerResult(url="https://example.com/", title="Home", content="welcome"),
        CrawlerResult(url="https://example.com/docs", title="", content="docs text", depth=1),
        CrawlerResult(url="https://example.com/missing", error="HTTP 404", depth=1),
    ]


class TestWebsite:

    def test_url_structure(self):
        assert render_url_structure(_pages()) == "\n".join([
            "Project Structure:",
            "├── /",
            "└── docs",
            "    └── api",
        ])

    def test_sections_sorted_and_errors_dropped(self):
        text = crawl_results_to_markdown(_pages())
        assert text.startswith("/\n```\n# Home\n\nwelcome\n```")
        assert "/docs\n```\n# /docs\n\ndocs text\n```" in text
        assert "missing" not in text
        assert text.index("/docs\n") < text.index("/docs/api\n")

    def test_render_website(self):
        text = render_website(_pages())
        assert text.startswith("Project Structure:")
        assert render_website(_pages(), project_tree=False).startswith("/\n```")

    def test_pages_to_documents(self):
        docs = dict(pages_to_documents(_pages()))
        assert sorted(docs) == ["docs.md", "docs/api.md", "index.md"]
        assert docs["index.md"].startswith("# Home\n\nSource: https://example.com/\n")

    def test_page_path_clashing_with_directory(self):
        pages = [
            CrawlerResult(url="https://example.com/guide.md", title="Guide", content="top"),
            CrawlerResult(url="https://example.com/guide.md/intro", title="Intro", content="nested"),
        ]
        docs = dict(pages_to_documents(pages))
        assert sorted(docs) == ["guide.md.md", "guide.md/intro.md"]

        clash = [
            CrawlerResult(url="https://example.com/guide", title="Guide", content="top"),
            CrawlerResult(url="https://example.com/guide.md/intro", title="Intro", content="nested"),
        ]
        docs = pages_to_documents(clash)
        assert [p for p, _ in docs] == ["guide.md/index.md", "guide.md/intro.md"]
        result = FetchResult.from_files(docs)
        assert result.get_file_by_path("guide.md/index.md").content.startswith("# Guide")
        assert result.metadata["total_files"] == 2


class TestFetchResult:

    def test_build_tree(self):
        root = build_tree(FILES)
        assert [c.name for c in root.children] == ["src", "README.md"]
        src = root.child("src")
        assert [c.name for c in src.children] == ["lib", "a.py"]
        assert src.child("lib").child("b.py").path == "src/lib/b.py"

    def test_name_clash_keeps_first_entry(self):
        root = build_tree([("docs", "file first"), ("docs/api.md", "nested"), ("a/b", "dir first"), ("a", "file")])
        assert [(c.name, c.type) for c in root.children] == [("a", "directory"), ("docs", "file")]
        result = FetchResult(root)
        assert result.get_file_by_path("docs").content == "file first"
        assert result.get_file_by_path("a/b").content == "dir first"
        assert len(result.all_files()) == 2

    def test_metadata(self):
        result = FetchResult.from_files(FILES, source="https://github.com/o/r", ref=None)
        assert result.metadata["total_files"] == 3
        assert result.metadata["total_size"] == len("print('a')\n") + len("# Title") + len("b = 2")
        assert result.metadata["source"] == "https://github.com/o/r"
        assert "ref" not in result.metadata
        assert "fetched_at" in result.metadata

    def test_get_file_by_path(self):
        result = FetchResult.from_files(FILES)
        assert result.get_file_by_path("src/lib/b.py").content == "b = 2"
        assert result.get_file_by_path("/README.md").size == 7
        assert result.get_file_by_path("src") is None
        assert result.get_file_by_path("src/nope.py") is None
        assert result.get_file_by_path("README.md/x") is None

    def test_all_files_in_tree_order(self):
        result = FetchResult.from_files(FILES)
        assert [f.path for f in result.all_files()] == ["src/lib/b.py", "src/a.py", "README.md"]

    def test_to_dict(self):
        data = FetchResult.from_files([("a/b.txt", "hi")]).to_dict()
        a = data["root"]["children"][0]
        assert a == {
            "name": "a", "path": "a", "type": "directory",
            "children": [{"name": "b.txt", "path": "a/b.txt", "type": "file", "size": 2, "content": "hi"}],
        }

    def test_to_markdown(self):
        doc = FetchResult.from_files(FILES).to_markdown(line_numbers=False)
        assert doc.startswith("Project Structure:\n├── src")
        assert doc.index("src/lib/b.py\n```") < doc.index("README.md\n```")


def test_write_output_creates_parents(tmp_path):
    out = write_output("hello", tmp_path / "nested" / "out.md")
    assert out.read_text(encoding="utf-8") == "hello"
