"""
Presentation helpers for acquired content.

Turns file lists and crawl results into the markdown document handed to
callers, and writes output files for the CLI.
"""

from __future__ import annotations

import json
from pathlib import Path
from urllib.parse import urlparse

from .urls import url_to_path


TREE_HEADER = "Project Structure:"


def _insert(tree: dict, parts: list[str]) -> None:
    node = tree
    for part in parts[:-1]:
        # A page path like /docs can also be the parent of /docs/api
        if node.get(part) is None:
            node[part] = {}
        node = node[part]
    node.setdefault(parts[-1], None)


def _tree_lines(tree: dict, prefix: str = "") -> list[str]:
    # Directories first, then files, each alphabetical
    entries = sorted(tree.items(), key=lambda kv: (kv[1] is None, kv[0]))
    lines = []
    for i, (name, child) in enumerate(entries):
        last = i == len(entries) - 1
        lines.append(f"{prefix}{'└── ' if last else '├── '}{name}")
        if child:
            lines.extend(_tree_lines(child, prefix + ("    " if last else "│   ")))
    return lines


def render_tree(paths: list[str]) -> str:
    """'Project Structure:' followed by an ASCII tree of relative paths."""
    tree: dict = {}
    for path in paths:
        parts = [p for p in path.split('/') if p]
        if parts:
            _insert(tree, parts)
    return "\n".join([TREE_HEADER, *_tree_lines(tree)])


def render_file(path: str, content: str, line_numbers: bool = True) -> str:
    lines = content.split("\n")
    if line_numbers:
        width = len(str(len(lines)))
        lines = [f"{str(i).rjust(width)} | {line}" for i, line in enumerate(lines, 1)]
    return "\n".join([path, "```", *lines, "```"])


def render_markdown(
    files: list[tuple[str, str]],
    project_tree: bool = True,
    line_numbers: bool = True,
) -> str:
    """
    Render (path, content) pairs as one document: the project tree, then
    every file in a fenced block.
    """
    sections = []
    if project_tree:
        sections.append(render_tree([path for path, _ in files]))
    for path, content in files:
        sections.append(render_file(path, content, line_numbers))
    return "\n\n".join(sections) + "\n"


def _ok_pages(results: list) -> list:
    pages = [r for r in results if not r.error]
    return sorted(pages, key=lambda r: urlparse(r.url).path or '/')


def render_url_structure(results: list) -> str:
    """'Project Structure:' tree of the URL paths that were crawled."""
    tree: dict = {}
    has_root = False
    for result in _ok_pages(results):
        parts = [p for p in (urlparse(result.url).path or '/').split('/') if p]
        if parts:
            _insert(tree, parts)
        else:
            has_root = True
    lines = [TREE_HEADER]
    if has_root:
        lines.append("├── /" if tree else "└── /")
    lines.extend(_tree_lines(tree))
    return "\n".join(lines)


def crawl_results_to_markdown(results: list) -> str:
    """One section per successful page: its path, then a fenced '# title' + content block."""
    sections = []
    for result in _ok_pages(results):
        path = urlparse(result.url).path or '/'
        title = result.title or path
        sections.append(f"{path}\n```\n# {title}\n\n{result.content}\n```")
    return "\n\n".join(sections)


def render_website(results: list, project_tree: bool = True) -> str:
    parts = []
    if project_tree:
        parts.append(render_url_structure(results))
    body = crawl_results_to_markdown(results)
    if body:
        parts.append(body)
    return "\n\n".join(parts) + "\n"


def pages_to_documents(results: list) -> list[tuple[str, str]]:
    """
    Synthesize (path, markdown) documents from crawled pages.

    A page whose document path is also a directory of another page's path
    (/guide.md next to /guide.md/intro) moves to <path>/index.md.
    """
    pages = [(url_to_path(r.url), r) for r in _ok_pages(results)]
    dirs = {
        '/'.join(parts[:i])
        for parts in (path.split('/') for path, _ in pages)
        for i in range(1, len(parts))
    }

    documents = []
    seen: set[str] = set()
    for path, result in pages:
        if path in dirs:
            path = f"{path}/index.md"
        if path in seen:
            continue
        seen.add(path)
        title = result.title or urlparse(result.url).path or '/'
        documents.append((path, f"# {title}\n\nSource: {result.url}\n\n{result.content}\n"))
    return documents


def render_json(data: dict) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def write_output(text: str, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text, encoding="utf-8")
    return out


__all__ = [
    'render_tree',
    'render_file',
    'render_markdown',
    'render_url_structure',
    'crawl_results_to_markdown',
    'render_website',
    'pages_to_documents',
    'render_json',
    'write_output',
]
