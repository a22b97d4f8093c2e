"""
FetchResult: acquired files as an explicit tree.

Directory nodes own their children outright; there are no parent links, so
walking is always top-down.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from .log import get_logger
from .presenter import render_markdown

logger = get_logger("result")


@dataclass
class FileNode:
    name: str
    path: str
    type: Literal['file', 'directory']
    content: str | None = None
    size: int = 0
    children: list['FileNode'] = field(default_factory=list)

    @property
    def is_file(self) -> bool:
        return self.type == 'file'

    def child(self, name: str) -> 'FileNode | None':
        for node in self.children:
            if node.name == name:
                return node
        return None

    def to_dict(self) -> dict:
        data = {'name': self.name, 'path': self.path, 'type': self.type}
        if self.is_file:
            data['size'] = self.size
            data['content'] = self.content
        else:
            data['children'] = [c.to_dict() for c in self.children]
        return data


def _sort(node: FileNode) -> None:
    node.children.sort(key=lambda n: (n.is_file, n.name))
    for child in node.children:
        if not child.is_file:
            _sort(child)


def build_tree(files: list[tuple[str, str]]) -> FileNode:
    """
    Build a directory tree from (path, content) pairs.

    Names are unique per directory. An entry that would reuse a name already
    taken (a file where a directory exists, or the reverse, or a duplicate
    path) is dropped with a warning; the first entry wins.
    """
    root = FileNode(name='', path='', type='directory')
    for path, content in files:
        parts = [p for p in path.split('/') if p]
        if not parts:
            continue
        node = root
        for i, part in enumerate(parts[:-1]):
            nxt = node.child(part)
            if nxt is None:
                nxt = FileNode(name=part, path='/'.join(parts[:i + 1]), type='directory')
                node.children.append(nxt)
            elif nxt.is_file:
                node = None
                break
            node = nxt
        if node is None or node.child(parts[-1]) is not None:
            logger.warning("Skipping %s: name already used in the tree", path)
            continue
        node.children.append(FileNode(
            name=parts[-1],
            path='/'.join(parts),
            type='file',
            content=content,
            size=len(content.encode('utf-8')),
        ))
    _sort(root)
    return root


class FetchResult:
    """Tree of acquired files plus metadata about where they came from."""

    def __init__(self, root: FileNode, metadata: dict | None = None):
        self.root = root
        self.metadata = metadata or {}

    @classmethod
    def from_files(cls, files: list[tuple[str, str]], **metadata) -> 'FetchResult':
        root = build_tree(files)
        result = cls(root)
        all_files = result.all_files()
        result.metadata = {
            'total_files': len(all_files),
            'total_size': sum(f.size for f in all_files),
            'fetched_at': datetime.now(timezone.utc).isoformat(),
            **{k: v for k, v in metadata.items() if v is not None},
        }
        return result

    def get_file_by_path(self, path: str) -> FileNode | None:
        node = self.root
        for part in [p for p in path.strip('/').split('/') if p]:
            if node.is_file:
                return None
            node = node.child(part)
            if node is None:
                return None
        return node if node.is_file else None

    def all_files(self) -> list[FileNode]:
        files = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.is_file:
                files.append(node)
            else:
                stack.extend(reversed(node.children))
        return files

    def to_markdown(self, project_tree: bool = True, line_numbers: bool = True) -> str:
        return render_markdown(
            [(f.path, f.content or '') for f in self.all_files()],
            project_tree=project_tree,
            line_numbers=line_numbers,
        )

    def to_dict(self) -> dict:
        return {'metadata': self.metadata, 'root': self.root.to_dict()}

    def __repr__(self) -> str:
        return f"FetchResult(files={self.metadata.get('total_files')}, source={self.metadata.get('source')!r})"


__all__ = ['FileNode', 'FetchResult', 'build_tree']
