"""Flatten a hierarchical ``FileNode`` tree into the path-keyed snapshot."""

from __future__ import annotations

from collections.abc import Iterable

from .models import FileNode, LocalFile


def flatten_tree(nodes: Iterable[FileNode]) -> dict[str, LocalFile]:
    """Return ``{path: LocalFile}`` for every file in *nodes*.

    Paths join folder names with ``/``.  Files without content and folders
    without children contribute nothing.  A later node with the same path
    replaces an earlier one.
    """
    files: dict[str, LocalFile] = {}
    stack: list[tuple[str, FileNode]] = [
        ("", node) for node in reversed(list(nodes))
    ]

    while stack:
        base, node = stack.pop()
        path = f"{base}/{node.name}" if base else node.name

        if node.type == "file":
            if node.content is not None:
                files[path] = LocalFile(
                    path=path,
                    content=node.content,
                    known_remote_version=node.version,
                )
        elif node.children:
            stack.extend((path, child) for child in reversed(node.children))

    return files


def build_tree(files: dict[str, LocalFile]) -> list[FileNode]:
    """Inverse of ``flatten_tree``: nest a snapshot back into folders.

    Children are sorted by name.
    """
    root: dict = {}
    for path, local in files.items():
        *folders, name = path.split("/")
        level = root
        for folder in folders:
            level = level.setdefault(folder, {})
        level[name] = local

    def _to_nodes(level: dict) -> list[FileNode]:
        nodes: list[FileNode] = []
        for name in sorted(level):
            value = level[name]
            if isinstance(value, LocalFile):
                nodes.append(
                    FileNode(
                        name=name,
                        type="file",
                        content=value.content,
                        version=value.known_remote_version,
                    )
                )
            else:
                nodes.append(
                    FileNode(name=name, type="folder", children=_to_nodes(value))
                )
        return nodes

    return _to_nodes(root)
