"""
Folder view over flat secret paths.

Storage has no folder rows; a folder exists only while some secret path
runs through it. This module derives that view on demand: a sorted tree for
display, and the list of parent folders a deletion left empty.
"""
from dataclasses import dataclass, field

PATH_SEPARATOR = "/"

BRANCH_LAST = "└── "
BRANCH_MID = "├── "
PIPE = "│   "
SPACE = "    "


@dataclass
class TreeNode:
    name: str
    is_folder: bool
    children: dict[str, "TreeNode"] = field(default_factory=dict)

    def sorted_children(self) -> list["TreeNode"]:
        return [self.children[name] for name in sorted(self.children)]

    def leaf_paths(self, prefix: str = "") -> list[str]:
        """Full paths of every secret below this node, in display order."""
        paths = []
        for child in self.sorted_children():
            child_path = f"{prefix}{PATH_SEPARATOR}{child.name}" if prefix else child.name
            if child.is_folder:
                paths.extend(child.leaf_paths(child_path))
            else:
                paths.append(child_path)
        return paths


def build_tree(paths, root_name: str) -> TreeNode:
    """Build the folder view for a set of secret paths.

    A name that is both a secret and a folder (``a`` and ``a/b``) is shown
    once, as a folder. ``SecretStore.list_paths`` still returns both paths.
    """
    root = TreeNode(root_name, is_folder=True)

    for path in paths:
        parts = [p for p in path.split(PATH_SEPARATOR) if p]
        current = root
        for i, part in enumerate(parts):
            is_folder = i < len(parts) - 1
            node = current.children.get(part)
            if node is None:
                node = TreeNode(part, is_folder=is_folder)
                current.children[part] = node
            elif is_folder and not node.is_folder:
                node.is_folder = True
            current = node

    return root


def render_tree(root: TreeNode) -> str:
    """Render the view with box-drawing connectors, one node per line."""
    lines = [root.name]
    _render_children(root, "", lines)
    return "\n".join(lines)


def _render_children(node: TreeNode, prefix: str, lines: list[str]) -> None:
    children = node.sorted_children()
    for i, child in enumerate(children):
        is_last = i == len(children) - 1
        suffix = PATH_SEPARATOR if child.is_folder else ""
        lines.append(f"{prefix}{BRANCH_LAST if is_last else BRANCH_MID}{child.name}{suffix}")
        if child.children:
            _render_children(child, prefix + (SPACE if is_last else PIPE), lines)


def parent_folders(path: str) -> list[str]:
    """Parent folders of a path, deepest first (``a/b/c`` -> ``a/b``, ``a``)."""
    parts = path.split(PATH_SEPARATOR)
    return [PATH_SEPARATOR.join(parts[:i]) for i in range(len(parts) - 1, 0, -1)]


def is_under(path: str, folder: str) -> bool:
    """True if ``path`` lies inside ``folder`` (segment boundary respected)."""
    return path.startswith(folder + PATH_SEPARATOR)


def empty_parents(path: str, remaining_paths) -> list[str]:
    """Parent folders of ``path`` that hold no secret any more, deepest first.

    Stops at the first parent that still has content, since everything above
    it is non-empty too.
    """
    remaining = list(remaining_paths)
    emptied = []
    for folder in parent_folders(path):
        if any(is_under(p, folder) for p in remaining):
            break
        emptied.append(folder)
    return emptied
