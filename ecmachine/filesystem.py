#!/usr/bin/env python3
"""
ecmachine - the simulated filesystem behind the Lisp built-ins.

Core philosophy:
- Nodes are immutable; a change replaces the affected directory node
- A flat path index maps absolute paths to nodes
- Paths resolve against a current directory, the way a shell does it
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

ROOT = '/'
QUOTE_MARKER = "'"


class FileSystemError(Exception):
    """Base class for simulated filesystem failures."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class PathNotFoundError(FileSystemError):
    """A directory named by a path does not exist."""

    def __init__(self, path: str):
        super().__init__(f'File system error: path "{path}" does not exist', path)


class EntryNotFoundError(FileSystemError, FileNotFoundError):
    """A file named by a path does not exist."""

    def __init__(self, path: str):
        super().__init__(f'File system error: file "{path}" does not exist', path)


class IsDirectoryError(FileSystemError, IsADirectoryError):
    """A file operation was given a directory."""

    def __init__(self, path: str):
        super().__init__(f'File system error: "{path}" is a directory', path)


class AlreadyExistsError(FileSystemError, FileExistsError):
    """An entry with that name is already present."""

    def __init__(self, path: str):
        super().__init__(f'File system error: "{path}" already exists', path)


@dataclass(frozen=True)
class FileNode:
    """Regular file holding text."""
    content: str = ''

    def is_dir(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {'type': 'file', 'content': self.content}


@dataclass(frozen=True)
class DirNode:
    """Directory node holding the sorted names of its children."""
    children: Tuple[str, ...] = ()

    def is_dir(self) -> bool:
        return True

    def with_child(self, name: str) -> 'DirNode':
        """Return a new DirNode with an additional child."""
        if name in self.children:
            return self
        return DirNode(tuple(sorted(self.children + (name,))))

    def to_dict(self) -> dict:
        return {'type': 'dir', 'children': list(self.children)}


Node = Union[FileNode, DirNode]


class FileSystem:
    """
    In-memory file hierarchy with a current directory.

    Every entry lives in a path index keyed by absolute path. A directory
    lists its children by name; adding a child swaps in an updated copy of
    the parent directory node.
    """

    def __init__(self):
        # Path index: absolute path -> node
        self.nodes: Dict[str, Node] = {ROOT: DirNode()}
        self._cwd = ROOT

    @property
    def cwd(self) -> str:
        """Current directory as an absolute path."""
        return self._cwd

    def resolve(self, path: str) -> str:
        """
        Resolve a path against the current directory.

        A leading quote marker is dropped, '..' pops one segment (never above
        the root) and '.' or empty segments are skipped, so repeated slashes
        collapse.
        """
        if path.startswith(QUOTE_MARKER):
            path = path[len(QUOTE_MARKER):]

        start = ROOT if path.startswith('/') else self._cwd
        segments = [s for s in start.split('/') if s]
        for part in path.split('/'):
            if part in ('', '.'):
                continue
            if part == '..':
                if segments:
                    segments.pop()
            else:
                segments.append(part)
        return ROOT + '/'.join(segments)

    def _split(self, path: str) -> Tuple[str, str]:
        """Split an absolute path into parent directory and basename."""
        parent, _, name = path.rpartition('/')
        return parent or ROOT, name

    def _attach(self, path: str, node: Node):
        parent_path, name = self._split(path)
        parent = self.nodes.get(parent_path)
        if parent is None or not parent.is_dir():
            raise PathNotFoundError(parent_path)
        self.nodes[parent_path] = parent.with_child(name)
        self.nodes[path] = node

    # Queries

    def exists(self, path: str) -> bool:
        return self.resolve(path) in self.nodes

    def is_dir(self, path: str) -> bool:
        node = self.nodes.get(self.resolve(path))
        return node is not None and node.is_dir()

    def list_files(self, path: Optional[str] = None) -> List[str]:
        """List a directory's entries alphabetically (default: current directory)."""
        target = self._cwd if path is None else self.resolve(path)
        node = self.nodes.get(target)
        if node is None or not node.is_dir():
            raise PathNotFoundError(target)
        return sorted(node.children)

    def read_file(self, path: str) -> str:
        """Return a file's contents."""
        target = self.resolve(path)
        node = self.nodes.get(target)
        if node is None:
            raise EntryNotFoundError(target)
        if node.is_dir():
            raise IsDirectoryError(target)
        return node.content

    # Mutations

    def navigate(self, path: str) -> str:
        """Change the current directory and return the new path."""
        target = self.resolve(path)
        node = self.nodes.get(target)
        if node is None or not node.is_dir():
            raise PathNotFoundError(target)
        self._cwd = target
        return target

    def make_dir(self, name: str) -> str:
        """Create an empty directory and return its path."""
        target = self.resolve(name)
        if target in self.nodes:
            raise AlreadyExistsError(target)
        self._attach(target, DirNode())
        return target

    def new_file(self, path: str) -> str:
        """Create an empty file and return its path."""
        target = self.resolve(path)
        if target in self.nodes:
            raise AlreadyExistsError(target)
        self._attach(target, FileNode())
        return target

    def save_file(self, path: str, contents: str) -> str:
        """Create or overwrite a file and return its path."""
        target = self.resolve(path)
        node = self.nodes.get(target)
        if node is not None and node.is_dir():
            raise IsDirectoryError(target)
        self._attach(target, FileNode(contents))
        return target

    # Serialization

    def to_json(self) -> str:
        """Serialize filesystem to JSON."""
        data = {
            'cwd': self._cwd,
            'nodes': {path: node.to_dict() for path, node in self.nodes.items()},
        }
        return json.dumps(data, indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'FileSystem':
        """Deserialize filesystem from JSON.

        Raises ValueError for text that is not a filesystem snapshot.
        """
        data = json.loads(json_str)
        if not isinstance(data, dict) or not isinstance(data.get('nodes'), dict):
            raise ValueError("Not a filesystem snapshot: expected an object with 'nodes'")

        fs = cls()
        fs.nodes = {}
        for path, node_data in data['nodes'].items():
            if not isinstance(node_data, dict) or node_data.get('type') not in ('dir', 'file'):
                raise ValueError(f"Invalid node entry for {path}")
            if node_data['type'] == 'dir':
                children = node_data.get('children', [])
                if not isinstance(children, list) or not all(isinstance(c, str) for c in children):
                    raise ValueError(f"Invalid children for {path}")
                fs.nodes[path] = DirNode(tuple(sorted(children)))
            else:
                content = node_data.get('content', '')
                if not isinstance(content, str):
                    raise ValueError(f"Invalid content for {path}")
                fs.nodes[path] = FileNode(content)

        if ROOT not in fs.nodes:
            fs.nodes[ROOT] = DirNode()
        cwd = data.get('cwd', ROOT)
        fs._cwd = cwd if isinstance(cwd, str) and fs.is_dir(cwd) else ROOT
        logger.debug("Loaded %d filesystem entries", len(fs.nodes))
        return fs


README = """Welcome to ecmachine.

Type Lisp expressions at the prompt:
  (+ 2 3)
  (define inc (lambda (x) (+ x 1)))
  (inc 41)

Strings are written with a leading quote: 'hello
Filesystem built-ins: (ls) (cd 'home) (pwd) (read 'README)
  (mkdir 'notes) (write 'notes/todo 'milk) (touch 'empty) (exec '/scripts/fact.lisp)
"""

FACT_SCRIPT = """(define fact
  (lambda (n)
    (if (= n 0)
        1
        (* n (fact (- n 1))))))
"""

HELLO_SCRIPT = "(list 'hello 'world)\n"


def seed_filesystem(fs: FileSystem) -> FileSystem:
    """Populate a new filesystem with the default session tree."""
    fs.make_dir('/home')
    fs.make_dir('/home/guest')
    fs.make_dir('/scripts')
    fs.save_file('/README', README)
    fs.save_file('/scripts/fact.lisp', FACT_SCRIPT)
    fs.save_file('/scripts/hello.lisp', HELLO_SCRIPT)
    return fs
