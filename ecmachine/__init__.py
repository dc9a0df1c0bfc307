"""
ecmachine - a small Lisp dialect running inside a simulated filesystem

This package provides the expression parser and evaluator, the in-memory
filesystem its built-ins read and write, and a terminal session that drives
both from a prompt.
"""

__version__ = "0.1.0"

from .interpreter import (
    ArityError,
    Builtin,
    Closure,
    Environment,
    EvaluationError,
    Evaluator,
    Interpreter,
    ParseError,
    RecursionDepthError,
    SpecialForm,
    Symbol,
    UnboundSymbolError,
    parse,
    parse_program,
    to_source,
    to_string,
)

from .filesystem import (
    AlreadyExistsError,
    DirNode,
    EntryNotFoundError,
    FileNode,
    FileSystem,
    FileSystemError,
    IsDirectoryError,
    PathNotFoundError,
    seed_filesystem,
)

from .terminal import (
    CommandHistory,
    TerminalConfig,
    TerminalSession,
)

__all__ = [
    # Interpreter
    "Symbol",
    "Closure",
    "Builtin",
    "SpecialForm",
    "Environment",
    "Evaluator",
    "Interpreter",
    "parse",
    "parse_program",
    "to_source",
    "to_string",

    # Interpreter errors
    "ParseError",
    "EvaluationError",
    "UnboundSymbolError",
    "ArityError",
    "RecursionDepthError",

    # Filesystem
    "FileSystem",
    "FileNode",
    "DirNode",
    "seed_filesystem",
    "FileSystemError",
    "PathNotFoundError",
    "EntryNotFoundError",
    "IsDirectoryError",
    "AlreadyExistsError",

    # Terminal
    "TerminalSession",
    "TerminalConfig",
    "CommandHistory",

    # Version info
    "__version__",
]
