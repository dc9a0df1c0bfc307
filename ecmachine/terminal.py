#!/usr/bin/env python3
"""
Terminal emulator for ecmachine.

This module provides the command surface around the interpreter: it reads
expressions at a prompt, evaluates them against the simulated filesystem and
prints results in Lisp notation.

Design Principles:
- The interpreter never prints; the session alone presents results and errors
- The prompt is updated through set_prompt, the hook the cd built-in calls
- Slash commands (/save, /load, ...) manage the session, not the language
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from typing import List, Optional

from .filesystem import FileSystem, FileSystemError, seed_filesystem
from .interpreter import (
    DEFAULT_MAX_DEPTH, EvaluationError, Interpreter, ParseError, to_string
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = 'ecmachine-state.json'


@dataclass
class TerminalConfig:
    """Configuration for terminal session."""
    user: str = 'guest'
    initial_dir: str = '/'
    prompt_format: str = 'ecmachine:{cwd} {user}$ '
    enable_colors: bool = True
    history_size: int = 1000
    max_depth: int = DEFAULT_MAX_DEPTH
    seed: bool = True
    state_file: Optional[str] = None  # Loaded at start if present, saved on exit


class CommandHistory:
    """Bounded record of the command lines shown by /history.

    Arrow-key navigation is left to readline where it is available.
    """

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self.history: List[str] = []

    def add(self, command: str):
        """Record a non-blank command, dropping the oldest past max_size."""
        if command.strip():
            self.history.append(command)
            overflow = len(self.history) - self.max_size
            if overflow > 0:
                del self.history[:overflow]


class TerminalSession:
    """
    Main terminal session manager.

    This class provides the REPL loop and manages the terminal session,
    including prompt display, expression evaluation, and session state.
    """

    def __init__(self, config: Optional[TerminalConfig] = None,
                 filesystem: Optional[FileSystem] = None):
        """Initialize terminal session."""
        self.config = config or TerminalConfig()
        self.fs = filesystem or self._initial_filesystem()
        self.history = CommandHistory(self.config.history_size)
        self.prompt = ''

        # The interpreter fills in {cwd}; the user is fixed for the session
        prompt_format = self.config.prompt_format.format(user=self.config.user, cwd='{cwd}')
        self.interpreter = Interpreter(
            filesystem=self.fs,
            prompt=self,
            max_depth=self.config.max_depth,
            prompt_format=prompt_format,
        )

        if self.config.initial_dir:
            self.fs.navigate(self.config.initial_dir)
        self.set_prompt(prompt_format.format(cwd=self.fs.cwd))

    def _initial_filesystem(self) -> FileSystem:
        state_file = self.config.state_file
        if state_file and os.path.exists(state_file):
            logger.info("Loading filesystem state from %s", state_file)
            with open(state_file, 'r') as f:
                return FileSystem.from_json(f.read())

        fs = FileSystem()
        if self.config.seed:
            seed_filesystem(fs)
        return fs

    def _attach_filesystem(self, fs: FileSystem):
        self.fs = fs
        self.interpreter.evaluator.filesystem = fs
        self.set_prompt(self.interpreter.evaluator.prompt_format.format(cwd=fs.cwd))

    def set_prompt(self, text: str) -> None:
        """Replace the displayed prompt (called by the cd built-in)."""
        self.prompt = text

    def get_prompt(self) -> str:
        """Generate the command prompt."""
        if self.config.enable_colors:
            return f'\033[32m{self.prompt}\033[0m'
        return self.prompt

    def execute_command(self, command_line: str) -> Optional[str]:
        """
        Evaluate a command line and return the output.

        Returns None for exit commands.
        """
        command_line = command_line.strip()
        if not command_line:
            return ''

        if command_line in ('exit', 'quit', '(exit)', '(quit)'):
            return None

        if command_line.startswith('/') and command_line[1:2].isalpha():
            return self._execute_slash_command(command_line)

        try:
            result = self.interpreter.eval_string(command_line)
        except (ParseError, EvaluationError, FileSystemError) as e:
            logger.debug("Command failed: %s", command_line, exc_info=True)
            return f"Error: {e}"

        try:
            return to_string(result)
        except RecursionError:
            return "Error: Result nested too deeply to display"
        except ValueError as e:
            # int to str conversion limit
            return f"Error: {e}"

    # Slash commands

    def _execute_slash_command(self, command_line: str) -> str:
        """Execute a session command such as /save or /load."""
        parts = command_line[1:].split()
        command, args = parts[0], parts[1:]

        handlers = {
            'help': self._slash_help,
            'save': self._slash_save,
            'load': self._slash_load,
            'history': self._slash_history,
        }
        handler = handlers.get(command)
        if handler is None:
            return f"Unknown command: /{command}. Type /help for available commands."
        return handler(args)

    def _slash_help(self, args: List[str]) -> str:
        return """Session commands:
  /help              - Show this help
  /save [file]       - Save the filesystem to a JSON file
  /load <file>       - Load the filesystem from a JSON file
  /history           - Show command history
  exit               - Leave the terminal

Special forms: if cond quote begin define lambda
Built-ins:
  + - * /  = > < >= <= == !=  not and or  cons car cdr list
  ls cd read exec mkdir pwd write touch

Example:
  (exec '/scripts/fact.lisp)
  (fact 5)"""

    def _slash_save(self, args: List[str]) -> str:
        """Save state to JSON file."""
        try:
            filepath = self.save_state(args[0] if args else None)
        except OSError as e:
            return f"Save failed: {e}"
        return f"State saved to {filepath}"

    def _slash_load(self, args: List[str]) -> str:
        """Load state from JSON file."""
        if not args:
            return "Usage: /load <filename>"

        filepath = args[0]
        try:
            with open(filepath, 'r') as f:
                fs = FileSystem.from_json(f.read())
        except (OSError, ValueError) as e:
            return f"Load failed: {e}"

        self._attach_filesystem(fs)
        logger.info("Loaded filesystem state from %s", filepath)
        return f"State loaded from {filepath}"

    def _slash_history(self, args: List[str]) -> str:
        return '\n'.join(f"{i:5d}  {line}" for i, line in enumerate(self.history.history, 1))

    def save_state(self, path: Optional[str] = None) -> str:
        """Write the filesystem to a JSON file and return its path."""
        filepath = path or self.config.state_file or DEFAULT_STATE_FILE
        with open(filepath, 'w') as f:
            f.write(self.fs.to_json())
        logger.info("Saved filesystem state to %s", filepath)
        return filepath

    # Running

    def run_interactive(self):
        """Run the interactive REPL loop."""
        print("Welcome to ecmachine")
        print("Type (exec '/scripts/hello.lisp) to try a script, '/help' for help, 'exit' to quit")
        print()

        while True:
            try:
                command_line = input(self.get_prompt())
                self.history.add(command_line)

                output = self.execute_command(command_line)
                if output is None:
                    break
                if output:
                    print(output)

            except KeyboardInterrupt:
                print("^C")
                continue
            except EOFError:
                print()
                break
            except Exception as e:
                logger.exception("Unexpected error")
                print(f"Error: {e}")

        if self.config.state_file:
            self.save_state()
        print("Goodbye!")

    def run_command(self, command_line: str) -> str:
        """
        Run a single command and return output.

        This method is useful for non-interactive use.
        """
        self.history.add(command_line)
        output = self.execute_command(command_line)
        return output if output is not None else ''

    def run_script(self, script_lines: List[str]) -> List[str]:
        """
        Run a script (list of command lines) and return outputs.
        """
        outputs = []
        for line in script_lines:
            # Skip comments and empty lines
            line = line.strip()
            if not line or line.startswith(';'):
                continue

            output = self.execute_command(line)
            if output is None:  # Exit command
                break
            outputs.append(output)

        return outputs


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ecmachine terminal."""
    parser = argparse.ArgumentParser(description='ecmachine Lisp terminal')
    parser.add_argument('-c', '--command', help='Evaluate an expression and exit')
    parser.add_argument('-u', '--user', help='Set username shown in the prompt', default='guest')
    parser.add_argument('-d', '--directory', help='Set initial directory', default='/')
    parser.add_argument('--state', help='JSON file to load the filesystem from and save it to')
    parser.add_argument('--max-depth', type=int, default=DEFAULT_MAX_DEPTH,
                        help='Maximum nesting depth of evaluation')
    parser.add_argument('--no-color', action='store_true', help='Disable prompt colors')
    parser.add_argument('--no-seed', action='store_true', help='Start with an empty filesystem')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    config = TerminalConfig(
        user=args.user,
        initial_dir=args.directory,
        enable_colors=not args.no_color,
        max_depth=args.max_depth,
        seed=not args.no_seed,
        state_file=args.state,
    )
    try:
        session = TerminalSession(config=config)
    except (FileSystemError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command:
        output = session.run_command(args.command)
        if output:
            print(output)
        if config.state_file:
            session.save_state()
        return 1 if output.startswith('Error:') else 0

    # Line editing and history navigation for input(), where available
    try:
        import readline  # noqa: F401
    except ImportError:
        pass

    session.run_interactive()
    return 0


if __name__ == '__main__':
    sys.exit(main())
