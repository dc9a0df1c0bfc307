#!/usr/bin/env python3
"""
Lisp-dialect interpreter for ecmachine.

Expressions are parsed into nested Python lists of numbers and symbols and
evaluated against a chain of environments. Special forms receive their
operands unevaluated; built-in operators receive them evaluated. Filesystem
built-ins delegate to the simulated filesystem attached to the evaluator.
"""

import logging
import operator
import re
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

QUOTE_MARKER = "'"
TRUE_TOKEN = '#t'
FALSE_TOKEN = '#f'
ELSE_TOKEN = 'else'

DEFAULT_MAX_DEPTH = 150
DEFAULT_PROMPT_FORMAT = 'ecmachine:{cwd} guest$ '

# ASCII literals only: int() and float() alone accept "1_000" and non-ASCII digits
INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")
FLOAT_PATTERN = re.compile(r"[+-]?([0-9]+\.[0-9]*|\.[0-9]+|[0-9]+)([eE][+-]?[0-9]+)?")


# Errors

class ParseError(SyntaxError):
    """Raised for malformed expression text."""


class EvaluationError(Exception):
    """An expression could not be reduced to a value."""

    def __init__(self, message: str, expression: Any = None):
        super().__init__(message)
        self.expression = expression


class UnboundSymbolError(EvaluationError, NameError):
    """A symbol was looked up that no frame binds."""


class ArityError(EvaluationError, TypeError):
    """A procedure received the wrong number of operands."""


class RecursionDepthError(EvaluationError):
    """Evaluation nested deeper than the evaluator allows."""


# Expression and value types

@dataclass(frozen=True)
class Symbol:
    """Represents a bare token: variable, string literal or boolean."""
    name: str

    def __repr__(self):
        return self.name


@dataclass(frozen=True, eq=False)
class Closure:
    """A lambda value closed over the frame it was created in."""
    params: Tuple[str, ...]
    body: Any
    env: 'Environment'

    def __repr__(self):
        return f"#<lambda ({' '.join(self.params)})>"


class SpecialForm(Enum):
    """Operators whose operands are passed unevaluated."""
    IF = 'if'
    COND = 'cond'
    QUOTE = 'quote'
    BEGIN = 'begin'
    DEFINE = 'define'
    LAMBDA = 'lambda'


class Builtin(Enum):
    """Operators implemented natively, applied to evaluated operands."""
    # Arithmetic
    ADD = '+'
    SUB = '-'
    MUL = '*'
    DIV = '/'
    # Comparison
    EQ = '='
    GT = '>'
    LT = '<'
    GE = '>='
    LE = '<='
    EQUAL = '=='
    NOT_EQUAL = '!='
    # Logical
    NOT = 'not'
    AND = 'and'
    OR = 'or'
    # Lists
    CONS = 'cons'
    CAR = 'car'
    CDR = 'cdr'
    LIST = 'list'
    # Filesystem
    LS = 'ls'
    CD = 'cd'
    READ = 'read'
    EXEC = 'exec'
    MKDIR = 'mkdir'
    PWD = 'pwd'
    WRITE = 'write'
    TOUCH = 'touch'

    def __str__(self):
        return f"#<builtin {self.value}>"

    __repr__ = __str__


_SPECIAL_FORMS = {form.value: form for form in SpecialForm}
_BUILTINS = {builtin.value: builtin for builtin in Builtin}


class PromptDisplay(Protocol):
    """Anything that can show a new prompt after the directory changes."""

    def set_prompt(self, text: str) -> None:
        ...


class Environment:
    """Lexical environment for variable bindings."""

    def __init__(self, parent: Optional['Environment'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def define(self, name: str, value: Any):
        """Bind a name in this frame, never in an enclosing one."""
        self.bindings[name] = value

    def find(self, name: str) -> Optional['Environment']:
        """Return the innermost frame binding name, or None."""
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.parent
        return None

    def lookup(self, name: str) -> Any:
        """Look up a binding, walking outward to the global frame."""
        frame = self.find(name)
        if frame is None:
            raise UnboundSymbolError(f"Undefined variable: {name}", Symbol(name))
        return frame.bindings[name]

    def new_child(self) -> 'Environment':
        return Environment(parent=self)

    def root(self) -> 'Environment':
        """Return the outermost (global) frame of this chain."""
        env = self
        while env.parent is not None:
            env = env.parent
        return env

    def __contains__(self, name: str) -> bool:
        return self.find(name) is not None


# Parser

def _closing_index(text: str) -> int:
    """Index of the parenthesis closing the one at text[0]."""
    depth = 0
    for i, char in enumerate(text):
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0:
                return i
    raise ParseError("Missing closing parenthesis")


def split_forms(text: str) -> List[str]:
    """Split text on whitespace that is not nested inside parentheses."""
    tokens = []
    current = []
    depth = 0

    for char in text:
        if char.isspace() and depth == 0:
            if current:
                tokens.append(''.join(current))
                current = []
            continue
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth < 0:
                raise ParseError("Unexpected closing parenthesis")
        current.append(char)

    if depth != 0:
        raise ParseError("Missing closing parenthesis")
    if current:
        tokens.append(''.join(current))
    return tokens


def parse_atom(token: str) -> Any:
    """Parse a token with no parentheses into a number or a Symbol."""
    if INTEGER_PATTERN.fullmatch(token):
        try:
            return int(token)
        except ValueError as e:
            # Beyond the interpreter's integer string conversion limit
            raise ParseError(f"Invalid integer literal: {e}") from None
    # 'nan' and 'inf' are symbols here
    if FLOAT_PATTERN.fullmatch(token):
        return float(token)
    return Symbol(token)


def parse(text: str) -> Any:
    """Parse a single textual form into an expression tree."""
    try:
        return _parse_form(text)
    except RecursionError:
        raise ParseError("Expression nested too deeply") from None


def _parse_form(text: str) -> Any:
    text = text.strip()
    if not text:
        raise ParseError("Unexpected EOF")

    if text[0] == '(':
        end = _closing_index(text)
        if end != len(text) - 1:
            raise ParseError(f"Unexpected text after expression: {text[end + 1:].strip()}")
        return [_parse_form(token) for token in split_forms(text[1:end])]

    if ')' in text:
        raise ParseError("Unexpected closing parenthesis")
    if '(' in text or any(char.isspace() for char in text):
        raise ParseError(f"Unexpected text after expression: {text}")

    return parse_atom(text)


def parse_program(text: str) -> List[Any]:
    """Parse every top-level form in text, in order."""
    return [parse(token) for token in split_forms(text)]


def to_source(expr: Any) -> str:
    """Re-emit an expression in canonical parenthesized notation."""
    if isinstance(expr, list):
        return '(' + ' '.join(to_source(e) for e in expr) + ')'
    return str(expr)


def to_string(value: Any) -> str:
    """Render a value in Lisp notation, the way the terminal shows it."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return TRUE_TOKEN if value else FALSE_TOKEN
    if isinstance(value, list):
        return '(' + ' '.join(to_string(item) for item in value) + ')'
    return str(value)


# Built-in operations that need no host collaborator

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _expect_arity(symbol: str, args: List[Any], count: int):
    if len(args) != count:
        raise ArityError(f"{symbol} expects {count} argument(s), got {len(args)}")


def _reduce_numbers(func: Callable, symbol: str, args: List[Any], identity: Any = None) -> Any:
    if not args:
        if identity is None:
            raise ArityError(f"{symbol} requires at least 1 argument")
        return identity
    for arg in args:
        if not _is_number(arg):
            raise EvaluationError(f"{symbol}: expected a number, got {to_string(arg)}", arg)
    try:
        return reduce(func, args)
    except ZeroDivisionError:
        raise EvaluationError(f"{symbol}: division by zero") from None
    except OverflowError:
        raise EvaluationError(f"{symbol}: numeric overflow", args) from None


def _divide(x, y):
    # Exact integer division stays an integer
    if isinstance(x, int) and isinstance(y, int) and y != 0 and x % y == 0:
        return x // y
    return x / y


def _add(args: List[Any]) -> Any:
    if any(isinstance(arg, str) for arg in args):
        try:
            return ''.join(to_string(arg) for arg in args)
        except ValueError as e:
            raise EvaluationError(f"+: {e}", args) from None
    return _reduce_numbers(operator.add, '+', args, 0)


def _comparison(func: Callable, symbol: str) -> Callable[[List[Any]], bool]:
    def compare(args):
        _expect_arity(symbol, args, 2)
        try:
            return func(args[0], args[1])
        except TypeError:
            raise EvaluationError(
                f"{symbol}: cannot compare {to_string(args[0])} and {to_string(args[1])}"
            ) from None
    return compare


def _not(args: List[Any]) -> bool:
    _expect_arity('not', args, 1)
    return not args[0]


def _and(args: List[Any]) -> Any:
    for arg in args:
        if not arg:
            return arg
    return args[-1] if args else True


def _or(args: List[Any]) -> Any:
    for arg in args:
        if arg:
            return arg
    return args[-1] if args else False


def _expect_list(symbol: str, value: Any) -> list:
    if not isinstance(value, list):
        raise EvaluationError(f"{symbol}: expected a list, got {to_string(value)}", value)
    return value


def _cons(args: List[Any]) -> list:
    _expect_arity('cons', args, 2)
    return [args[0], args[1]]


def _car(args: List[Any]) -> Any:
    _expect_arity('car', args, 1)
    items = _expect_list('car', args[0])
    if not items:
        raise EvaluationError("car: empty list", items)
    return items[0]


def _cdr(args: List[Any]) -> list:
    _expect_arity('cdr', args, 1)
    return _expect_list('cdr', args[0])[1:]


_PURE_BUILTINS: Dict[Builtin, Callable[[List[Any]], Any]] = {
    Builtin.ADD: _add,
    Builtin.SUB: lambda args: _reduce_numbers(operator.sub, '-', args),
    Builtin.MUL: lambda args: _reduce_numbers(operator.mul, '*', args, 1),
    Builtin.DIV: lambda args: _reduce_numbers(_divide, '/', args),
    Builtin.EQ: _comparison(operator.eq, '='),
    Builtin.GT: _comparison(operator.gt, '>'),
    Builtin.LT: _comparison(operator.lt, '<'),
    Builtin.GE: _comparison(operator.ge, '>='),
    Builtin.LE: _comparison(operator.le, '<='),
    Builtin.EQUAL: _comparison(operator.eq, '=='),
    Builtin.NOT_EQUAL: _comparison(operator.ne, '!='),
    Builtin.NOT: _not,
    Builtin.AND: _and,
    Builtin.OR: _or,
    Builtin.CONS: _cons,
    Builtin.CAR: _car,
    Builtin.CDR: _cdr,
    Builtin.LIST: list,
}


def _text_argument(symbol: str, value: Any) -> str:
    if not isinstance(value, str):
        raise EvaluationError(f"{symbol}: expected a path, got {to_string(value)}", value)
    return value


class Evaluator:
    """
    Reduces expression trees to values.

    The evaluator holds the host collaborators used by the filesystem
    built-ins and tracks nesting depth so runaway recursion surfaces as a
    RecursionDepthError instead of exhausting the interpreter stack.
    """

    def __init__(self, filesystem=None, prompt: Optional[PromptDisplay] = None,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 prompt_format: str = DEFAULT_PROMPT_FORMAT):
        self.filesystem = filesystem
        self.prompt = prompt
        self.max_depth = max_depth
        self.prompt_format = prompt_format
        self._depth = 0

        self._special_forms = {
            SpecialForm.IF: self._eval_if,
            SpecialForm.COND: self._eval_cond,
            SpecialForm.QUOTE: self._eval_quote,
            SpecialForm.BEGIN: self._eval_begin,
            SpecialForm.DEFINE: self._eval_define,
            SpecialForm.LAMBDA: self._eval_lambda,
        }
        self._host_builtins = {
            Builtin.LS: self._ls,
            Builtin.CD: self._cd,
            Builtin.READ: self._read,
            Builtin.EXEC: self._exec,
            Builtin.MKDIR: self._mkdir,
            Builtin.PWD: self._pwd,
            Builtin.WRITE: self._write,
            Builtin.TOUCH: self._touch,
        }

    def evaluate(self, expr: Any, env: Environment) -> Any:
        """Evaluate an expression in an environment."""
        if self._depth >= self.max_depth:
            raise RecursionDepthError(
                f"Maximum evaluation depth ({self.max_depth}) exceeded", expr)

        self._depth += 1
        try:
            return self._evaluate(expr, env)
        except RecursionError:
            raise RecursionDepthError("Interpreter stack exhausted", expr) from None
        finally:
            self._depth -= 1

    def _evaluate(self, expr: Any, env: Environment) -> Any:
        if isinstance(expr, Symbol):
            return self._evaluate_symbol(expr, env)

        if isinstance(expr, list):
            if not expr:
                return []
            return self._evaluate_sequence(expr, env)

        # Numbers, and values placed in operator position by the host
        return expr

    def _evaluate_symbol(self, expr: Symbol, env: Environment) -> Any:
        name = expr.name
        if name == TRUE_TOKEN:
            return True
        if name == FALSE_TOKEN:
            return False
        if name.startswith(QUOTE_MARKER):
            return name[len(QUOTE_MARKER):]

        frame = env.find(name)
        if frame is not None:
            return frame.bindings[name]
        if name in _BUILTINS:
            return _BUILTINS[name]
        raise UnboundSymbolError(f"Undefined variable: {name}", expr)

    def _evaluate_sequence(self, expr: list, env: Environment) -> Any:
        head, operands = expr[0], expr[1:]

        if isinstance(head, Symbol):
            form = _SPECIAL_FORMS.get(head.name)
            if form is not None:
                return self._special_forms[form](operands, env)

            builtin = _BUILTINS.get(head.name)
            if builtin is not None:
                return self.apply_builtin(builtin, self._evaluate_operands(operands, env), env)

        # User symbol or computed operator position
        procedure = self.evaluate(head, env)
        return self.apply(procedure, operands, env, expr)

    def _evaluate_operands(self, operands: List[Any], env: Environment) -> List[Any]:
        """Evaluate operands left to right; each must produce a value."""
        values = []
        for operand in operands:
            value = self.evaluate(operand, env)
            if value is None:
                raise EvaluationError(f'Cannot evaluate token "{to_source(operand)}"', operand)
            values.append(value)
        return values

    def apply(self, procedure: Any, operands: List[Any], env: Environment,
              expr: Any = None) -> Any:
        """Apply an operator value to unevaluated operands."""
        if isinstance(procedure, Closure):
            return self._apply_closure(procedure, operands, env)
        if isinstance(procedure, Builtin):
            return self.apply_builtin(procedure, self._evaluate_operands(operands, env), env)
        raise EvaluationError(f"Cannot call non-procedure: {to_string(procedure)}", expr)

    def _apply_closure(self, closure: Closure, operands: List[Any], env: Environment) -> Any:
        params = closure.params
        if len(operands) < len(params):
            raise ArityError(
                f"Not enough arguments passed to lambda: expected ({' '.join(params)}) "
                f"but received {len(operands)}",
                closure)

        # Operands past the parameter list are ignored
        args = self._evaluate_operands(operands[:len(params)], env)
        frame = closure.env.new_child()
        for name, value in zip(params, args):
            frame.define(name, value)
        return self.evaluate(closure.body, frame)

    def apply_builtin(self, builtin: Builtin, args: List[Any], env: Environment) -> Any:
        """Apply a built-in operator to already evaluated operands."""
        handler = _PURE_BUILTINS.get(builtin)
        if handler is not None:
            return handler(args)
        return self._host_builtins[builtin](args, env)

    # Special forms

    def _eval_quote(self, operands: List[Any], env: Environment) -> Any:
        if len(operands) != 1:
            raise EvaluationError("quote requires exactly 1 argument")
        return operands[0]

    def _eval_if(self, operands: List[Any], env: Environment) -> Any:
        if len(operands) != 3:
            raise EvaluationError("if requires a test, a consequent and an alternative")
        test, consequent, alternative = operands
        if self.evaluate(test, env):
            return self.evaluate(consequent, env)
        return self.evaluate(alternative, env)

    def _eval_cond(self, operands: List[Any], env: Environment) -> Any:
        for clause in operands:
            if not isinstance(clause, list) or len(clause) != 2:
                raise EvaluationError(
                    f"Each cond clause must be a (test result) pair: {to_source(clause)}", clause)

            test, result = clause
            if test == Symbol(ELSE_TOKEN) or self.evaluate(test, env):
                return self.evaluate(result, env)

        # No clause matched
        return None

    def _eval_begin(self, operands: List[Any], env: Environment) -> Any:
        result = None
        for expr in operands:
            result = self.evaluate(expr, env)
        return result

    def _eval_define(self, operands: List[Any], env: Environment) -> None:
        if len(operands) != 2:
            raise EvaluationError("define requires exactly 2 arguments")
        name = operands[0]
        if not _is_variable(name):
            raise EvaluationError(
                f"First argument to define must be a symbol: {to_source(name)}", name)
        env.define(name.name, self.evaluate(operands[1], env))
        return None

    def _eval_lambda(self, operands: List[Any], env: Environment) -> Closure:
        if len(operands) < 2:
            raise EvaluationError("lambda requires parameters and body")
        params = operands[0]
        if not isinstance(params, list) or not all(_is_variable(p) for p in params):
            raise EvaluationError(
                f"Lambda parameters must be a list of symbols: {to_source(params)}", params)

        body = operands[1] if len(operands) == 2 else [Symbol('begin')] + operands[1:]
        closure = Closure(tuple(p.name for p in params), body, env)
        logger.debug("Closure created: %r, env_id=%s", closure, id(env))
        return closure

    # Filesystem built-ins

    def _require_filesystem(self, symbol: str):
        if self.filesystem is None:
            raise EvaluationError(f"{symbol}: no filesystem attached")
        return self.filesystem

    def _ls(self, args: List[Any], env: Environment) -> List[str]:
        fs = self._require_filesystem('ls')
        if len(args) > 1:
            raise ArityError(f"ls expects at most 1 argument, got {len(args)}")
        path = _text_argument('ls', args[0]) if args else None
        return fs.list_files(path)

    def _cd(self, args: List[Any], env: Environment) -> None:
        fs = self._require_filesystem('cd')
        _expect_arity('cd', args, 1)
        path = fs.navigate(_text_argument('cd', args[0]))
        logger.debug("Changed directory to %s", path)
        if self.prompt is not None:
            self.prompt.set_prompt(self.prompt_format.format(cwd=path))
        return None

    def _read(self, args: List[Any], env: Environment) -> str:
        fs = self._require_filesystem('read')
        _expect_arity('read', args, 1)
        return fs.read_file(_text_argument('read', args[0]))

    def _exec(self, args: List[Any], env: Environment) -> Any:
        """Run a stored script in the global environment, whoever calls it."""
        fs = self._require_filesystem('exec')
        _expect_arity('exec', args, 1)
        path = _text_argument('exec', args[0])
        contents = fs.read_file(path)

        logger.debug("Executing %s in the global environment", path)
        global_env = env.root()
        result = None
        for expr in parse_program(contents):
            result = self.evaluate(expr, global_env)
        return result

    def _mkdir(self, args: List[Any], env: Environment) -> None:
        fs = self._require_filesystem('mkdir')
        _expect_arity('mkdir', args, 1)
        fs.make_dir(_text_argument('mkdir', args[0]))
        return None

    def _pwd(self, args: List[Any], env: Environment) -> str:
        fs = self._require_filesystem('pwd')
        _expect_arity('pwd', args, 0)
        return fs.cwd

    def _write(self, args: List[Any], env: Environment) -> None:
        fs = self._require_filesystem('write')
        _expect_arity('write', args, 2)
        fs.save_file(_text_argument('write', args[0]), to_string(args[1]))
        return None

    def _touch(self, args: List[Any], env: Environment) -> None:
        fs = self._require_filesystem('touch')
        _expect_arity('touch', args, 1)
        fs.new_file(_text_argument('touch', args[0]))
        return None


def _is_variable(expr: Any) -> bool:
    """True for a Symbol that is neither a string literal nor a boolean."""
    return (isinstance(expr, Symbol)
            and not expr.name.startswith(QUOTE_MARKER)
            and expr.name not in (TRUE_TOKEN, FALSE_TOKEN))


class Interpreter:
    """Owns a global environment and evaluates source text in it."""

    def __init__(self, filesystem=None, prompt: Optional[PromptDisplay] = None,
                 max_depth: int = DEFAULT_MAX_DEPTH,
                 prompt_format: str = DEFAULT_PROMPT_FORMAT):
        self.evaluator = Evaluator(filesystem, prompt, max_depth, prompt_format)
        self.global_env = Environment()

    def evaluate(self, expr: Any, env: Optional[Environment] = None) -> Any:
        return self.evaluator.evaluate(expr, self.global_env if env is None else env)

    def eval_string(self, code: str) -> Any:
        """Evaluate every form in code; return the value of the last one."""
        result = None
        for expr in parse_program(code):
            result = self.evaluator.evaluate(expr, self.global_env)
        return result
