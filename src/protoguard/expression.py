"""Compilation and caching of constraint expressions.

Constraint expressions use a side-effect free subset of Python expression
syntax. An expression is parsed and checked once against the set of
variables it may reference (its variable contract), then compiled to a code
object that can be evaluated any number of times, from any thread, with
different bindings for those variables:

    programs = ProgramCache()
    program = programs.compile("this >= 0", ("this",))
    program.evaluate({"this": 42})  # True

Evaluating a program yields either True (or an empty string), meaning the
rule is satisfied, or False (or a non-empty string carrying a message),
meaning it is not.
"""

import ast
import builtins
import logging
import threading
from dataclasses import dataclass, field
from types import CodeType
from typing import Any, Dict, Mapping, Optional, Sequence, Set, Tuple, Union

from typing_extensions import TypeAlias

from protoguard.errors import CompilationError, RuntimeEvaluationError
from protoguard.formats import FUNCTIONS

logger = logging.getLogger(__name__)

Variables: TypeAlias = Tuple[str, ...]

THIS = "this"
RULE = "rule"
NOW = "now"

FIELD_VARIABLES: Variables = (THIS, NOW)
MESSAGE_VARIABLES: Variables = (THIS, NOW)
STANDARD_VARIABLES: Variables = (THIS, RULE, NOW)

ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.keyword,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Constant,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.List,
    ast.Tuple,
    ast.Set,
    ast.Dict,
    ast.ListComp,
    ast.SetComp,
    ast.GeneratorExp,
    ast.comprehension,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.And,
    ast.Or,
    ast.Not,
    ast.Invert,
    ast.UAdd,
    ast.USub,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.FloorDiv,
    ast.Mod,
    ast.Pow,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
)

# Methods that can be called on values bound to expressions. All of them are
# pure methods of str, bytes and dict.
ALLOWED_METHODS = frozenset(
    [
        "count",
        "endswith",
        "find",
        "get",
        "isascii",
        "items",
        "keys",
        "lower",
        "split",
        "startswith",
        "strip",
        "upper",
        "values",
    ]
)


@dataclass(frozen=True)
class Program:
    """Compiled form of a constraint expression.

    Programs are immutable and hold no state between evaluations, a single
    instance is shared by every rule declaring the same expression.
    """

    source: str
    variables: Variables
    code: CodeType = field(repr=False, compare=False)

    def evaluate(self, bindings: Mapping[str, Any]) -> Union[bool, str]:
        """Evaluate the program with the given variable bindings.

        Returns:
            True or an empty string if the expression is satisfied, False or
            a non-empty message if it is not.

        Raises:
            RuntimeEvaluationError: If a declared variable is not bound, the
                expression raised an error, or it produced a value that is
                neither a bool nor a string.
        """
        missing = [name for name in self.variables if name not in bindings]
        if missing:
            raise RuntimeEvaluationError(
                f"unbound variable(s) {', '.join(missing)} in expression {self.source!r}"
            )
        # Bindings are globals so that comprehension bodies can see them.
        scope = {"__builtins__": {}, **FUNCTIONS}
        scope.update((name, bindings[name]) for name in self.variables)
        try:
            result = eval(self.code, scope)
        except builtins.RecursionError:
            # Stack exhaustion is reported by the evaluator.
            raise
        except Exception as e:
            raise RuntimeEvaluationError(
                f"error evaluating expression {self.source!r}: {type(e).__name__}: {e}"
            ) from e
        if isinstance(result, (bool, str)):
            return result
        raise RuntimeEvaluationError(
            f"expression {self.source!r} must evaluate to bool or str, got {type(result).__name__}"
        )


def compile_expression(source: str, variables: Sequence[str]) -> Program:
    """Compile an expression that may reference the given variables.

    Raises:
        CompilationError: If the source has a syntax error, uses a construct
            outside of the expression language, or references names that are
            neither declared variables nor library functions.
    """
    if not source.strip():
        raise CompilationError("expression is empty", source)
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise CompilationError(
            f"syntax error in expression {source!r}: {e.msg}", source
        ) from None

    checker = _Checker(source, set(variables))
    checker.visit(tree)

    code = compile(tree, f"<expression {source!r}>", "eval")
    return Program(source=source, variables=tuple(variables), code=code)


class _Checker(ast.NodeVisitor):
    """Rejects syntax outside of the expression language and references to
    undeclared names."""

    def __init__(self, source: str, variables: Set[str]):
        self.source = source
        self.scopes = [variables | set(FUNCTIONS)]

    def fail(self, node: ast.AST, reason: str):
        raise CompilationError(
            f"{reason} at column {getattr(node, 'col_offset', 0)} of expression {self.source!r}",
            self.source,
        )

    def generic_visit(self, node: ast.AST):
        if not isinstance(node, ALLOWED_NODES):
            self.fail(node, f"unsupported syntax {type(node).__name__}")
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name):
        if node.id.startswith("_"):
            self.fail(node, f"reference to private name {node.id!r}")
        if isinstance(node.ctx, ast.Load) and not any(
            node.id in scope for scope in self.scopes
        ):
            self.fail(node, f"undeclared reference to {node.id!r}")

    def visit_Attribute(self, node: ast.Attribute):
        if node.attr.startswith("_"):
            self.fail(node, f"access to private attribute {node.attr!r}")
        self.visit(node.value)

    def visit_Call(self, node: ast.Call):
        func = node.func
        if isinstance(func, ast.Name):
            if func.id not in FUNCTIONS:
                self.fail(node, f"call to unknown function {func.id!r}")
        elif isinstance(func, ast.Attribute):
            if func.attr not in ALLOWED_METHODS:
                self.fail(node, f"call to unsupported method {func.attr!r}")
            self.visit(func.value)
        else:
            self.fail(node, "call to a computed function")
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                self.fail(arg, "unsupported argument unpacking")
            self.visit(arg)
        for keyword in node.keywords:
            if keyword.arg is None:
                self.fail(keyword.value, "unsupported keyword argument unpacking")
            self.visit(keyword.value)

    def _visit_comprehension(self, node, *elements: ast.AST):
        # Targets of each generator are visible to the following generators
        # and to the element expressions.
        self.scopes.append(set())
        try:
            for generator in node.generators:
                self.visit(generator.iter)
                for target in ast.walk(generator.target):
                    if isinstance(target, ast.Name):
                        if target.id.startswith("_"):
                            self.fail(target, f"private name {target.id!r}")
                        self.scopes[-1].add(target.id)
                    elif not isinstance(target, (ast.Tuple, ast.Store)):
                        self.fail(target, "unsupported comprehension target")
                for condition in generator.ifs:
                    self.visit(condition)
                if generator.is_async:
                    self.fail(generator, "unsupported async comprehension")
            for element in elements:
                self.visit(element)
        finally:
            self.scopes.pop()

    def visit_ListComp(self, node: ast.ListComp):
        self._visit_comprehension(node, node.elt)

    def visit_SetComp(self, node: ast.SetComp):
        self._visit_comprehension(node, node.elt)

    def visit_GeneratorExp(self, node: ast.GeneratorExp):
        self._visit_comprehension(node, node.elt)


_Entry: TypeAlias = Union[Program, CompilationError]


class ProgramCache:
    """Memoizes compiled programs by expression source and variable contract.

    Compilation failures are cached as well, so that an invalid expression
    is compiled only once and every later attempt raises the very same
    CompilationError. Lookups do not lock. Concurrent first compilations of
    the same expression may both run, but only the first one stored is ever
    returned.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, Variables], _Entry] = {}
        self._lock = threading.Lock()

    def compile(self, source: str, variables: Sequence[str]) -> Program:
        """Returns the program compiled from source for the given variables.

        Raises:
            CompilationError: If the expression does not compile. The same
                error instance is raised for every call with that key.
        """
        key = (source, tuple(variables))
        entry = self._entries.get(key)
        if entry is None:
            entry = self._compile(key)
        if isinstance(entry, CompilationError):
            raise entry.with_traceback(None)
        return entry

    def _compile(self, key: Tuple[str, Variables]) -> _Entry:
        source, variables = key
        logger.debug("compiling expression %r with variables %s", source, variables)
        entry: _Entry
        try:
            entry = compile_expression(source, variables)
        except CompilationError as e:
            logger.debug("expression %r failed to compile: %s", source, e)
            entry = e
        with self._lock:
            return self._entries.setdefault(key, entry)

    def get(self, source: str, variables: Sequence[str]) -> Optional[_Entry]:
        """Returns the cached entry for the key, without compiling."""
        return self._entries.get((source, tuple(variables)))

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
