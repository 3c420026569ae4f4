# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
"""
Dependency expressions (depends on, visible if, default/select conditions).

Expressions are immutable trees of Symbol, Literal, Not, And, Or and Compare
nodes. They are never evaluated here; the tree is only walked to find the
symbols an expression refers to (collect_deps()).

Grammar, from the loosest to the tightest binding operator:

    expr := expr '||' expr
          | expr '&&' expr
          | operand ('=' | '!=' | '<' | '<=' | '>' | '>=') operand
          | '!' expr
          | '(' expr ')'
          | operand
"""

import re
from dataclasses import dataclass
from typing import Optional
from typing import Set
from typing import Tuple

from pyparsing import Literal as PLiteral
from pyparsing import Located
from pyparsing import ParseException
from pyparsing import ParserElement
from pyparsing import ParseResults
from pyparsing import Regex
from pyparsing import infix_notation
from pyparsing import one_of
from pyparsing import opAssoc

from .errors import KconfigParseError

ParserElement.enablePackrat(cache_size_limit=None)  # Speeds up parsing by caching intermediate results

TRISTATE_LITERALS = ("y", "m", "n")
COMPARISON_OPERATORS = ("=", "!=", "<", "<=", ">", ">=")

# Binding strength used when printing, the higher the tighter
_PREC_OR = 1
_PREC_AND = 2
_PREC_COMPARE = 3
_PREC_NOT = 4
_PREC_ATOM = 5


class Expr:
    precedence = _PREC_ATOM

    def collect_deps(self, deps: Set[str]) -> None:
        """
        Add the name of every symbol referenced by the expression to 'deps'.
        """
        raise NotImplementedError

    def _format(self, parent_precedence: int) -> str:
        text = str(self)
        if self.precedence < parent_precedence:
            return f"({text})"
        return text


@dataclass(frozen=True)
class Symbol(Expr):
    name: str

    def collect_deps(self, deps: Set[str]) -> None:
        deps.add(self.name)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Literal(Expr):
    """
    Constant operand: y/m/n, a decimal or hexadecimal number or a string.
    """

    value: str
    quoted: bool = False

    def collect_deps(self, deps: Set[str]) -> None:
        pass

    def __str__(self) -> str:
        if self.quoted:
            return '"{}"'.format(self.value.replace("\\", "\\\\").replace('"', '\\"'))
        return self.value


@dataclass(frozen=True)
class Not(Expr):
    operand: Expr
    precedence = _PREC_NOT

    def collect_deps(self, deps: Set[str]) -> None:
        self.operand.collect_deps(deps)

    def __str__(self) -> str:
        return "!" + self.operand._format(_PREC_NOT)


@dataclass(frozen=True)
class And(Expr):
    left: Expr
    right: Expr
    precedence = _PREC_AND

    def collect_deps(self, deps: Set[str]) -> None:
        self.left.collect_deps(deps)
        self.right.collect_deps(deps)

    def __str__(self) -> str:
        return f"{self.left._format(_PREC_AND)} && {self.right._format(_PREC_AND)}"


@dataclass(frozen=True)
class Or(Expr):
    left: Expr
    right: Expr
    precedence = _PREC_OR

    def collect_deps(self, deps: Set[str]) -> None:
        self.left.collect_deps(deps)
        self.right.collect_deps(deps)

    def __str__(self) -> str:
        return f"{self.left._format(_PREC_OR)} || {self.right._format(_PREC_OR)}"


@dataclass(frozen=True)
class Compare(Expr):
    op: str
    left: Expr
    right: Expr
    precedence = _PREC_COMPARE

    def collect_deps(self, deps: Set[str]) -> None:
        self.left.collect_deps(deps)
        self.right.collect_deps(deps)

    def __str__(self) -> str:
        # Operands of a comparison bind tighter than the comparison itself
        return f"{self.left._format(_PREC_NOT)} {self.op} {self.right._format(_PREC_NOT)}"


def expr_and(a: Optional[Expr], b: Optional[Expr]) -> Optional[Expr]:
    """
    AND of 'a' and 'b', where None stands for "no condition" (always true).
    """
    if a is None:
        return b
    if b is None:
        return a
    return And(a, b)


def expr_items(expr: Optional[Expr]) -> Set[str]:
    """
    Return the names of all symbols referenced by 'expr'.
    """
    deps: Set[str] = set()
    if expr is not None:
        expr.collect_deps(deps)
    return deps


############################
# Grammar
############################
def _unquote(text: str) -> str:
    res = []
    escaped = False
    for c in text[1:-1]:
        if escaped or c != "\\":
            res.append(c)
            escaped = False
        else:
            escaped = True
    return "".join(res)


def _is_number(text: str) -> bool:
    if text[:2] in ("0x", "0X"):
        return len(text) > 2
    return text.lstrip("-").isdigit()


def _make_operand(tokens: ParseResults) -> Expr:
    text = tokens[0]
    if text[0] in ('"', "'"):
        return Literal(_unquote(text), quoted=True)
    if text in TRISTATE_LITERALS or _is_number(text):
        return Literal(text)
    return Symbol(text)


def _make_not(tokens: ParseResults) -> Expr:
    return Not(tokens[0][1])


def _fold_binary(tokens: ParseResults) -> Expr:
    # [operand, op, operand, op, operand, ...], left associative
    group = tokens[0]
    res = group[0]
    for i in range(1, len(group), 2):
        op, right = group[i], group[i + 1]
        if op == "&&":
            res = And(res, right)
        elif op == "||":
            res = Or(res, right)
        else:
            res = Compare(op, res, right)
    return res


operand = Regex(
    r"""0[xX][0-9a-fA-F]+(?!\w)  # hexnums: 0x1234, 0X1234ABCD
        |-?\d+(?!\w)  # numbers: 1234, -1234
        |\w+  # symbols and y/m/n: FOO, 64BIT, y
        |"(?:[^"\\]|\\.)*"  # strings: "hello world", ""
        |'(?:[^'\\]|\\.)*'  # strings: 'hello world'
    """,
    flags=re.X,
).set_parse_action(_make_operand)

operator_with_precedence = [
    (PLiteral("!"), 1, opAssoc.RIGHT, _make_not),
    (one_of(" ".join(COMPARISON_OPERATORS)), 2, opAssoc.LEFT, _fold_binary),
    (PLiteral("&&"), 2, opAssoc.LEFT, _fold_binary),
    (PLiteral("||"), 2, opAssoc.LEFT, _fold_binary),
]

expression = infix_notation(operand, operator_with_precedence)
_located_expression = Located(expression)


def parse_expr(text: str) -> Expr:
    """
    Parse 'text', which must consist of a single expression.
    """
    try:
        return expression.parse_string(text, parse_all=True)[0]
    except ParseException as e:
        raise KconfigParseError(f"invalid expression '{text}': {e}")


def parse_expr_prefix(text: str) -> Tuple[Expr, int]:
    """
    Parse the longest expression at the start of 'text'. Returns the expression and
    the number of characters it spans, so the caller can continue after it
    (e.g. with "if COND" in "default y if COND").
    """
    try:
        result = _located_expression.parse_string(text)
    except ParseException as e:
        raise KconfigParseError(f"invalid expression '{text}': {e}")
    # Trailing whitespace is not part of the expression
    return result["value"][0], len(text[: result["locn_end"]].rstrip())
