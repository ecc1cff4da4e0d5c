"""
Arithmetic formula evaluation for formula-driven payroll concepts.

Formulas are tokenized against a fixed allowlist and evaluated by a small
recursive-descent parser. Supported syntax:

    numbers, + - * /, unary + -, parentheses
    < <= > >= == != && || !   cond ? a : b
    IF(cond, a, b)  MAX(a, b)  MIN(a, b)  ABS(a)  ROUND(a)

Identifiers are looked up in the variable mapping as whole words. Anything
outside the allowlist (unknown identifiers, categorical variables, stray
characters) makes the whole formula evaluate to 0.
"""
import logging
import re
from decimal import Decimal, ROUND_FLOOR
from typing import List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
HALF = Decimal("0.5")

FUNCTION_ARITY = {
    "IF": 3,
    "MAX": 2,
    "MIN": 2,
    "ABS": 1,
    "ROUND": 1,
}

COMPARISON_OPERATORS = ("<", "<=", ">", ">=", "==", "!=")

TOKEN_RE = re.compile(
    r"""
    (?P<number>[0-9]+(?:\.[0-9]+)?|\.[0-9]+)
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<op><=|>=|==|!=|&&|\|\||[-+*/()<>!?:,])
    """,
    re.VERBOSE,
)

NUMBER = "number"
FUNC = "func"
OP = "op"
END = "end"

Token = Tuple[str, object]


class FormulaError(ValueError):
    pass


def _as_number(name: str, value) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise FormulaError(f"Variable {name} is not numeric")
    number = Decimal(str(value))
    if not number.is_finite():
        raise FormulaError(f"Variable {name} is not finite")
    return number


def tokenize(expression: str, variables: Mapping[str, object]) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    length = len(expression)
    while pos < length:
        if expression[pos].isspace():
            pos += 1
            continue
        match = TOKEN_RE.match(expression, pos)
        if not match:
            raise FormulaError(f"Disallowed character {expression[pos]!r} at position {pos}")
        kind = match.lastgroup
        text = match.group(kind)
        if kind == "number":
            tokens.append((NUMBER, Decimal(text)))
        elif kind == "name":
            if text in FUNCTION_ARITY:
                tokens.append((FUNC, text))
            elif text in variables:
                tokens.append((NUMBER, _as_number(text, variables[text])))
            else:
                raise FormulaError(f"Unknown identifier {text}")
        else:
            tokens.append((OP, text))
        pos = match.end()
    tokens.append((END, None))
    return tokens


class _Parser:
    """Builds a tuple tree from tokens; evaluation happens afterwards so IF stays lazy."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.index = 0

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _next(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, op: str) -> bool:
        kind, value = self._peek()
        if kind == OP and value == op:
            self.index += 1
            return True
        return False

    def _expect(self, op: str):
        if not self._accept(op):
            raise FormulaError(f"Expected {op!r}")

    def parse(self):
        node = self._ternary()
        if self._peek()[0] != END:
            raise FormulaError("Unexpected trailing input")
        return node

    def _ternary(self):
        condition = self._or()
        if self._accept("?"):
            when_true = self._ternary()
            self._expect(":")
            when_false = self._ternary()
            return ("cond", condition, when_true, when_false)
        return condition

    def _or(self):
        node = self._and()
        while self._accept("||"):
            node = ("or", node, self._and())
        return node

    def _and(self):
        node = self._not()
        while self._accept("&&"):
            node = ("and", node, self._not())
        return node

    def _not(self):
        if self._accept("!"):
            return ("not", self._not())
        return self._comparison()

    def _comparison(self):
        node = self._additive()
        kind, value = self._peek()
        if kind == OP and value in COMPARISON_OPERATORS:
            self.index += 1
            node = ("cmp", value, node, self._additive())
        return node

    def _additive(self):
        node = self._term()
        while True:
            kind, value = self._peek()
            if kind == OP and value in ("+", "-"):
                self.index += 1
                node = ("bin", value, node, self._term())
            else:
                return node

    def _term(self):
        node = self._unary()
        while True:
            kind, value = self._peek()
            if kind == OP and value in ("*", "/"):
                self.index += 1
                node = ("bin", value, node, self._unary())
            else:
                return node

    def _unary(self):
        if self._accept("-"):
            return ("neg", self._unary())
        if self._accept("+"):
            return self._unary()
        return self._primary()

    def _primary(self):
        kind, value = self._next()
        if kind == NUMBER:
            return ("num", value)
        if kind == FUNC:
            self._expect("(")
            args = [self._ternary()]
            while self._accept(","):
                args.append(self._ternary())
            self._expect(")")
            if len(args) != FUNCTION_ARITY[value]:
                raise FormulaError(f"{value} expects {FUNCTION_ARITY[value]} argument(s)")
            return ("call", value, args)
        if kind == OP and value == "(":
            node = self._ternary()
            self._expect(")")
            return node
        raise FormulaError("Unexpected token")


def _truth(value: Decimal) -> bool:
    return value != ZERO


def _flag(value: bool) -> Decimal:
    return ONE if value else ZERO


def _compare(op: str, left: Decimal, right: Decimal) -> bool:
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    if op == "==":
        return left == right
    return left != right


def _evaluate_node(node) -> Decimal:
    kind = node[0]
    if kind == "num":
        return node[1]
    if kind == "neg":
        return -_evaluate_node(node[1])
    if kind == "bin":
        _, op, left, right = node
        a, b = _evaluate_node(left), _evaluate_node(right)
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        return a / b
    if kind == "cmp":
        _, op, left, right = node
        return _flag(_compare(op, _evaluate_node(left), _evaluate_node(right)))
    if kind == "not":
        return _flag(not _truth(_evaluate_node(node[1])))
    if kind == "and":
        return _flag(_truth(_evaluate_node(node[1])) and _truth(_evaluate_node(node[2])))
    if kind == "or":
        return _flag(_truth(_evaluate_node(node[1])) or _truth(_evaluate_node(node[2])))
    if kind == "cond":
        _, condition, when_true, when_false = node
        return _evaluate_node(when_true if _truth(_evaluate_node(condition)) else when_false)
    if kind == "call":
        _, name, args = node
        if name == "IF":
            return _evaluate_node(args[1] if _truth(_evaluate_node(args[0])) else args[2])
        values = [_evaluate_node(arg) for arg in args]
        if name == "MAX":
            return max(values)
        if name == "MIN":
            return min(values)
        if name == "ABS":
            return abs(values[0])
        # Halves round toward positive infinity: ROUND(-2.5) is -2.
        return (values[0] + HALF).to_integral_value(rounding=ROUND_FLOOR)
    raise FormulaError(f"Unknown node {kind}")


def parse(expression: str, variables: Optional[Mapping[str, object]] = None):
    return _Parser(tokenize(expression, variables or {})).parse()


def evaluate(expression, variables: Optional[Mapping[str, object]] = None) -> Decimal:
    """
    Evaluate ``expression`` with ``variables``; returns 0 for anything malformed.

    Negative and non-finite results are clamped to 0.
    """
    if not expression or not isinstance(expression, str) or not expression.strip():
        return ZERO
    try:
        result = _evaluate_node(parse(expression, variables))
    except FormulaError as exc:
        logger.warning("Formula rejected: %r (%s)", expression, exc)
        return ZERO
    except (ArithmeticError, RecursionError) as exc:
        logger.warning("Formula evaluation failed: %r (%s)", expression, exc)
        return ZERO
    if not result.is_finite() or result < ZERO:
        return ZERO
    return result
