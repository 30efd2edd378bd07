"""Condition Evaluator - Safe evaluation of decision and trigger conditions"""
import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Set, Tuple

from ..domain.errors import ConditionEvaluationError, ConditionSyntaxError
from ..utils.time import parse_iso, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Token(NamedTuple):
    kind: str  # NUMBER, STRING, LITERAL, PATH, COMPARATOR, ARITH, AND, OR, NOT, LPAREN, RPAREN, COMMA, EOF
    value: Any
    position: int


COMPARATORS = ("==", "!=", "<=", ">=", "<", ">")
ARITHMETIC = ("+", "-", "*", "/")
KEYWORD_LITERALS = {"true": True, "false": False, "null": None}
KEYWORD_OPERATORS = {"AND": "AND", "OR": "OR", "NOT": "NOT"}

# name -> (min args, max args or None)
FUNCTIONS: Dict[str, Tuple[int, Optional[int]]] = {
    "contains": (2, 2),
    "length": (1, 1),
    "abs": (1, 1),
    "round": (1, 1),
    "min": (1, None),
    "max": (1, None),
    "isBusinessDay": (0, 1),
    "hasPermission": (1, 1),
}

# Snake-case names used by request workflows, mapped to their context location
SHORTCUTS: Dict[str, Tuple[str, str]] = {
    "total_value": ("requestData", "totalValue"),
    "category_id": ("requestData", "categoryId"),
    "category_name": ("requestData", "categoryName"),
    "site_id": ("requestData", "siteId"),
    "site_name": ("requestData", "siteName"),
    "area_id": ("requestData", "areaId"),
    "area_name": ("requestData", "areaName"),
    "requestor_id": ("requestData", "requestorId"),
    "requestor_name": ("requestData", "requestorName"),
    "user_role": ("user", "role"),
    "user_id": ("user", "id"),
    "all_items_in_stock": ("stockData", "allItemsInStock"),
    "out_of_stock_items": ("stockData", "outOfStockItems"),
}

# Sections searched for a leading name the context root does not have
FALLBACK_SCOPES = ("requestData", "user", "stockData")

_NUMBER_RE = re.compile(r"\d+(\.\d+)?")
_PATH_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

# Tokens after which a '-' is a binary position and cannot start a number
_VALUE_TOKENS = ("NUMBER", "STRING", "LITERAL", "PATH", "RPAREN")


class ConditionEvaluator:
    """
    Evaluate condition expressions against an execution context

    Closed language, no eval() or exec():
        comparisons   == != < <= > >=
        combinators   && || !   (or AND OR NOT)
        arithmetic    + - * /   (numbers only)
        operands      dotted paths, numbers, quoted strings, true/false/null
        functions     contains length abs round min max isBusinessDay hasPermission
        grouping      ( ... )

    The leading name of a path is looked up at the context root, then in
    SHORTCUTS, then in requestData, user and stockData. Paths that do not
    resolve evaluate to null. Equality is strict: no coercion between
    numbers, strings and booleans. Ordering comparisons involving null are
    false, and arithmetic on null yields null; other type mismatches raise
    ConditionEvaluationError.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    def evaluate(self, expression: str, context: Dict[str, Any]) -> bool:
        """
        Evaluate an expression to a boolean

        Raises:
            ConditionSyntaxError: Malformed expression
            ConditionEvaluationError: Incompatible operand types
        """
        ast = self.parse(expression)
        return self._truthy(self._eval(ast, context or {}, expression))

    def validate(self, expression: str) -> None:
        """Parse without evaluating, raising ConditionSyntaxError if malformed"""
        self.parse(expression)

    def is_valid(self, expression: str) -> Tuple[bool, Optional[str]]:
        """Return (valid, error message)"""
        try:
            self.parse(expression)
            return True, None
        except ConditionSyntaxError as e:
            return False, e.message

    def extract_variables(self, expression: str) -> List[str]:
        """List the context paths an expression reads, in order of first use"""
        seen: Set[str] = set()
        result: List[str] = []
        tokens = self._tokenize(expression)
        for token, following in zip(tokens, tokens[1:]):
            if token.kind != "PATH" or following.kind == "LPAREN":
                continue
            if token.value not in seen:
                seen.add(token.value)
                result.append(token.value)
        return result

    def parse(self, expression: str) -> tuple:
        if not isinstance(expression, str) or not expression.strip():
            raise ConditionSyntaxError(
                "Condition expression is empty",
                details={"expression": expression}
            )
        parser = _Parser(self._tokenize(expression), expression)
        return parser.parse()

    # ------------------------------------------------------------------
    # Tokenizer
    # ------------------------------------------------------------------

    def _tokenize(self, expression: str) -> List[Token]:
        tokens: List[Token] = []
        pos = 0
        length = len(expression)

        while pos < length:
            char = expression[pos]

            if char.isspace():
                pos += 1
                continue

            if char.isdigit() or (
                char == "-"
                and pos + 1 < length
                and expression[pos + 1].isdigit()
                and (not tokens or tokens[-1].kind not in _VALUE_TOKENS)
            ):
                start = pos
                if char == "-":
                    pos += 1
                match = _NUMBER_RE.match(expression, pos)
                text = expression[start:match.end()]
                value = float(text) if "." in text else int(text)
                tokens.append(Token("NUMBER", value, start))
                pos = match.end()
                continue

            if char in ("'", '"'):
                value, pos = self._read_string(expression, pos)
                tokens.append(Token("STRING", value, pos))
                continue

            if char.isalpha() or char == "_":
                match = _PATH_RE.match(expression, pos)
                if match is None or expression[match.end():match.end() + 1] == ".":
                    raise ConditionSyntaxError(
                        f"Invalid path at position {pos}",
                        details={"expression": expression, "position": pos}
                    )
                word = match.group(0)
                if word in KEYWORD_LITERALS:
                    tokens.append(Token("LITERAL", KEYWORD_LITERALS[word], pos))
                elif word in KEYWORD_OPERATORS:
                    tokens.append(Token(KEYWORD_OPERATORS[word], word, pos))
                else:
                    tokens.append(Token("PATH", word, pos))
                pos = match.end()
                continue

            two = expression[pos:pos + 2]
            if two in ("&&", "||"):
                tokens.append(Token("AND" if two == "&&" else "OR", two, pos))
                pos += 2
                continue
            if two in COMPARATORS:
                tokens.append(Token("COMPARATOR", two, pos))
                pos += 2
                continue
            if char in ("<", ">"):
                tokens.append(Token("COMPARATOR", char, pos))
                pos += 1
                continue
            if char in ARITHMETIC:
                tokens.append(Token("ARITH", char, pos))
                pos += 1
                continue
            if char == "!":
                tokens.append(Token("NOT", char, pos))
                pos += 1
                continue
            if char == "(":
                tokens.append(Token("LPAREN", char, pos))
                pos += 1
                continue
            if char == ")":
                tokens.append(Token("RPAREN", char, pos))
                pos += 1
                continue
            if char == ",":
                tokens.append(Token("COMMA", char, pos))
                pos += 1
                continue

            raise ConditionSyntaxError(
                f"Unexpected character '{char}' at position {pos}",
                details={"expression": expression, "position": pos}
            )

        tokens.append(Token("EOF", None, length))
        return tokens

    def _read_string(self, expression: str, start: int) -> Tuple[str, int]:
        quote = expression[start]
        pos = start + 1
        chars: List[str] = []
        while pos < len(expression):
            char = expression[pos]
            if char == "\\":
                if pos + 1 >= len(expression):
                    break
                escaped = expression[pos + 1]
                chars.append(_ESCAPES.get(escaped, escaped))
                pos += 2
                continue
            if char == quote:
                return "".join(chars), pos + 1
            chars.append(char)
            pos += 1
        raise ConditionSyntaxError(
            f"Unterminated string starting at position {start}",
            details={"expression": expression, "position": start}
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _eval(self, node: tuple, context: Dict[str, Any], expression: str) -> Any:
        kind = node[0]

        if kind == "literal":
            return node[1]

        if kind == "path":
            return self._get_path_value(node[1], context)

        if kind == "not":
            return not self._truthy(self._eval(node[1], context, expression))

        if kind == "and":
            return (
                self._truthy(self._eval(node[1], context, expression))
                and self._truthy(self._eval(node[2], context, expression))
            )

        if kind == "or":
            return (
                self._truthy(self._eval(node[1], context, expression))
                or self._truthy(self._eval(node[2], context, expression))
            )

        if kind == "compare":
            left = self._eval(node[2], context, expression)
            right = self._eval(node[3], context, expression)
            return self._compare(node[1], left, right, expression)

        if kind == "neg":
            value = self._eval(node[1], context, expression)
            if value is None:
                return None
            self._require_number(value, "-", expression)
            return -value

        if kind == "arith":
            left = self._eval(node[2], context, expression)
            right = self._eval(node[3], context, expression)
            return self._arithmetic(node[1], left, right, expression)

        if kind == "call":
            args = [self._eval(arg, context, expression) for arg in node[2]]
            return self._call(node[1], args, context, expression)

        raise ConditionEvaluationError(f"Unknown expression node '{kind}'")

    def _get_path_value(self, path: str, context: Dict[str, Any]) -> Any:
        """
        Resolve a dotted path against the context

        Example: "requestData.totalValue" -> context["requestData"]["totalValue"]
                 "total_value"            -> context["requestData"]["totalValue"]
                 "priority"               -> context["requestData"]["priority"]
        """
        head, *rest = path.split(".")
        value = self._resolve_name(head, context)
        for part in rest:
            if isinstance(value, dict):
                value = value.get(part)
            else:
                return None
        return value

    def _resolve_name(self, name: str, context: Dict[str, Any]) -> Any:
        if name in context:
            return context[name]

        if name in SHORTCUTS:
            scope, key = SHORTCUTS[name]
            section = context.get(scope)
            return section.get(key) if isinstance(section, dict) else None

        for scope in FALLBACK_SCOPES:
            section = context.get(scope)
            if isinstance(section, dict) and name in section:
                return section[name]
        return None

    def _compare(self, operator: str, left: Any, right: Any, expression: str) -> bool:
        if operator == "==":
            return self._strict_equals(left, right)
        if operator == "!=":
            return not self._strict_equals(left, right)

        if left is None or right is None:
            return False

        if self._is_number(left) and self._is_number(right):
            pass
        elif isinstance(left, str) and isinstance(right, str):
            pass
        else:
            raise ConditionEvaluationError(
                f"Cannot compare {type(left).__name__} {operator} {type(right).__name__}",
                details={"expression": expression, "left": repr(left), "right": repr(right)}
            )

        if operator == "<":
            return left < right
        if operator == "<=":
            return left <= right
        if operator == ">":
            return left > right
        return left >= right

    def _arithmetic(self, operator: str, left: Any, right: Any, expression: str) -> Any:
        if left is None or right is None:
            return None
        self._require_number(left, operator, expression)
        self._require_number(right, operator, expression)

        if operator == "+":
            return left + right
        if operator == "-":
            return left - right
        if operator == "*":
            return left * right
        if right == 0:
            raise ConditionEvaluationError(
                "Division by zero",
                details={"expression": expression}
            )
        return left / right

    def _call(self, name: str, args: List[Any], context: Dict[str, Any], expression: str) -> Any:
        if name == "contains":
            haystack, needle = args
            if isinstance(haystack, str) and isinstance(needle, str):
                return needle in haystack
            if isinstance(haystack, list):
                return any(self._strict_equals(item, needle) for item in haystack)
            return False

        if name == "length":
            value = args[0]
            return len(value) if isinstance(value, (list, str, dict)) else 0

        if name in ("abs", "round"):
            value = args[0]
            if value is None:
                return None
            self._require_number(value, name, expression)
            if name == "abs":
                return abs(value)
            # Half-up, not Python's banker's rounding
            return int(math.floor(value + 0.5))

        if name in ("min", "max"):
            if any(value is None for value in args):
                return None
            for value in args:
                self._require_number(value, name, expression)
            return min(args) if name == "min" else max(args)

        if name == "isBusinessDay":
            return self._to_datetime(args[0] if args else None, expression).weekday() < 5

        if name == "hasPermission":
            user = context.get("user")
            permissions = user.get("permissions") if isinstance(user, dict) else None
            return isinstance(permissions, list) and args[0] in permissions

        raise ConditionEvaluationError(f"Unknown function '{name}'", details={"expression": expression})

    def _to_datetime(self, value: Any, expression: str) -> datetime:
        if not value:
            return self.clock()
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return parse_iso(value)
            except ValueError as e:
                raise ConditionEvaluationError(
                    f"Not a date: {value!r}",
                    details={"expression": expression}
                ) from e
        raise ConditionEvaluationError(
            f"Not a date: {value!r}",
            details={"expression": expression}
        )

    def _require_number(self, value: Any, operator: str, expression: str) -> None:
        if not self._is_number(value):
            raise ConditionEvaluationError(
                f"Operator {operator} needs numbers, got {type(value).__name__}",
                details={"expression": expression, "value": repr(value)}
            )

    def _strict_equals(self, left: Any, right: Any) -> bool:
        # bool is an int subclass; keep true != 1
        if isinstance(left, bool) or isinstance(right, bool):
            return isinstance(left, bool) and isinstance(right, bool) and left == right
        if self._is_number(left) and self._is_number(right):
            return left == right
        if type(left) is not type(right):
            return False
        return left == right

    def _is_number(self, value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)

    def _truthy(self, value: Any) -> bool:
        return bool(value)


class _Parser:
    """Recursive descent parser producing a tuple AST"""

    def __init__(self, tokens: List[Token], expression: str):
        self.tokens = tokens
        self.expression = expression
        self.index = 0

    def parse(self) -> tuple:
        node = self._parse_or()
        if self._peek().kind != "EOF":
            self._fail(f"Unexpected token '{self._peek().value}'")
        return node

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _fail(self, message: str) -> None:
        token = self._peek()
        raise ConditionSyntaxError(
            f"{message} at position {token.position}",
            details={"expression": self.expression, "position": token.position}
        )

    def _parse_or(self) -> tuple:
        node = self._parse_and()
        while self._peek().kind == "OR":
            self._advance()
            node = ("or", node, self._parse_and())
        return node

    def _parse_and(self) -> tuple:
        node = self._parse_not()
        while self._peek().kind == "AND":
            self._advance()
            node = ("and", node, self._parse_not())
        return node

    def _parse_not(self) -> tuple:
        if self._peek().kind == "NOT":
            self._advance()
            return ("not", self._parse_not())
        return self._parse_comparison()

    def _parse_comparison(self) -> tuple:
        left = self._parse_additive()
        if self._peek().kind != "COMPARATOR":
            return left
        operator = self._advance().value
        right = self._parse_additive()
        if self._peek().kind == "COMPARATOR":
            self._fail("Chained comparison needs parentheses")
        return ("compare", operator, left, right)

    def _parse_additive(self) -> tuple:
        node = self._parse_multiplicative()
        while self._peek().kind == "ARITH" and self._peek().value in ("+", "-"):
            operator = self._advance().value
            node = ("arith", operator, node, self._parse_multiplicative())
        return node

    def _parse_multiplicative(self) -> tuple:
        node = self._parse_unary()
        while self._peek().kind == "ARITH" and self._peek().value in ("*", "/"):
            operator = self._advance().value
            node = ("arith", operator, node, self._parse_unary())
        return node

    def _parse_unary(self) -> tuple:
        if self._peek().kind == "ARITH" and self._peek().value == "-":
            self._advance()
            return ("neg", self._parse_unary())
        return self._parse_operand()

    def _parse_operand(self) -> tuple:
        token = self._peek()

        if token.kind == "LPAREN":
            self._advance()
            node = self._parse_or()
            if self._peek().kind != "RPAREN":
                self._fail("Expected ')'")
            self._advance()
            return node

        if token.kind in ("NUMBER", "STRING", "LITERAL"):
            self._advance()
            return ("literal", token.value)

        if token.kind == "PATH":
            if self.tokens[self.index + 1].kind == "LPAREN":
                return self._parse_call()
            self._advance()
            return ("path", token.value)

        if token.kind == "EOF":
            self._fail("Unexpected end of expression")
        self._fail(f"Unexpected token '{token.value}'")

    def _parse_call(self) -> tuple:
        name = self._peek().value
        if name not in FUNCTIONS:
            self._fail(f"Unknown function '{name}'")
        self._advance()
        self._advance()

        args: List[tuple] = []
        if self._peek().kind != "RPAREN":
            args.append(self._parse_or())
            while self._peek().kind == "COMMA":
                self._advance()
                args.append(self._parse_or())
        if self._peek().kind != "RPAREN":
            self._fail("Expected ')'")

        minimum, maximum = FUNCTIONS[name]
        if len(args) < minimum or (maximum is not None and len(args) > maximum):
            self._fail(f"Wrong number of arguments to {name}()")
        self._advance()
        return ("call", name, args)


_default_evaluator = ConditionEvaluator()


def evaluate_condition(expression: str, context: Dict[str, Any]) -> bool:
    """Evaluate with the shared evaluator"""
    return _default_evaluator.evaluate(expression, context)


def validate_condition(expression: str) -> Tuple[bool, Optional[str]]:
    """Check an expression's syntax without raising"""
    return _default_evaluator.is_valid(expression)
