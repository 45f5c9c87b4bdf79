"""Sandboxed arithmetic evaluator for salary-component formulas.

A formula is plain arithmetic over numeric literals and variable names:
``+ - * /``, unary sign and parentheses. A leading ``=`` is ignored.
Variables may be written bare (``base_salary``) or braced
(``{base_salary}``); both resolve the same way and unknown names count
as ``0``. Anything else (calls, attribute access, subscripts, comparisons,
``**``) is rejected.

Names are resolved as whole tokens of the parsed expression, never by
text replacement, so ``base`` can never clobber part of ``base_salary``.
"""

from __future__ import annotations

import ast
import keyword
import math
import operator
import re
from typing import Mapping

FORMULA_MARKER = "="
MAX_FORMULA_LENGTH = 2000

_BRACED_REF = re.compile(r"\{([^{}]*)\}")
# Braced references to Python keywords (``{pass}``, ``{None}``) parse under
# this prefix and are looked up under their original name.
_KEYWORD_ALIAS = "_kw_"

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class FormulaEvaluationError(ValueError):
    """Raised by :func:`evaluate_strict` for formulas that cannot be evaluated."""

    def __init__(self, formula: str, reason: str) -> None:
        self.formula = formula
        self.reason = reason
        super().__init__(f"cannot evaluate {formula!r}: {reason}")


def _unbrace(match: re.Match) -> str:
    name = match.group(1).strip()
    if not name.isidentifier():
        return "0"
    if keyword.iskeyword(name):
        return _KEYWORD_ALIAS + name
    return name


def _variable_name(name: str) -> str:
    if name.startswith(_KEYWORD_ALIAS) and keyword.iskeyword(name[len(_KEYWORD_ALIAS):]):
        return name[len(_KEYWORD_ALIAS):]
    return name


def normalize(formula: str) -> str:
    """Strip the formula marker and turn ``{name}`` references into bare names."""
    expression = (formula or "").strip()
    if expression.startswith(FORMULA_MARKER):
        expression = expression[len(FORMULA_MARKER):].strip()
    return _BRACED_REF.sub(_unbrace, expression)


def _eval_node(node: ast.AST, variables: Mapping[str, float], formula: str) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body, variables, formula)
    if isinstance(node, ast.Constant):
        if type(node.value) in (int, float):
            return float(node.value)
        raise FormulaEvaluationError(formula, f"unsupported literal {node.value!r}")
    if isinstance(node, ast.Name):
        return float(variables.get(_variable_name(node.id), 0) or 0)
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left, variables, formula)
        right = _eval_node(node.right, variables, formula)
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand, variables, formula))
    raise FormulaEvaluationError(formula, f"unsupported syntax {type(node).__name__}")


def _parse(formula: str) -> ast.Expression | None:
    expression = normalize(formula)
    if not expression:
        return None
    if len(expression) > MAX_FORMULA_LENGTH:
        raise FormulaEvaluationError(formula, "formula too long")
    try:
        return ast.parse(expression, mode="eval")
    except (SyntaxError, ValueError, RecursionError, MemoryError) as exc:
        raise FormulaEvaluationError(formula, f"invalid syntax ({exc.__class__.__name__})") from exc


def _check_node(node: ast.AST, formula: str) -> None:
    if isinstance(node, ast.Expression):
        _check_node(node.body, formula)
    elif isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return
    elif isinstance(node, ast.Name):
        return
    elif isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        _check_node(node.left, formula)
        _check_node(node.right, formula)
    elif isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        _check_node(node.operand, formula)
    else:
        raise FormulaEvaluationError(formula, f"unsupported syntax {type(node).__name__}")


def check_syntax(formula: str) -> None:
    """Raise :class:`FormulaEvaluationError` unless *formula* is allowed arithmetic.

    Only the structure is checked; nothing is evaluated.
    """
    tree = _parse(formula)
    if tree is not None:
        _check_node(tree, formula)


def evaluate_strict(formula: str, variables: Mapping[str, float]) -> float:
    """Evaluate *formula* against *variables*.

    An empty formula is ``0``. Raises :class:`FormulaEvaluationError` for
    syntax errors, disallowed constructs, division by zero and non-finite
    results.
    """
    tree = _parse(formula)
    if tree is None:
        return 0.0

    try:
        result = _eval_node(tree, variables, formula)
    except ZeroDivisionError as exc:
        raise FormulaEvaluationError(formula, "division by zero") from exc
    except (OverflowError, RecursionError) as exc:
        raise FormulaEvaluationError(formula, "numeric overflow") from exc

    if not math.isfinite(result):
        raise FormulaEvaluationError(formula, "result is not finite")
    return result


def evaluate(formula: str, variables: Mapping[str, float]) -> float:
    """Never-raising form of :func:`evaluate_strict`; failures yield ``0``."""
    try:
        return evaluate_strict(formula, variables)
    except FormulaEvaluationError:
        return 0.0
