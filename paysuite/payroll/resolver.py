"""Ordered resolution of a salary template against a variable context."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Sequence

from paysuite.common.constants import ComponentNature
from paysuite.payroll.evaluator import FormulaEvaluationError, evaluate_strict
from paysuite.payroll.ports import ComponentDefinition, EngineOptions

GROSS_INCOME_VAR = "grossIncome"
TOTAL_DEDUCTION_VAR = "totalDeduction"
KPI_MONEY_VAR = "kpi_money"
COMMISSION_FALLBACK_FORMULA = "{kpi_money}"
# Payslip money columns hold at most 13 integer digits, rounding included.
MAX_COMPONENT_VALUE = 10 ** 13 - 1


@dataclass
class Resolution:
    details: dict[str, float] = field(default_factory=dict)
    gross_income: float = 0.0
    total_deduction: float = 0.0
    net_salary: float = 0.0
    warnings: list[str] = field(default_factory=list)


def round_money(value: float, decimals: int = 0) -> float:
    """Round half-up to *decimals* places (``8461538.46`` → ``8461538``)."""
    quantum = Decimal(1).scaleb(-decimals)
    rounded = Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded) + 0.0


def pick_formula(component: ComponentDefinition, options: EngineOptions) -> str | None:
    """Return the expression to evaluate, or ``None`` to use the fixed value.

    Commission components with no formula (or a bare ``0``) fall back to the
    KPI money input instead of resolving to zero.
    """
    formula = (component.formula or "").strip()
    if formula and formula != "0":
        return formula
    if component.code in options.commission_codes:
        return COMMISSION_FALLBACK_FORMULA
    return formula or None


def resolve(
    components: Sequence[ComponentDefinition],
    base_context: Mapping[str, float],
    options: EngineOptions | None = None,
) -> Resolution:
    """Evaluate *components* strictly in order.

    Each result is rounded, stored under its code and fed back into the
    context so later formulas can reference it. ``grossIncome`` and
    ``totalDeduction`` are updated after every component. A formula that
    fails to evaluate resolves to ``0`` and adds a warning.
    """
    options = options or EngineOptions()
    context: dict[str, float] = dict(base_context)
    result = Resolution()
    context[GROSS_INCOME_VAR] = 0.0
    context[TOTAL_DEDUCTION_VAR] = 0.0

    for component in components:
        formula = pick_formula(component, options)
        if formula is not None:
            try:
                value = evaluate_strict(formula, context)
            except FormulaEvaluationError as exc:
                value = 0.0
                result.warnings.append(
                    f"Component {component.code}: {exc.reason} in formula "
                    f"{component.formula!r}; treated as 0."
                )
        elif component.fixed_value is not None:
            value = float(component.fixed_value)
        else:
            value = 0.0

        if abs(value) >= MAX_COMPONENT_VALUE:
            result.warnings.append(
                f"Component {component.code}: value {value:.0f} exceeds the payslip limit; "
                "treated as 0."
            )
            value = 0.0

        value = round_money(value, options.money_decimals)
        result.details[component.code] = value
        context[component.code] = value

        if component.nature == ComponentNature.income:
            result.gross_income = round_money(result.gross_income + value, options.money_decimals)
        elif component.nature == ComponentNature.deduction:
            result.total_deduction = round_money(
                result.total_deduction + value, options.money_decimals,
            )
        context[GROSS_INCOME_VAR] = result.gross_income
        context[TOTAL_DEDUCTION_VAR] = result.total_deduction

    if options.net_pay_code in result.details:
        result.net_salary = result.details[options.net_pay_code]
    else:
        result.net_salary = round_money(
            result.gross_income - result.total_deduction, options.money_decimals,
        )
    return result
