import logging
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from . import formula
from .exceptions import ConceptEvaluationFailure
from .utils import ZERO, fits_money, round_money, to_decimal

logger = logging.getLogger(__name__)

BASIC_SALARY = "BASIC_SALARY"
CONTRACT_SALARY = "CONTRACT_SALARY"
YEARS_OF_SERVICE = "YEARS_OF_SERVICE"
OVERTIME_HOURS = "OVERTIME_HOURS"
WORKED_DAYS = "WORKED_DAYS"
LATE_MINUTES = "LATE_MINUTES"
PENSION_SYSTEM = "PENSION_SYSTEM"
TOTAL_EARNINGS = "TOTAL_EARNINGS"

HUNDRED = Decimal("100")


@dataclass(frozen=True, eq=False)
class VariableContext:
    """Read-only variables for one worker in one run; derive, never mutate."""

    values: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, name: str):
        return self.values[name]

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default=None):
        return self.values.get(name, default)

    def with_values(self, **updates) -> "VariableContext":
        merged = dict(self.values)
        merged.update(updates)
        return VariableContext(merged)

    def with_total_earnings(self, total) -> "VariableContext":
        return self.with_values(**{TOTAL_EARNINGS: to_decimal(total)})


@dataclass(frozen=True)
class FixedRule:
    value: Optional[Decimal] = None

    def evaluate(self, context: VariableContext) -> Decimal:
        return to_decimal(self.value)


@dataclass(frozen=True)
class PercentageRule:
    rate: Optional[Decimal] = None

    def evaluate(self, context: VariableContext) -> Decimal:
        total_earnings = to_decimal(context.get(TOTAL_EARNINGS))
        if total_earnings > ZERO:
            base = total_earnings
        else:
            base = to_decimal(context.get(BASIC_SALARY))
        return base * to_decimal(self.rate) / HUNDRED


@dataclass(frozen=True)
class FormulaRule:
    expression: str = ""

    def evaluate(self, context: VariableContext) -> Decimal:
        return formula.evaluate(self.expression, context.values)


@dataclass(frozen=True)
class ManualRule:
    """Manually entered per worker outside bulk computation."""

    def evaluate(self, context: VariableContext) -> Decimal:
        return ZERO


@dataclass(frozen=True)
class UnsupportedRule:
    calculation_type: str

    def evaluate(self, context: VariableContext) -> Decimal:
        raise ConceptEvaluationFailure(f"Unsupported calculation type {self.calculation_type!r}")


Rule = Union[FixedRule, PercentageRule, FormulaRule, ManualRule, UnsupportedRule]


@dataclass(frozen=True)
class ConceptDefinition:
    id: Any
    code: str
    name: str
    concept_type: str
    rule: Rule
    order: int = 0


def evaluate_concept(concept: ConceptDefinition, context: VariableContext) -> Decimal:
    """Value of ``concept`` for one worker, rounded to cents. Failures are logged and count as 0."""
    try:
        value = concept.rule.evaluate(context)
        if not isinstance(value, Decimal) or not value.is_finite():
            raise ConceptEvaluationFailure(f"Non-numeric result {value!r}")
        if value < ZERO:
            return ZERO
        if not fits_money(value) or not fits_money(round_money(value)):
            raise ConceptEvaluationFailure(f"Result {value} exceeds the money range")
        return round_money(value)
    except ConceptEvaluationFailure as exc:
        logger.warning("Concept %s evaluated to 0: %s", concept.code, exc)
        return ZERO
    except Exception:
        logger.exception("Concept %s evaluation failed; contributing 0.", concept.code)
        return ZERO
