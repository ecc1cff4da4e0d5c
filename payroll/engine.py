"""
Payroll preview computation.

Everything here works on plain snapshots and concept definitions, so a run can
be computed, inspected and tested without touching the database. Per worker
the phases are fixed: earnings, then deductions, then employer contributions,
each in ascending concept order. ``TOTAL_EARNINGS`` becomes visible only after
the earnings phase has finished.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from django.conf import settings

from .concepts import (
    BASIC_SALARY,
    CONTRACT_SALARY,
    LATE_MINUTES,
    OVERTIME_HOURS,
    PENSION_SYSTEM,
    TOTAL_EARNINGS,
    WORKED_DAYS,
    YEARS_OF_SERVICE,
    ConceptDefinition,
    VariableContext,
    evaluate_concept,
)
from .exceptions import NoActiveConcepts, NoEligibleWorkers
from .models import Concept, PayrollRun
from .utils import ZERO, fits_money, period_bounds, round_money, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_PAYROLL_TYPE_MULTIPLIERS = {
    PayrollRun.TYPE_REGULAR: Decimal("1"),
    PayrollRun.TYPE_YEAR_END_BONUS: Decimal("1"),
    PayrollRun.TYPE_GRATIFICATION: Decimal("1"),
    PayrollRun.TYPE_SEVERANCE_ACCRUAL: Decimal("1.17"),
}

# Inputs not supplied by any external source yet; policy values, not measurements.
DEFAULT_CONTEXT_VALUES = {
    OVERTIME_HOURS: Decimal("0"),
    WORKED_DAYS: Decimal("30"),
    LATE_MINUTES: Decimal("0"),
}


def payroll_type_multiplier(payroll_type: str) -> Decimal:
    multipliers = getattr(settings, "PAYROLL_TYPE_MULTIPLIERS", None) or DEFAULT_PAYROLL_TYPE_MULTIPLIERS
    return to_decimal(multipliers.get(payroll_type), Decimal("1"))


def context_defaults() -> Dict[str, Decimal]:
    values = dict(DEFAULT_CONTEXT_VALUES)
    for name, value in (getattr(settings, "PAYROLL_CONTEXT_DEFAULTS", None) or {}).items():
        values[name] = to_decimal(value)
    return values


def years_of_service(hire_date: Optional[date], as_of: date) -> int:
    if not hire_date or hire_date > as_of:
        return 0
    return (as_of - hire_date).days // 365


@dataclass(frozen=True)
class WorkerSnapshot:
    id: Any
    employee_code: str
    full_name: str
    basic_salary: Decimal
    national_id: str = ""
    job_title: str = ""
    staff_category: str = ""
    hire_date: Optional[date] = None
    pension_system: str = ""

    @classmethod
    def from_employee(cls, employee) -> "WorkerSnapshot":
        return cls(
            id=employee.id,
            employee_code=employee.employee_id,
            full_name=employee.full_name,
            basic_salary=to_decimal(employee.basic_salary),
            national_id=employee.national_id_number or "",
            job_title=employee.job_title or "",
            staff_category=employee.staff_category,
            hire_date=employee.hire_date,
            pension_system=employee.pension_system or "",
        )


@dataclass
class ConceptCatalog:
    earnings: List[ConceptDefinition] = field(default_factory=list)
    deductions: List[ConceptDefinition] = field(default_factory=list)
    contributions: List[ConceptDefinition] = field(default_factory=list)

    @classmethod
    def from_definitions(cls, definitions: Iterable[ConceptDefinition]) -> "ConceptCatalog":
        groups: Dict[str, List[ConceptDefinition]] = {
            Concept.TYPE_EARNING: [],
            Concept.TYPE_DEDUCTION: [],
            Concept.TYPE_EMPLOYER_CONTRIBUTION: [],
        }
        for definition in definitions:
            if definition.concept_type in groups:
                groups[definition.concept_type].append(definition)
        for items in groups.values():
            items.sort(key=lambda item: (item.order, item.code))
        return cls(
            earnings=groups[Concept.TYPE_EARNING],
            deductions=groups[Concept.TYPE_DEDUCTION],
            contributions=groups[Concept.TYPE_EMPLOYER_CONTRIBUTION],
        )

    def __len__(self):
        return len(self.earnings) + len(self.deductions) + len(self.contributions)

    def is_empty(self) -> bool:
        return len(self) == 0


@dataclass
class ConceptApplication:
    concept_id: Any
    code: str
    name: str
    concept_type: str
    value: Decimal


@dataclass
class WorkerPayrollLine:
    worker_id: Any
    basic_salary: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    total_contributions: Decimal
    net_pay: Decimal
    concepts: List[ConceptApplication] = field(default_factory=list)
    employee_code: str = ""
    national_id: str = ""
    full_name: str = ""
    job_title: str = ""


@dataclass
class RunTotals:
    worker_count: int = 0
    total_earnings: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_contributions: Decimal = ZERO
    total_net: Decimal = ZERO

    @classmethod
    def from_lines(cls, lines: Sequence[WorkerPayrollLine]) -> "RunTotals":
        return cls(
            worker_count=len(lines),
            total_earnings=round_money(sum((to_decimal(line.total_earnings) for line in lines), ZERO)),
            total_deductions=round_money(sum((to_decimal(line.total_deductions) for line in lines), ZERO)),
            total_contributions=round_money(sum((to_decimal(line.total_contributions) for line in lines), ZERO)),
            total_net=round_money(sum((to_decimal(line.net_pay) for line in lines), ZERO)),
        )


@dataclass
class PayrollRunResult:
    period: str
    payroll_type: str
    personnel_scope: str
    totals: RunTotals
    lines: List[WorkerPayrollLine]
    status: str = PayrollRun.STATUS_PREVIEW


class PayrollPreviewCalculator:
    def __init__(
        self,
        *,
        period: str,
        payroll_type: str,
        multiplier: Optional[Decimal] = None,
        defaults: Optional[Mapping[str, Decimal]] = None,
    ):
        self.period = period
        self.payroll_type = payroll_type
        _, self.period_end = period_bounds(period)
        self.multiplier = payroll_type_multiplier(payroll_type) if multiplier is None else to_decimal(multiplier)
        self.defaults = dict(context_defaults() if defaults is None else defaults)

    def build_context(self, worker: WorkerSnapshot, basic_salary: Decimal) -> VariableContext:
        values = dict(self.defaults)
        values.update(
            {
                BASIC_SALARY: basic_salary,
                CONTRACT_SALARY: basic_salary,
                YEARS_OF_SERVICE: Decimal(years_of_service(worker.hire_date, self.period_end)),
                PENSION_SYSTEM: worker.pension_system,
                TOTAL_EARNINGS: ZERO,
            }
        )
        return VariableContext(values)

    def _apply_phase(
        self,
        concepts: Sequence[ConceptDefinition],
        context: VariableContext,
    ) -> Tuple[List[ConceptApplication], Decimal]:
        applications: List[ConceptApplication] = []
        total = ZERO
        for concept in concepts:
            value = evaluate_concept(concept, context)
            if value == ZERO:
                continue
            if not fits_money(total + value):
                logger.warning("Concept %s evaluated to 0: phase total exceeds the money range", concept.code)
                continue
            applications.append(
                ConceptApplication(
                    concept_id=concept.id,
                    code=concept.code,
                    name=concept.name,
                    concept_type=concept.concept_type,
                    value=value,
                )
            )
            total += value
        return applications, round_money(total)

    def calculate_worker(self, worker: WorkerSnapshot, catalog: ConceptCatalog) -> WorkerPayrollLine:
        basic_salary = to_decimal(worker.basic_salary) * self.multiplier
        context = self.build_context(worker, basic_salary)

        earnings, total_earnings = self._apply_phase(catalog.earnings, context)
        context = context.with_total_earnings(total_earnings)
        deductions, total_deductions = self._apply_phase(catalog.deductions, context)
        contributions, total_contributions = self._apply_phase(catalog.contributions, context)

        return WorkerPayrollLine(
            worker_id=worker.id,
            employee_code=worker.employee_code,
            national_id=worker.national_id,
            full_name=worker.full_name,
            job_title=worker.job_title,
            basic_salary=round_money(basic_salary),
            total_earnings=total_earnings,
            total_deductions=total_deductions,
            total_contributions=total_contributions,
            net_pay=round_money(total_earnings - total_deductions),
            concepts=earnings + deductions + contributions,
        )

    def run(
        self,
        workers: Sequence[WorkerSnapshot],
        catalog: ConceptCatalog,
        *,
        personnel_scope: str = PayrollRun.SCOPE_ALL,
    ) -> PayrollRunResult:
        if not workers:
            raise NoEligibleWorkers()
        if catalog.is_empty():
            raise NoActiveConcepts()
        lines = [self.calculate_worker(worker, catalog) for worker in workers]
        return PayrollRunResult(
            period=self.period,
            payroll_type=self.payroll_type,
            personnel_scope=personnel_scope,
            totals=RunTotals.from_lines(lines),
            lines=lines,
        )
