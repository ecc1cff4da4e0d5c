import logging
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from employees.models import Employee
from employees.services import get_active_employees, is_valid_personnel_scope

from .engine import (
    ConceptCatalog,
    PayrollPreviewCalculator,
    PayrollRunResult,
    RunTotals,
    WorkerPayrollLine,
    WorkerSnapshot,
)
from .exceptions import (
    CommitConflict,
    EmptyDetail,
    InvalidPayrollType,
    InvalidPersonnelScope,
    PersistenceFailure,
)
from .models import Concept, PayrollRun, PayrollRunConcept, PayrollRunLine
from .utils import ZERO, parse_period, round_money, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_BATCH_SIZE = 500


def _commit_batch_size() -> int:
    try:
        size = int(getattr(settings, "PAYROLL_COMMIT_BATCH_SIZE", DEFAULT_COMMIT_BATCH_SIZE))
    except (TypeError, ValueError):
        return DEFAULT_COMMIT_BATCH_SIZE
    return size if size > 0 else DEFAULT_COMMIT_BATCH_SIZE


def _validate_run_request(period: str, payroll_type: str, personnel_scope: str) -> None:
    parse_period(period)
    if payroll_type not in dict(PayrollRun.TYPE_CHOICES):
        raise InvalidPayrollType()
    if not is_valid_personnel_scope(personnel_scope):
        raise InvalidPersonnelScope()


def load_concept_catalog() -> ConceptCatalog:
    concepts = Concept.objects.filter(is_active=True).order_by("order", "code")
    return ConceptCatalog.from_definitions(concept.to_definition() for concept in concepts)


def load_worker_snapshots(personnel_scope: str = PayrollRun.SCOPE_ALL) -> List[WorkerSnapshot]:
    return [WorkerSnapshot.from_employee(employee) for employee in get_active_employees(personnel_scope)]


def compute_preview(
    *,
    period: str,
    payroll_type: str = PayrollRun.TYPE_REGULAR,
    personnel_scope: str = PayrollRun.SCOPE_ALL,
) -> PayrollRunResult:
    """Compute a payroll run for every eligible worker without persisting anything."""
    _validate_run_request(period, payroll_type, personnel_scope)
    calculator = PayrollPreviewCalculator(period=period, payroll_type=payroll_type)
    result = calculator.run(
        load_worker_snapshots(personnel_scope),
        load_concept_catalog(),
        personnel_scope=personnel_scope,
    )
    logger.info(
        "Payroll preview computed: period=%s type=%s scope=%s workers=%s net=%s",
        period,
        payroll_type,
        personnel_scope,
        result.totals.worker_count,
        result.totals.total_net,
    )
    return result


def _committed_run_exists(period: str, payroll_type: str) -> bool:
    return PayrollRun.objects.filter(
        period=period,
        payroll_type=payroll_type,
        status=PayrollRun.STATUS_COMMITTED,
    ).exists()


def _validate_lines(lines: Sequence[WorkerPayrollLine]) -> Dict[str, Employee]:
    errors = []
    seen = set()
    for index, line in enumerate(lines):
        worker_key = str(line.worker_id)
        if worker_key in seen:
            errors.append(f"Line {index + 1}: worker {worker_key} appears more than once.")
        seen.add(worker_key)
        expected_net = round_money(to_decimal(line.total_earnings) - to_decimal(line.total_deductions))
        if round_money(line.net_pay) != expected_net:
            errors.append(
                f"Line {index + 1}: net pay {line.net_pay} does not equal earnings minus deductions ({expected_net})."
            )
    if errors:
        raise ValidationError({"detail": errors})

    employees = {str(employee.id): employee for employee in Employee.objects.filter(id__in=list(seen))}
    missing_workers = sorted(seen - set(employees))
    if missing_workers:
        raise ValidationError({"detail": f"Unknown workers: {', '.join(missing_workers)}."})

    concept_ids = {str(item.concept_id) for line in lines for item in line.concepts}
    known_concepts = {str(pk) for pk in Concept.objects.filter(id__in=list(concept_ids)).values_list("id", flat=True)}
    missing_concepts = sorted(concept_ids - known_concepts)
    if missing_concepts:
        raise ValidationError({"detail": f"Unknown concepts: {', '.join(missing_concepts)}."})
    return employees


def _build_rows(run: PayrollRun, chunk: Iterable[WorkerPayrollLine], employees: Dict[str, Employee]):
    line_rows = []
    concept_rows = []
    for line in chunk:
        employee = employees[str(line.worker_id)]
        line_row = PayrollRunLine(
            run=run,
            employee=employee,
            employee_code=line.employee_code or employee.employee_id,
            full_name=line.full_name or employee.full_name,
            basic_salary=round_money(line.basic_salary),
            total_earnings=round_money(line.total_earnings),
            total_deductions=round_money(line.total_deductions),
            total_contributions=round_money(line.total_contributions),
            net_pay=round_money(line.net_pay),
        )
        line_rows.append(line_row)
        for position, item in enumerate(line.concepts):
            amount = round_money(item.value)
            if amount == ZERO:
                continue
            concept_rows.append(
                PayrollRunConcept(
                    line=line_row,
                    concept_id=item.concept_id,
                    code=item.code,
                    name=item.name,
                    concept_type=item.concept_type,
                    amount=amount,
                    position=position,
                )
            )
    return line_rows, concept_rows


def commit_payroll(
    *,
    period: str,
    payroll_type: str,
    personnel_scope: str,
    lines: Sequence[WorkerPayrollLine],
) -> UUID:
    """
    Persist a confirmed payroll run.

    Header, detail and concept rows are written in one transaction. Header
    totals are recomputed from ``lines``. Only one COMMITTED run may exist
    per (period, payroll type).
    """
    _validate_run_request(period, payroll_type, personnel_scope)
    lines = list(lines or [])
    if not lines:
        raise EmptyDetail()
    employees = _validate_lines(lines)

    if _committed_run_exists(period, payroll_type):
        logger.warning("Payroll commit refused: %s %s already committed.", period, payroll_type)
        raise CommitConflict()

    totals = RunTotals.from_lines(lines)
    batch_size = _commit_batch_size()

    try:
        with transaction.atomic():
            run = PayrollRun.objects.create(
                period=period,
                payroll_type=payroll_type,
                personnel_scope=personnel_scope,
                status=PayrollRun.STATUS_COMMITTED,
                worker_count=totals.worker_count,
                total_earnings=totals.total_earnings,
                total_deductions=totals.total_deductions,
                total_contributions=totals.total_contributions,
                total_net=totals.total_net,
                committed_at=timezone.now(),
            )
            for start in range(0, len(lines), batch_size):
                line_rows, concept_rows = _build_rows(run, lines[start:start + batch_size], employees)
                PayrollRunLine.objects.bulk_create(line_rows, batch_size=batch_size)
                PayrollRunConcept.objects.bulk_create(concept_rows, batch_size=batch_size)
    except IntegrityError:
        if _committed_run_exists(period, payroll_type):
            logger.warning("Payroll commit lost a race: %s %s already committed.", period, payroll_type)
            raise CommitConflict()
        logger.exception("Payroll commit failed for %s %s.", period, payroll_type)
        raise PersistenceFailure()
    except DatabaseError:
        logger.exception("Payroll commit failed for %s %s.", period, payroll_type)
        raise PersistenceFailure()

    logger.info(
        "Payroll committed: run=%s period=%s type=%s workers=%s net=%s",
        run.id,
        period,
        payroll_type,
        totals.worker_count,
        totals.total_net,
    )
    return run.id


def list_committed_runs(
    payroll_type: Optional[str] = None,
    period_from: Optional[str] = None,
    period_to: Optional[str] = None,
):
    qs = PayrollRun.objects.filter(status=PayrollRun.STATUS_COMMITTED)
    if payroll_type:
        if payroll_type not in dict(PayrollRun.TYPE_CHOICES):
            raise InvalidPayrollType()
        qs = qs.filter(payroll_type=payroll_type)
    if period_from:
        parse_period(period_from)
        qs = qs.filter(period__gte=period_from)
    if period_to:
        parse_period(period_to)
        qs = qs.filter(period__lte=period_to)
    return qs.order_by("-committed_at", "-period")


def get_committed_run(run_id) -> PayrollRun:
    qs = PayrollRun.objects.filter(status=PayrollRun.STATUS_COMMITTED).prefetch_related("lines__concepts")
    return get_object_or_404(qs, id=run_id)
