from rest_framework import status
from rest_framework.exceptions import APIException


class PayrollError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Payroll request could not be processed."
    default_code = "payroll_error"


class InvalidPeriod(PayrollError):
    default_detail = "Period must use the YYYY-MM format with a month between 01 and 12."
    default_code = "invalid_period"


class InvalidPayrollType(PayrollError):
    default_detail = "Unknown payroll type."
    default_code = "invalid_payroll_type"


class InvalidPersonnelScope(PayrollError):
    default_detail = "Unknown personnel scope."
    default_code = "invalid_personnel_scope"


class NoEligibleWorkers(PayrollError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "No active workers found for the requested personnel scope."
    default_code = "no_eligible_workers"


class NoActiveConcepts(PayrollError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "No active payroll concepts are configured."
    default_code = "no_active_concepts"


class EmptyDetail(PayrollError):
    default_detail = "A payroll must include at least one worker line."
    default_code = "empty_detail"


class CommitConflict(PayrollError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A payroll has already been committed for this period and payroll type."
    default_code = "commit_conflict"


class PersistenceFailure(PayrollError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "An internal error occurred while saving the payroll."
    default_code = "persistence_failure"


class ConceptEvaluationFailure(Exception):
    """Raised inside concept evaluation; never leaves the concept evaluator."""
