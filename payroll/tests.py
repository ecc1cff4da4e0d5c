from datetime import date
from decimal import Decimal
from io import StringIO
from unittest.mock import patch
import uuid

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError, IntegrityError
from django.http import Http404
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIRequestFactory, force_authenticate

from employees.models import Employee
from payroll import formula
from payroll.concepts import (
    BASIC_SALARY,
    PENSION_SYSTEM,
    TOTAL_EARNINGS,
    YEARS_OF_SERVICE,
    ConceptDefinition,
    FixedRule,
    FormulaRule,
    ManualRule,
    PercentageRule,
    UnsupportedRule,
    VariableContext,
    evaluate_concept,
)
from payroll.engine import (
    ConceptApplication,
    ConceptCatalog,
    PayrollPreviewCalculator,
    WorkerSnapshot,
    years_of_service,
)
from payroll.exceptions import (
    CommitConflict,
    EmptyDetail,
    InvalidPayrollType,
    InvalidPeriod,
    InvalidPersonnelScope,
    NoActiveConcepts,
    NoEligibleWorkers,
    PersistenceFailure,
)
from payroll.models import Concept, PayrollRun, PayrollRunConcept, PayrollRunLine
from payroll.serializers import PayrollPreviewSerializer, PayrollRunRequestSerializer
from payroll.services import (
    commit_payroll,
    compute_preview,
    get_committed_run,
    list_committed_runs,
)
from payroll.utils import round_money
from payroll.views import (
    ConceptViewSet,
    PayrollCommitView,
    PayrollPreviewView,
    PayrollRunDetailView,
    PayrollRunListView,
)


def _definition(code, concept_type, rule, order=0):
    return ConceptDefinition(
        id=uuid.uuid4(),
        code=code,
        name=code.title(),
        concept_type=concept_type,
        rule=rule,
        order=order,
    )


def _worker(code, salary, hire_date=date(2020, 1, 1)):
    return WorkerSnapshot(
        id=uuid.uuid4(),
        employee_code=code,
        full_name=f"Worker {code}",
        basic_salary=Decimal(salary),
        hire_date=hire_date,
        pension_system=Employee.PENSION_AFP,
    )


class ExplodingRule:
    def evaluate(self, context):
        raise RuntimeError("boom")


class FormulaEvaluationTests(SimpleTestCase):
    def test_max_picks_the_larger_operand(self):
        self.assertEqual(formula.evaluate("MAX(BASIC_SALARY, 1000)", {BASIC_SALARY: Decimal("1500")}), Decimal("1500"))
        self.assertEqual(formula.evaluate("MAX(BASIC_SALARY, 1000)", {BASIC_SALARY: Decimal("500")}), Decimal("1000"))

    def test_operator_precedence_and_parentheses(self):
        self.assertEqual(formula.evaluate("2 + 3 * 4"), Decimal("14"))
        self.assertEqual(formula.evaluate("(2 + 3) * 4"), Decimal("20"))
        self.assertEqual(formula.evaluate("10 - -2"), Decimal("12"))

    def test_variables_are_matched_as_whole_words(self):
        variables = {"BASE": Decimal("10"), "BASE_EXTRA": Decimal("5")}
        self.assertEqual(formula.evaluate("BASE + BASE_EXTRA", variables), Decimal("15"))
        self.assertEqual(formula.evaluate("BASE_EXTRA * 2", variables), Decimal("10"))

    def test_conditionals(self):
        variables = {YEARS_OF_SERVICE: Decimal("6")}
        self.assertEqual(formula.evaluate("IF(YEARS_OF_SERVICE >= 5, 100, 50)", variables), Decimal("100"))
        self.assertEqual(formula.evaluate("YEARS_OF_SERVICE > 10 ? 1 : 2", variables), Decimal("2"))
        self.assertEqual(formula.evaluate("YEARS_OF_SERVICE > 1 && YEARS_OF_SERVICE < 3 ? 1 : 0", variables), Decimal("0"))
        self.assertEqual(formula.evaluate("!(YEARS_OF_SERVICE == 6) || 1 ? 7 : 0", variables), Decimal("7"))

    def test_if_only_evaluates_the_selected_branch(self):
        self.assertEqual(formula.evaluate("IF(1, 5, 1 / 0)"), Decimal("5"))

    def test_abs_min_and_round(self):
        self.assertEqual(formula.evaluate("ABS(3 - 10)"), Decimal("7"))
        self.assertEqual(formula.evaluate("MIN(4, 9)"), Decimal("4"))
        self.assertEqual(formula.evaluate("ROUND(10.5)"), Decimal("11"))
        self.assertEqual(formula.evaluate("ROUND(10.4)"), Decimal("10"))

    def test_round_sends_negative_halves_toward_positive_infinity(self):
        self.assertEqual(formula.evaluate("ROUND(-2.5) + 5"), Decimal("3"))
        self.assertEqual(formula.evaluate("ROUND(-2.6) + 5"), Decimal("2"))

    def test_non_ascii_digits_are_rejected(self):
        with self.assertLogs("payroll.formula", level="WARNING"):
            self.assertEqual(formula.evaluate("١٠٠ + 1"), Decimal("0"))

    def test_disallowed_tokens_evaluate_to_zero(self):
        with self.assertLogs("payroll.formula", level="WARNING"):
            self.assertEqual(formula.evaluate("__import__('os').system('ls')"), Decimal("0"))
        with self.assertLogs("payroll.formula", level="WARNING"):
            self.assertEqual(formula.evaluate("BASIC_SALARY; 1", {BASIC_SALARY: Decimal("1")}), Decimal("0"))
        with self.assertLogs("payroll.formula", level="WARNING"):
            self.assertEqual(formula.evaluate("UNKNOWN_VAR * 2"), Decimal("0"))

    def test_malformed_expressions_evaluate_to_zero(self):
        for expression in ("1 +", "MAX(1)", "(2 * 3", "IF(1, 2)", "2 3"):
            with self.subTest(expression=expression):
                with self.assertLogs("payroll.formula", level="WARNING"):
                    self.assertEqual(formula.evaluate(expression), Decimal("0"))

    def test_division_by_zero_evaluates_to_zero(self):
        with self.assertLogs("payroll.formula", level="WARNING"):
            self.assertEqual(formula.evaluate("BASIC_SALARY / 0", {BASIC_SALARY: Decimal("100")}), Decimal("0"))

    def test_negative_results_are_clamped(self):
        self.assertEqual(formula.evaluate("BASIC_SALARY - 5000", {BASIC_SALARY: Decimal("1000")}), Decimal("0"))

    def test_categorical_variable_makes_formula_zero(self):
        with self.assertLogs("payroll.formula", level="WARNING"):
            self.assertEqual(formula.evaluate("PENSION_SYSTEM == 1 ? 10 : 20", {PENSION_SYSTEM: "AFP"}), Decimal("0"))

    def test_empty_formula_is_zero(self):
        self.assertEqual(formula.evaluate(""), Decimal("0"))
        self.assertEqual(formula.evaluate("   "), Decimal("0"))
        self.assertEqual(formula.evaluate(None), Decimal("0"))


class ConceptEvaluationTests(SimpleTestCase):
    def setUp(self):
        self.context = VariableContext({BASIC_SALARY: Decimal("1000"), TOTAL_EARNINGS: Decimal("0")})

    def test_fixed_concept_ignores_context(self):
        concept = _definition("BONUS", Concept.TYPE_EARNING, FixedRule(Decimal("150.00")))
        other = VariableContext({BASIC_SALARY: Decimal("99999"), TOTAL_EARNINGS: Decimal("5")})
        self.assertEqual(evaluate_concept(concept, self.context), Decimal("150.00"))
        self.assertEqual(evaluate_concept(concept, other), Decimal("150.00"))

    def test_percentage_uses_basic_salary_before_earnings_total(self):
        concept = _definition("PCT", Concept.TYPE_EARNING, PercentageRule(Decimal("10")))
        self.assertEqual(evaluate_concept(concept, self.context), Decimal("100"))

    def test_percentage_uses_total_earnings_once_known(self):
        concept = _definition("AFP", Concept.TYPE_DEDUCTION, PercentageRule(Decimal("13")))
        context = self.context.with_total_earnings(Decimal("2000"))
        self.assertEqual(evaluate_concept(concept, context), Decimal("260"))

    def test_formula_concept_reads_context(self):
        concept = _definition("HALF", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY / 2"))
        self.assertEqual(evaluate_concept(concept, self.context), Decimal("500"))

    def test_manual_concept_is_zero(self):
        concept = _definition("MANUAL", Concept.TYPE_EARNING, ManualRule())
        self.assertEqual(evaluate_concept(concept, self.context), Decimal("0"))

    def test_unsupported_rule_contributes_zero(self):
        concept = _definition("ODD", Concept.TYPE_EARNING, UnsupportedRule("TABLE"))
        with self.assertLogs("payroll.concepts", level="WARNING"):
            self.assertEqual(evaluate_concept(concept, self.context), Decimal("0"))

    def test_unexpected_error_contributes_zero(self):
        concept = _definition("BOOM", Concept.TYPE_EARNING, ExplodingRule())
        with self.assertLogs("payroll.concepts", level="ERROR"):
            self.assertEqual(evaluate_concept(concept, self.context), Decimal("0"))

    def test_negative_fixed_value_is_clamped(self):
        concept = _definition("NEG", Concept.TYPE_EARNING, FixedRule(Decimal("-5")))
        self.assertEqual(evaluate_concept(concept, self.context), Decimal("0"))

    def test_value_is_rounded_to_cents(self):
        concept = _definition("ODD", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY / 3"))
        self.assertEqual(evaluate_concept(concept, self.context), Decimal("333.33"))

    def test_value_outside_money_range_contributes_zero(self):
        for expression in ("BASIC_SALARY * 100000000000000000000000000", "BASIC_SALARY * 1000000000000000"):
            with self.subTest(expression=expression):
                concept = _definition("HUGE", Concept.TYPE_EARNING, FormulaRule(expression))
                with self.assertLogs("payroll.concepts", level="WARNING"):
                    self.assertEqual(evaluate_concept(concept, self.context), Decimal("0"))

        edge = _definition("EDGE", Concept.TYPE_EARNING, FixedRule(Decimal("999999999999999999.999")))
        with self.assertLogs("payroll.concepts", level="WARNING"):
            self.assertEqual(evaluate_concept(edge, self.context), Decimal("0"))

    def test_context_is_read_only(self):
        with self.assertRaises(TypeError):
            self.context.values[BASIC_SALARY] = Decimal("1")
        derived = self.context.with_total_earnings(Decimal("10"))
        self.assertEqual(self.context[TOTAL_EARNINGS], Decimal("0"))
        self.assertEqual(derived[TOTAL_EARNINGS], Decimal("10"))


class PayrollPreviewCalculatorTests(SimpleTestCase):
    def _calculator(self, payroll_type=PayrollRun.TYPE_REGULAR, period="2025-03"):
        return PayrollPreviewCalculator(period=period, payroll_type=payroll_type)

    def _catalog(self, *definitions):
        return ConceptCatalog.from_definitions(definitions)

    def test_reference_example(self):
        catalog = self._catalog(
            _definition("BASE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY"), order=1),
            _definition("AFP", Concept.TYPE_DEDUCTION, PercentageRule(Decimal("13")), order=1),
        )
        result = self._calculator().run([_worker("W1", "2000"), _worker("W2", "3000")], catalog)

        first, second = result.lines
        self.assertEqual(
            (first.total_earnings, first.total_deductions, first.net_pay),
            (Decimal("2000.00"), Decimal("260.00"), Decimal("1740.00")),
        )
        self.assertEqual(
            (second.total_earnings, second.total_deductions, second.net_pay),
            (Decimal("3000.00"), Decimal("390.00"), Decimal("2610.00")),
        )
        self.assertEqual(result.totals.worker_count, 2)
        self.assertEqual(result.totals.total_earnings, Decimal("5000.00"))
        self.assertEqual(result.totals.total_deductions, Decimal("650.00"))
        self.assertEqual(result.totals.total_net, Decimal("4350.00"))
        self.assertEqual(result.status, PayrollRun.STATUS_PREVIEW)

    def test_earnings_never_see_running_total(self):
        catalog = self._catalog(
            _definition("BASE", Concept.TYPE_EARNING, FixedRule(Decimal("1000")), order=1),
            _definition("PCT", Concept.TYPE_EARNING, PercentageRule(Decimal("10")), order=2),
            _definition("RUNNING_SUM", Concept.TYPE_EARNING, FormulaRule("TOTAL_EARNINGS + 1"), order=3),
            _definition("TENTH", Concept.TYPE_DEDUCTION, FormulaRule("TOTAL_EARNINGS / 10"), order=1),
        )
        line = self._calculator().calculate_worker(_worker("W1", "2000"), catalog)

        values = {item.code: item.value for item in line.concepts}
        self.assertEqual(values["PCT"], Decimal("200.00"))
        self.assertEqual(values["RUNNING_SUM"], Decimal("1.00"))
        self.assertEqual(line.total_earnings, Decimal("1201.00"))
        self.assertEqual(values["TENTH"], Decimal("120.10"))
        self.assertEqual(line.net_pay, Decimal("1080.90"))

    def test_concepts_run_by_phase_then_order(self):
        catalog = self._catalog(
            _definition("EMPLOYER", Concept.TYPE_EMPLOYER_CONTRIBUTION, FixedRule(Decimal("5")), order=1),
            _definition("LATE", Concept.TYPE_DEDUCTION, FixedRule(Decimal("3")), order=2),
            _definition("EARLY", Concept.TYPE_DEDUCTION, FixedRule(Decimal("2")), order=1),
            _definition("BONUS", Concept.TYPE_EARNING, FixedRule(Decimal("50")), order=9),
            _definition("BASE", Concept.TYPE_EARNING, FixedRule(Decimal("100")), order=1),
        )
        line = self._calculator().calculate_worker(_worker("W1", "100"), catalog)
        self.assertEqual([item.code for item in line.concepts], ["BASE", "BONUS", "EARLY", "LATE", "EMPLOYER"])

    def test_contributions_do_not_reduce_net_pay(self):
        catalog = self._catalog(
            _definition("BASE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY")),
            _definition("AFP", Concept.TYPE_DEDUCTION, PercentageRule(Decimal("13"))),
            _definition("HEALTH", Concept.TYPE_EMPLOYER_CONTRIBUTION, PercentageRule(Decimal("9"))),
        )
        line = self._calculator().calculate_worker(_worker("W1", "2000"), catalog)
        self.assertEqual(line.total_contributions, Decimal("180.00"))
        self.assertEqual(line.net_pay, line.total_earnings - line.total_deductions)

    def test_severance_accrual_scales_salary(self):
        catalog = self._catalog(_definition("BASE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY")))
        line = self._calculator(PayrollRun.TYPE_SEVERANCE_ACCRUAL).calculate_worker(_worker("W1", "1000"), catalog)
        self.assertEqual(line.basic_salary, Decimal("1170.00"))
        self.assertEqual(line.total_earnings, Decimal("1170.00"))

    @override_settings(PAYROLL_TYPE_MULTIPLIERS={"REGULAR": "2"})
    def test_multiplier_comes_from_settings(self):
        catalog = self._catalog(_definition("BASE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY")))
        line = self._calculator().calculate_worker(_worker("W1", "1000"), catalog)
        self.assertEqual(line.total_earnings, Decimal("2000.00"))

    def test_worker_without_matching_concepts_gets_zero_line(self):
        catalog = self._catalog(
            _definition("HIGH", Concept.TYPE_EARNING, FormulaRule("IF(BASIC_SALARY > 5000, 100, 0)")),
        )
        line = self._calculator().calculate_worker(_worker("W1", "1000"), catalog)
        self.assertEqual(line.concepts, [])
        self.assertEqual(line.total_earnings, Decimal("0.00"))
        self.assertEqual(line.net_pay, Decimal("0.00"))

    def test_failing_concept_does_not_abort_worker(self):
        catalog = self._catalog(
            _definition("BOOM", Concept.TYPE_EARNING, ExplodingRule(), order=1),
            _definition("BASE", Concept.TYPE_EARNING, FixedRule(Decimal("100")), order=2),
        )
        with self.assertLogs("payroll.concepts", level="ERROR"):
            line = self._calculator().calculate_worker(_worker("W1", "1000"), catalog)
        self.assertEqual(line.total_earnings, Decimal("100.00"))
        self.assertEqual([item.code for item in line.concepts], ["BASE"])

    def test_oversized_concept_does_not_abort_run(self):
        catalog = self._catalog(
            _definition("HUGE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY * 100000000000000000000000000"), order=1),
            _definition("BASE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY"), order=2),
        )
        with self.assertLogs("payroll.concepts", level="WARNING"):
            result = self._calculator().run([_worker("W1", "2000"), _worker("W2", "3000")], catalog)
        self.assertEqual([line.total_earnings for line in result.lines], [Decimal("2000.00"), Decimal("3000.00")])
        self.assertEqual(result.totals.total_earnings, Decimal("5000.00"))

    def test_preview_output_stays_within_money_precision(self):
        catalog = self._catalog(
            _definition("HUGE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY * 10000000000000000"), order=1),
            _definition("BASE", Concept.TYPE_EARNING, FormulaRule("BASIC_SALARY"), order=2),
        )
        with self.assertLogs("payroll.concepts", level="WARNING"):
            result = self._calculator().run([_worker("W1", "5000")], catalog)
        data = PayrollPreviewSerializer(result).data
        self.assertEqual(data["totals"]["total_earnings"], "5000.00")

    def test_phase_total_beyond_money_range_drops_concept(self):
        catalog = self._catalog(
            _definition("A", Concept.TYPE_EARNING, FixedRule(Decimal("900000000000000000")), order=1),
            _definition("B", Concept.TYPE_EARNING, FixedRule(Decimal("900000000000000000")), order=2),
        )
        with self.assertLogs("payroll.engine", level="WARNING"):
            line = self._calculator().calculate_worker(_worker("W1", "0"), catalog)
        self.assertEqual([item.code for item in line.concepts], ["A"])
        self.assertEqual(line.total_earnings, Decimal("900000000000000000.00"))

    def test_values_round_half_away_from_zero(self):
        catalog = self._catalog(_definition("ODD", Concept.TYPE_EARNING, FixedRule(Decimal("10.005"))))
        line = self._calculator().calculate_worker(_worker("W1", "0"), catalog)
        self.assertEqual(line.total_earnings, Decimal("10.01"))
        self.assertEqual(round_money(Decimal("-2.345")), Decimal("-2.35"))

    def test_years_of_service_measured_at_period_end(self):
        catalog = self._catalog(_definition("SENIORITY", Concept.TYPE_EARNING, FormulaRule("YEARS_OF_SERVICE * 10")))
        line = self._calculator().calculate_worker(_worker("W1", "0", hire_date=date(2020, 3, 1)), catalog)
        self.assertEqual(line.total_earnings, Decimal("50.00"))
        self.assertEqual(years_of_service(date(2024, 4, 1), date(2025, 3, 31)), 0)
        self.assertEqual(years_of_service(date(2026, 1, 1), date(2025, 3, 31)), 0)
        self.assertEqual(years_of_service(None, date(2025, 3, 31)), 0)

    def test_empty_inputs_are_rejected(self):
        catalog = self._catalog(_definition("BASE", Concept.TYPE_EARNING, FixedRule(Decimal("1"))))
        with self.assertRaises(NoEligibleWorkers):
            self._calculator().run([], catalog)
        with self.assertRaises(NoActiveConcepts):
            self._calculator().run([_worker("W1", "100")], ConceptCatalog())

    def test_invalid_period_is_rejected(self):
        for period in ("2025-13", "2025-00", "2025/03", "25-03", "", "2025-01\n", "٢٠٢٥-٠١"):
            with self.subTest(period=period):
                with self.assertRaises(InvalidPeriod):
                    self._calculator(period=period)


class PayrollDataMixin:
    def _create_employee(self, code, first_name, salary, category=Employee.CATEGORY_ADMINISTRATIVE,
                         status=Employee.STATUS_ACTIVE):
        return Employee.objects.create(
            employee_id=code,
            first_name=first_name,
            last_name="Tester",
            job_title="Staff",
            staff_category=category,
            employment_status=status,
            hire_date=date(2020, 1, 1),
            basic_salary=Decimal(salary),
        )

    def _create_reference_data(self):
        self.ana = self._create_employee("EMP-001", "Ana", "2000")
        self.bruno = self._create_employee("EMP-002", "Bruno", "3000")
        self.base = Concept.objects.create(
            code="BASE",
            name="Basic pay",
            concept_type=Concept.TYPE_EARNING,
            calculation_type=Concept.CALC_FORMULA,
            formula_expression="BASIC_SALARY",
            order=1,
        )
        self.afp = Concept.objects.create(
            code="AFP",
            name="Pension fund",
            concept_type=Concept.TYPE_DEDUCTION,
            calculation_type=Concept.CALC_PERCENTAGE,
            percentage_rate=Decimal("13"),
            order=1,
        )


class PayrollPreviewServiceTests(PayrollDataMixin, TestCase):
    def setUp(self):
        self._create_reference_data()

    def test_end_to_end_preview(self):
        result = compute_preview(period="2025-03", payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="ALL")

        self.assertEqual([line.employee_code for line in result.lines], ["EMP-001", "EMP-002"])
        ana, bruno = result.lines
        self.assertEqual((ana.total_earnings, ana.total_deductions, ana.net_pay),
                         (Decimal("2000.00"), Decimal("260.00"), Decimal("1740.00")))
        self.assertEqual((bruno.total_earnings, bruno.total_deductions, bruno.net_pay),
                         (Decimal("3000.00"), Decimal("390.00"), Decimal("2610.00")))
        self.assertEqual(result.totals.total_earnings, Decimal("5000.00"))
        self.assertEqual(result.totals.total_deductions, Decimal("650.00"))
        self.assertEqual(result.totals.total_net, Decimal("4350.00"))
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_preview_skips_inactive_workers_and_concepts(self):
        self._create_employee("EMP-003", "Carla", "9000", status=Employee.STATUS_TERMINATED)
        Concept.objects.create(
            code="OLD",
            name="Retired bonus",
            concept_type=Concept.TYPE_EARNING,
            calculation_type=Concept.CALC_FIXED,
            fixed_value=Decimal("500"),
            is_active=False,
        )
        result = compute_preview(period="2025-03", payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="ALL")
        self.assertEqual(result.totals.worker_count, 2)
        self.assertEqual(result.totals.total_earnings, Decimal("5000.00"))

    def test_preview_filters_by_personnel_scope(self):
        self._create_employee("EMP-010", "Diego", "1500", category=Employee.CATEGORY_TEACHING)
        result = compute_preview(period="2025-03", payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="TEACHING")
        self.assertEqual([line.employee_code for line in result.lines], ["EMP-010"])

    def test_empty_roster_or_catalog_is_rejected(self):
        with self.assertRaises(NoEligibleWorkers):
            compute_preview(period="2025-03", payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="SERVICE")
        Concept.objects.update(is_active=False)
        with self.assertRaises(NoActiveConcepts):
            compute_preview(period="2025-03", payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="ALL")

    def test_request_values_are_validated(self):
        with self.assertRaises(InvalidPeriod):
            compute_preview(period="2025-13", payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="ALL")
        with self.assertRaises(InvalidPayrollType):
            compute_preview(period="2025-03", payroll_type="WEEKLY", personnel_scope="ALL")
        with self.assertRaises(InvalidPersonnelScope):
            compute_preview(period="2025-03", payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="INTERNS")


class PayrollCommitServiceTests(PayrollDataMixin, TestCase):
    def setUp(self):
        self._create_reference_data()

    def _lines(self, period="2025-01"):
        return compute_preview(period=period, payroll_type=PayrollRun.TYPE_REGULAR, personnel_scope="ALL").lines

    def _commit(self, lines, period="2025-01", payroll_type=PayrollRun.TYPE_REGULAR):
        return commit_payroll(period=period, payroll_type=payroll_type, personnel_scope="ALL", lines=lines)

    def test_commit_persists_header_lines_and_concepts(self):
        run_id = self._commit(self._lines())

        run = PayrollRun.objects.get(id=run_id)
        self.assertEqual(run.status, PayrollRun.STATUS_COMMITTED)
        self.assertEqual(run.worker_count, 2)
        self.assertEqual(run.total_earnings, Decimal("5000.00"))
        self.assertEqual(run.total_deductions, Decimal("650.00"))
        self.assertEqual(run.total_net, Decimal("4350.00"))
        self.assertEqual(run.lines.count(), 2)
        self.assertEqual(PayrollRunConcept.objects.filter(line__run=run).count(), 4)
        ana_line = run.lines.get(employee=self.ana)
        self.assertEqual(list(ana_line.concepts.values_list("code", "amount")),
                         [("BASE", Decimal("2000.00")), ("AFP", Decimal("260.00"))])

    def test_second_commit_for_same_period_and_type_conflicts(self):
        self._commit(self._lines())
        with self.assertLogs("payroll.services", level="WARNING"):
            with self.assertRaises(CommitConflict):
                self._commit(self._lines())
        self.assertEqual(PayrollRun.objects.filter(period="2025-01", payroll_type=PayrollRun.TYPE_REGULAR).count(), 1)

    def test_other_payroll_type_for_same_period_is_allowed(self):
        self._commit(self._lines())
        self._commit(self._lines(), payroll_type=PayrollRun.TYPE_GRATIFICATION)
        self.assertEqual(PayrollRun.objects.filter(period="2025-01").count(), 2)

    def test_header_totals_are_recomputed_from_edited_lines(self):
        lines = self._lines()
        lines[0].total_deductions = Decimal("300.00")
        lines[0].net_pay = Decimal("1700.00")

        run = PayrollRun.objects.get(id=self._commit(lines))
        self.assertEqual(run.total_deductions, Decimal("690.00"))
        self.assertEqual(run.total_net, Decimal("4310.00"))

    def test_zero_concept_rows_are_not_persisted(self):
        lines = self._lines()
        lines[0].concepts.append(
            ConceptApplication(
                concept_id=self.base.id,
                code="BASE",
                name="Basic pay",
                concept_type=Concept.TYPE_EARNING,
                value=Decimal("0.00"),
            )
        )
        run_id = self._commit(lines)
        self.assertEqual(PayrollRunConcept.objects.filter(line__run_id=run_id).count(), 4)

    @override_settings(PAYROLL_COMMIT_BATCH_SIZE=1)
    def test_commit_writes_in_batches(self):
        run_id = self._commit(self._lines())
        self.assertEqual(PayrollRunLine.objects.filter(run_id=run_id).count(), 2)
        self.assertEqual(PayrollRunConcept.objects.filter(line__run_id=run_id).count(), 4)

    def test_empty_detail_is_rejected(self):
        with self.assertRaises(EmptyDetail):
            self._commit([])
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_period_with_trailing_newline_does_not_bypass_conflict(self):
        self._commit(self._lines())
        with self.assertRaises(InvalidPeriod):
            self._commit(self._lines(), period="2025-01\n")
        self.assertEqual(PayrollRun.objects.count(), 1)

    def test_inconsistent_net_pay_is_rejected(self):
        lines = self._lines()
        lines[0].net_pay = Decimal("1.00")
        with self.assertRaises(ValidationError):
            self._commit(lines)
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_unknown_or_duplicate_workers_are_rejected(self):
        lines = self._lines()
        with self.assertRaises(ValidationError):
            self._commit([lines[0], lines[0]])

        lines[1].worker_id = uuid.uuid4()
        with self.assertRaises(ValidationError):
            self._commit(lines)
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_unknown_concepts_are_rejected(self):
        lines = self._lines()
        lines[0].concepts[0].concept_id = uuid.uuid4()
        with self.assertRaises(ValidationError):
            self._commit(lines)

    def test_write_failure_rolls_back_everything(self):
        with patch.object(PayrollRunConcept.objects, "bulk_create", side_effect=DatabaseError("disk full")):
            with self.assertLogs("payroll.services", level="ERROR"):
                with self.assertRaises(PersistenceFailure):
                    self._commit(self._lines())
        self.assertEqual(PayrollRun.objects.count(), 0)
        self.assertEqual(PayrollRunLine.objects.count(), 0)
        self.assertEqual(PayrollRunConcept.objects.count(), 0)

    def test_integrity_error_without_committed_run_is_persistence_failure(self):
        with patch.object(PayrollRunLine.objects, "bulk_create", side_effect=IntegrityError("constraint")):
            with self.assertLogs("payroll.services", level="ERROR"):
                with self.assertRaises(PersistenceFailure):
                    self._commit(self._lines())
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_unique_constraint_catches_concurrent_commit(self):
        PayrollRun.objects.create(period="2025-01", payroll_type=PayrollRun.TYPE_REGULAR)
        with patch("payroll.services._committed_run_exists", side_effect=[False, True]):
            with self.assertLogs("payroll.services", level="WARNING"):
                with self.assertRaises(CommitConflict):
                    self._commit(self._lines())
        self.assertEqual(PayrollRun.objects.count(), 1)


class PayrollHistoryServiceTests(PayrollDataMixin, TestCase):
    def setUp(self):
        self._create_reference_data()
        for period, payroll_type in (
            ("2025-01", PayrollRun.TYPE_REGULAR),
            ("2025-02", PayrollRun.TYPE_REGULAR),
            ("2025-02", PayrollRun.TYPE_GRATIFICATION),
        ):
            lines = compute_preview(period=period, payroll_type=payroll_type, personnel_scope="ALL").lines
            commit_payroll(period=period, payroll_type=payroll_type, personnel_scope="ALL", lines=lines)

    def test_list_filters_by_type_and_period_range(self):
        self.assertEqual(list_committed_runs().count(), 3)
        self.assertEqual(list_committed_runs(payroll_type=PayrollRun.TYPE_REGULAR).count(), 2)
        self.assertEqual(
            list(list_committed_runs(period_from="2025-02", period_to="2025-02").values_list("period", flat=True)),
            ["2025-02", "2025-02"],
        )
        with self.assertRaises(InvalidPeriod):
            list_committed_runs(period_from="2025-2")

    def test_get_committed_run(self):
        run = list_committed_runs(payroll_type=PayrollRun.TYPE_GRATIFICATION).get()
        self.assertEqual(get_committed_run(run.id).lines.count(), 2)
        with self.assertRaises(Http404):
            get_committed_run(uuid.uuid4())


class PayrollApiTests(PayrollDataMixin, TestCase):
    def setUp(self):
        self._create_reference_data()
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(username="payroll-admin", password="pass")

    def _post(self, view, path, payload):
        request = self.factory.post(path, payload, format="json")
        force_authenticate(request, user=self.user)
        return view(request)

    def _get(self, view, path, params=None, **kwargs):
        request = self.factory.get(path, params or {})
        force_authenticate(request, user=self.user)
        return view(request, **kwargs)

    def _preview(self, period="2025-03"):
        return self._post(PayrollPreviewView.as_view(), "/api/payroll/preview/", {"period": period})

    def _commit_payload(self, period="2025-03"):
        data = self._preview(period).data["data"]
        return {"period": period, "payroll_type": "REGULAR", "personnel_scope": "ALL", "lines": data["lines"]}

    def test_preview_returns_run_and_lines(self):
        response = self._preview()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["success"])
        data = response.data["data"]
        self.assertEqual(data["status"], PayrollRun.STATUS_PREVIEW)
        self.assertEqual(data["totals"]["total_net"], "4350.00")
        self.assertEqual(len(data["lines"]), 2)
        self.assertEqual(data["lines"][0]["concepts"][0]["code"], "BASE")

    def test_preview_requires_authentication(self):
        request = self.factory.post("/api/payroll/preview/", {"period": "2025-03"}, format="json")
        response = PayrollPreviewView.as_view()(request)
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.data["success"])

    def test_request_period_is_normalised_or_rejected(self):
        serializer = PayrollRunRequestSerializer(data={"period": "2025-01\n"})
        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.validated_data["period"], "2025-01")

        serializer = PayrollRunRequestSerializer(data={"period": "٢٠٢٥-٠١"})
        self.assertFalse(serializer.is_valid())
        self.assertIn("period", serializer.errors)

    def test_preview_rejects_bad_period(self):
        response = self._preview(period="2025-3")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data["success"])
        self.assertIn("period", response.data["errors"])

    def test_preview_without_workers_returns_404(self):
        Employee.objects.update(employment_status=Employee.STATUS_TERMINATED)
        response = self._preview()
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["message"], str(NoEligibleWorkers.default_detail))

    def test_commit_then_conflict(self):
        payload = self._commit_payload()
        view = PayrollCommitView.as_view()

        response = self._post(view, "/api/payroll/commit/", payload)
        self.assertEqual(response.status_code, 201)
        run_id = response.data["data"]["run_id"]
        self.assertTrue(PayrollRun.objects.filter(id=run_id).exists())

        with self.assertLogs("payroll.services", level="WARNING"):
            response = self._post(view, "/api/payroll/commit/", payload)
        self.assertEqual(response.status_code, 409)
        self.assertFalse(response.data["success"])

    def test_commit_with_no_lines_returns_400(self):
        payload = {"period": "2025-03", "payroll_type": "REGULAR", "personnel_scope": "ALL", "lines": []}
        response = self._post(PayrollCommitView.as_view(), "/api/payroll/commit/", payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["message"], str(EmptyDetail.default_detail))

    def test_commit_rejects_inconsistent_line(self):
        payload = self._commit_payload()
        payload["lines"][0]["net_pay"] = "1.00"
        response = self._post(PayrollCommitView.as_view(), "/api/payroll/commit/", payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_commit_write_failure_returns_generic_500(self):
        payload = self._commit_payload()
        with patch.object(PayrollRunLine.objects, "bulk_create", side_effect=DatabaseError("connection lost")):
            with self.assertLogs("payroll.services", level="ERROR"):
                response = self._post(PayrollCommitView.as_view(), "/api/payroll/commit/", payload)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["message"], "An internal error occurred while saving the payroll.")
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_history_pagination_and_detail(self):
        response = self._post(PayrollCommitView.as_view(), "/api/payroll/commit/", self._commit_payload())
        run_id = response.data["data"]["run_id"]

        response = self._get(PayrollRunListView.as_view(), "/api/payroll/runs/", {"limit": 1})
        self.assertEqual(response.status_code, 200)
        pagination = response.data["data"]["pagination"]
        self.assertEqual(pagination["total"], 1)
        self.assertEqual(pagination["total_pages"], 1)
        self.assertFalse(pagination["has_next_page"])
        self.assertEqual(response.data["data"]["results"][0]["total_net"], "4350.00")

        response = self._get(PayrollRunDetailView.as_view(), f"/api/payroll/runs/{run_id}/", run_id=run_id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data["data"]["lines"]), 2)

        response = self._get(PayrollRunDetailView.as_view(), "/api/payroll/runs/x/", run_id=uuid.uuid4())
        self.assertEqual(response.status_code, 404)

    def test_history_rejects_out_of_range_limit(self):
        response = self._get(PayrollRunListView.as_view(), "/api/payroll/runs/", {"limit": 101})
        self.assertEqual(response.status_code, 400)

    def test_history_page_past_end_is_empty(self):
        response = self._get(PayrollRunListView.as_view(), "/api/payroll/runs/", {"page": 3})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["results"], [])

    def test_concept_catalog_is_read_only_listing(self):
        view = ConceptViewSet.as_view({"get": "list"})
        response = self._get(view, "/api/payroll/concepts/", {"concept_type": Concept.TYPE_DEDUCTION})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["code"] for item in response.data], ["AFP"])
        self.assertEqual(response.data[0]["calculation_type_display"], "Percentage")

        self.assertFalse(hasattr(ConceptViewSet, "create"))
        self.assertFalse(hasattr(ConceptViewSet, "update"))
        self.assertFalse(hasattr(ConceptViewSet, "destroy"))


class PreviewPayrollCommandTests(PayrollDataMixin, TestCase):
    def setUp(self):
        self._create_reference_data()

    def test_command_prints_lines_and_totals(self):
        out = StringIO()
        call_command("preview_payroll", "2025-03", stdout=out)
        output = out.getvalue()
        self.assertIn("EMP-001", output)
        self.assertIn("net=1740.00", output)
        self.assertIn("2 worker(s)", output)
        self.assertIn("net=4350.00", output)
        self.assertEqual(PayrollRun.objects.count(), 0)

    def test_command_reports_invalid_period(self):
        with self.assertRaises(CommandError):
            call_command("preview_payroll", "2025-13", stdout=StringIO())
