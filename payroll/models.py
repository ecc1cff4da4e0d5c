import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone

from employees.services import PERSONNEL_SCOPE_ALL, PERSONNEL_SCOPE_CHOICES

from .concepts import ConceptDefinition, FixedRule, FormulaRule, ManualRule, PercentageRule, UnsupportedRule


class Concept(models.Model):
    TYPE_EARNING = "EARNING"
    TYPE_DEDUCTION = "DEDUCTION"
    TYPE_EMPLOYER_CONTRIBUTION = "EMPLOYER_CONTRIBUTION"

    TYPE_CHOICES = [
        (TYPE_EARNING, "Earning"),
        (TYPE_DEDUCTION, "Deduction"),
        (TYPE_EMPLOYER_CONTRIBUTION, "Employer contribution"),
    ]

    CALC_FIXED = "FIXED"
    CALC_PERCENTAGE = "PERCENTAGE"
    CALC_FORMULA = "FORMULA"
    CALC_MANUAL = "MANUAL"

    CALCULATION_CHOICES = [
        (CALC_FIXED, "Fixed amount"),
        (CALC_PERCENTAGE, "Percentage"),
        (CALC_FORMULA, "Formula"),
        (CALC_MANUAL, "Manual variable"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=60, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    concept_type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    calculation_type = models.CharField(max_length=20, choices=CALCULATION_CHOICES, default=CALC_FIXED)

    fixed_value = models.DecimalField(max_digits=20, decimal_places=2, null=True, blank=True)
    percentage_rate = models.DecimalField(
        max_digits=7,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Rate in percent applied to total earnings, or basic salary before earnings are known.",
    )
    formula_expression = models.TextField(blank=True, default="")
    order = models.PositiveIntegerField(default=0, help_text="Ascending evaluation order within the concept type.")

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payroll_concepts"
        verbose_name = "Payroll Concept"
        verbose_name_plural = "Payroll Concepts"
        ordering = ["concept_type", "order", "code"]
        indexes = [
            models.Index(fields=["concept_type", "is_active", "order"], name="payroll_con_type_active_idx"),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    def build_rule(self):
        if self.calculation_type == self.CALC_FIXED:
            return FixedRule(value=self.fixed_value)
        if self.calculation_type == self.CALC_PERCENTAGE:
            return PercentageRule(rate=self.percentage_rate)
        if self.calculation_type == self.CALC_FORMULA:
            return FormulaRule(expression=self.formula_expression or "")
        if self.calculation_type == self.CALC_MANUAL:
            return ManualRule()
        return UnsupportedRule(calculation_type=self.calculation_type)

    def to_definition(self) -> ConceptDefinition:
        return ConceptDefinition(
            id=self.id,
            code=self.code,
            name=self.name,
            concept_type=self.concept_type,
            rule=self.build_rule(),
            order=self.order,
        )


class PayrollRun(models.Model):
    STATUS_PREVIEW = "PREVIEW"
    STATUS_COMMITTED = "COMMITTED"

    STATUS_CHOICES = [
        (STATUS_PREVIEW, "Preview"),
        (STATUS_COMMITTED, "Committed"),
    ]

    TYPE_REGULAR = "REGULAR"
    TYPE_YEAR_END_BONUS = "YEAR_END_BONUS"
    TYPE_GRATIFICATION = "GRATIFICATION"
    TYPE_SEVERANCE_ACCRUAL = "SEVERANCE_ACCRUAL"

    TYPE_CHOICES = [
        (TYPE_REGULAR, "Regular monthly"),
        (TYPE_YEAR_END_BONUS, "Year-end bonus"),
        (TYPE_GRATIFICATION, "Gratification"),
        (TYPE_SEVERANCE_ACCRUAL, "Severance accrual"),
    ]

    SCOPE_ALL = PERSONNEL_SCOPE_ALL
    SCOPE_CHOICES = PERSONNEL_SCOPE_CHOICES

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    period = models.CharField(max_length=7, help_text="YYYY-MM")
    payroll_type = models.CharField(max_length=30, choices=TYPE_CHOICES, default=TYPE_REGULAR)
    personnel_scope = models.CharField(max_length=20, choices=SCOPE_CHOICES, default=SCOPE_ALL)
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default=STATUS_COMMITTED)

    worker_count = models.PositiveIntegerField(default=0)
    total_earnings = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    total_deductions = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    total_contributions = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    total_net = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))

    committed_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payroll_runs"
        verbose_name = "Payroll Run"
        verbose_name_plural = "Payroll Runs"
        ordering = ["-committed_at", "-period"]
        constraints = [
            models.UniqueConstraint(
                fields=["period", "payroll_type"],
                condition=Q(status="COMMITTED"),
                name="uniq_committed_payroll_per_period_type",
            )
        ]
        indexes = [
            models.Index(fields=["payroll_type", "period"], name="payroll_run_type_period_idx"),
        ]

    def __str__(self):
        return f"Payroll {self.payroll_type} {self.period}"


class PayrollRunLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    run = models.ForeignKey(
        PayrollRun,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    employee = models.ForeignKey(
        "employees.Employee",
        on_delete=models.PROTECT,
        related_name="payroll_lines",
    )
    employee_code = models.CharField(max_length=50, blank=True, default="")
    full_name = models.CharField(max_length=255, blank=True, default="")

    basic_salary = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    total_earnings = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    total_deductions = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    total_contributions = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    net_pay = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payroll_run_lines"
        verbose_name = "Payroll Run Line"
        verbose_name_plural = "Payroll Run Lines"
        ordering = ["full_name", "employee_code"]
        constraints = [
            models.UniqueConstraint(fields=["run", "employee"], name="uniq_payroll_line_per_employee"),
        ]

    def __str__(self):
        return f"{self.employee_code} {self.net_pay}"


class PayrollRunConcept(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    line = models.ForeignKey(
        PayrollRunLine,
        on_delete=models.CASCADE,
        related_name="concepts",
    )
    concept = models.ForeignKey(
        Concept,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="applications",
    )
    code = models.CharField(max_length=60)
    name = models.CharField(max_length=255)
    concept_type = models.CharField(max_length=30, choices=Concept.TYPE_CHOICES)
    amount = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "payroll_run_concepts"
        verbose_name = "Payroll Run Concept"
        verbose_name_plural = "Payroll Run Concepts"
        ordering = ["position"]

    def __str__(self):
        return f"{self.code} {self.amount}"
