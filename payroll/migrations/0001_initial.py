import uuid
from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


CONCEPT_TYPE_CHOICES = [
    ("EARNING", "Earning"),
    ("DEDUCTION", "Deduction"),
    ("EMPLOYER_CONTRIBUTION", "Employer contribution"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("employees", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Concept",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("code", models.CharField(max_length=60, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("concept_type", models.CharField(choices=CONCEPT_TYPE_CHOICES, max_length=30)),
                (
                    "calculation_type",
                    models.CharField(
                        choices=[
                            ("FIXED", "Fixed amount"),
                            ("PERCENTAGE", "Percentage"),
                            ("FORMULA", "Formula"),
                            ("MANUAL", "Manual variable"),
                        ],
                        default="FIXED",
                        max_length=20,
                    ),
                ),
                ("fixed_value", models.DecimalField(blank=True, decimal_places=2, max_digits=20, null=True)),
                (
                    "percentage_rate",
                    models.DecimalField(
                        blank=True,
                        decimal_places=4,
                        help_text="Rate in percent applied to total earnings, or basic salary before earnings are known.",
                        max_digits=7,
                        null=True,
                    ),
                ),
                ("formula_expression", models.TextField(blank=True, default="")),
                (
                    "order",
                    models.PositiveIntegerField(default=0, help_text="Ascending evaluation order within the concept type."),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Payroll Concept",
                "verbose_name_plural": "Payroll Concepts",
                "db_table": "payroll_concepts",
                "ordering": ["concept_type", "order", "code"],
                "indexes": [
                    models.Index(fields=["concept_type", "is_active", "order"], name="payroll_con_type_active_idx")
                ],
            },
        ),
        migrations.CreateModel(
            name="PayrollRun",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("period", models.CharField(help_text="YYYY-MM", max_length=7)),
                (
                    "payroll_type",
                    models.CharField(
                        choices=[
                            ("REGULAR", "Regular monthly"),
                            ("YEAR_END_BONUS", "Year-end bonus"),
                            ("GRATIFICATION", "Gratification"),
                            ("SEVERANCE_ACCRUAL", "Severance accrual"),
                        ],
                        default="REGULAR",
                        max_length=30,
                    ),
                ),
                (
                    "personnel_scope",
                    models.CharField(
                        choices=[
                            ("ALL", "All staff"),
                            ("TEACHING", "Teaching"),
                            ("ADMINISTRATIVE", "Administrative"),
                            ("SERVICE", "Service"),
                        ],
                        default="ALL",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("PREVIEW", "Preview"), ("COMMITTED", "Committed")],
                        default="COMMITTED",
                        max_length=15,
                    ),
                ),
                ("worker_count", models.PositiveIntegerField(default=0)),
                ("total_earnings", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("total_deductions", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("total_contributions", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("total_net", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("committed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Payroll Run",
                "verbose_name_plural": "Payroll Runs",
                "db_table": "payroll_runs",
                "ordering": ["-committed_at", "-period"],
                "indexes": [
                    models.Index(fields=["payroll_type", "period"], name="payroll_run_type_period_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "COMMITTED")),
                        fields=("period", "payroll_type"),
                        name="uniq_committed_payroll_per_period_type",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PayrollRunLine",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("employee_code", models.CharField(blank=True, default="", max_length=50)),
                ("full_name", models.CharField(blank=True, default="", max_length=255)),
                ("basic_salary", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("total_earnings", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("total_deductions", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("total_contributions", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("net_pay", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "employee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payroll_lines",
                        to="employees.employee",
                    ),
                ),
                (
                    "run",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="payroll.payrollrun",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payroll Run Line",
                "verbose_name_plural": "Payroll Run Lines",
                "db_table": "payroll_run_lines",
                "ordering": ["full_name", "employee_code"],
                "constraints": [
                    models.UniqueConstraint(fields=("run", "employee"), name="uniq_payroll_line_per_employee")
                ],
            },
        ),
        migrations.CreateModel(
            name="PayrollRunConcept",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                ("code", models.CharField(max_length=60)),
                ("name", models.CharField(max_length=255)),
                ("concept_type", models.CharField(choices=CONCEPT_TYPE_CHOICES, max_length=30)),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "concept",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="applications",
                        to="payroll.concept",
                    ),
                ),
                (
                    "line",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="concepts",
                        to="payroll.payrollrunline",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payroll Run Concept",
                "verbose_name_plural": "Payroll Run Concepts",
                "db_table": "payroll_run_concepts",
                "ordering": ["position"],
            },
        ),
    ]
