import uuid
from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Employee",
            fields=[
                ("id", models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, serialize=False)),
                (
                    "employee_id",
                    models.CharField(help_text="Company-assigned employee ID", max_length=50, unique=True),
                ),
                ("national_id_number", models.CharField(blank=True, db_index=True, max_length=50, null=True)),
                ("first_name", models.CharField(max_length=100)),
                ("middle_name", models.CharField(blank=True, max_length=100, null=True)),
                ("last_name", models.CharField(max_length=100)),
                ("job_title", models.CharField(max_length=255)),
                (
                    "staff_category",
                    models.CharField(
                        choices=[("TEACHING", "Teaching"), ("ADMINISTRATIVE", "Administrative"), ("SERVICE", "Service")],
                        default="ADMINISTRATIVE",
                        help_text="Personnel scope used to filter payroll runs",
                        max_length=20,
                    ),
                ),
                (
                    "employment_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("ACTIVE", "Active"),
                            ("ON_LEAVE", "On Leave"),
                            ("SUSPENDED", "Suspended"),
                            ("TERMINATED", "Terminated"),
                        ],
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                ("hire_date", models.DateField()),
                ("basic_salary", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=20)),
                (
                    "pension_system",
                    models.CharField(
                        choices=[("AFP", "Private pension fund (AFP)"), ("ONP", "National pension office (ONP)")],
                        default="AFP",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Employee",
                "verbose_name_plural": "Employees",
                "db_table": "employees",
                "ordering": ["first_name", "last_name"],
                "indexes": [
                    models.Index(fields=["employment_status", "staff_category"], name="employees_status_cat_idx")
                ],
            },
        ),
    ]
