import uuid
from decimal import Decimal

from django.db import models


class Employee(models.Model):
    """Worker record read by the payroll engine"""

    STATUS_PENDING = 'PENDING'
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_ON_LEAVE = 'ON_LEAVE'
    STATUS_SUSPENDED = 'SUSPENDED'
    STATUS_TERMINATED = 'TERMINATED'

    EMPLOYMENT_STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_ON_LEAVE, 'On Leave'),
        (STATUS_SUSPENDED, 'Suspended'),
        (STATUS_TERMINATED, 'Terminated'),
    ]

    CATEGORY_TEACHING = 'TEACHING'
    CATEGORY_ADMINISTRATIVE = 'ADMINISTRATIVE'
    CATEGORY_SERVICE = 'SERVICE'

    STAFF_CATEGORY_CHOICES = [
        (CATEGORY_TEACHING, 'Teaching'),
        (CATEGORY_ADMINISTRATIVE, 'Administrative'),
        (CATEGORY_SERVICE, 'Service'),
    ]

    PENSION_AFP = 'AFP'
    PENSION_ONP = 'ONP'

    PENSION_SYSTEM_CHOICES = [
        (PENSION_AFP, 'Private pension fund (AFP)'),
        (PENSION_ONP, 'National pension office (ONP)'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    employee_id = models.CharField(max_length=50, unique=True, help_text='Company-assigned employee ID')
    national_id_number = models.CharField(max_length=50, blank=True, null=True, db_index=True)
    first_name = models.CharField(max_length=100)
    middle_name = models.CharField(max_length=100, blank=True, null=True)
    last_name = models.CharField(max_length=100)

    job_title = models.CharField(max_length=255)
    staff_category = models.CharField(
        max_length=20,
        choices=STAFF_CATEGORY_CHOICES,
        default=CATEGORY_ADMINISTRATIVE,
        help_text='Personnel scope used to filter payroll runs',
    )
    employment_status = models.CharField(max_length=20, choices=EMPLOYMENT_STATUS_CHOICES, default=STATUS_PENDING)
    hire_date = models.DateField()

    basic_salary = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal('0.00'))
    pension_system = models.CharField(max_length=10, choices=PENSION_SYSTEM_CHOICES, default=PENSION_AFP)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'employees'
        verbose_name = 'Employee'
        verbose_name_plural = 'Employees'
        indexes = [
            models.Index(fields=['employment_status', 'staff_category'], name='employees_status_cat_idx'),
        ]
        ordering = ['first_name', 'last_name']

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.employee_id})"

    @property
    def full_name(self):
        if self.middle_name:
            return f"{self.first_name} {self.middle_name} {self.last_name}"
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self):
        return self.employment_status == self.STATUS_ACTIVE
