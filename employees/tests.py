from datetime import date
from decimal import Decimal

from django.test import TestCase

from employees.models import Employee
from employees.services import get_active_employees, is_valid_personnel_scope


class ActiveEmployeeRosterTests(TestCase):
    def _create_employee(self, code, first_name, category, status=Employee.STATUS_ACTIVE):
        return Employee.objects.create(
            employee_id=code,
            first_name=first_name,
            last_name="Roster",
            job_title="Staff",
            staff_category=category,
            employment_status=status,
            hire_date=date(2021, 6, 1),
            basic_salary=Decimal("1500.00"),
        )

    def setUp(self):
        self.instructor = self._create_employee("EMP-001", "Zoe", Employee.CATEGORY_TEACHING)
        self.clerk = self._create_employee("EMP-002", "Ana", Employee.CATEGORY_ADMINISTRATIVE)
        self.janitor = self._create_employee("EMP-003", "Luis", Employee.CATEGORY_SERVICE)
        self._create_employee("EMP-004", "Mara", Employee.CATEGORY_TEACHING, status=Employee.STATUS_ON_LEAVE)
        self._create_employee("EMP-005", "Omar", Employee.CATEGORY_SERVICE, status=Employee.STATUS_TERMINATED)

    def test_all_scope_returns_active_staff_in_name_order(self):
        roster = list(get_active_employees("ALL"))
        self.assertEqual(roster, [self.clerk, self.janitor, self.instructor])

    def test_scope_filters_by_staff_category(self):
        self.assertEqual(list(get_active_employees(Employee.CATEGORY_TEACHING)), [self.instructor])
        self.assertEqual(list(get_active_employees(Employee.CATEGORY_SERVICE)), [self.janitor])

    def test_scope_validation(self):
        self.assertTrue(is_valid_personnel_scope("ALL"))
        self.assertTrue(is_valid_personnel_scope(Employee.CATEGORY_ADMINISTRATIVE))
        self.assertFalse(is_valid_personnel_scope("CONTRACTORS"))

    def test_full_name_includes_middle_name(self):
        self.clerk.middle_name = "Lucia"
        self.assertEqual(self.clerk.full_name, "Ana Lucia Roster")
        self.assertTrue(self.clerk.is_active)
