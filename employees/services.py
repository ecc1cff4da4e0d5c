from .models import Employee

PERSONNEL_SCOPE_ALL = 'ALL'

PERSONNEL_SCOPE_CHOICES = [(PERSONNEL_SCOPE_ALL, 'All staff')] + Employee.STAFF_CATEGORY_CHOICES


def is_valid_personnel_scope(personnel_scope):
    return personnel_scope in dict(PERSONNEL_SCOPE_CHOICES)


def get_active_employees(personnel_scope=PERSONNEL_SCOPE_ALL):
    """Active workers for a personnel scope, in roster order."""
    qs = Employee.objects.filter(employment_status=Employee.STATUS_ACTIVE)
    if personnel_scope and personnel_scope != PERSONNEL_SCOPE_ALL:
        qs = qs.filter(staff_category=personnel_scope)
    return qs.order_by('first_name', 'last_name', 'employee_id')
