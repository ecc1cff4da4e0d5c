from django.contrib import admin
from .models import Employee


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ['employee_id', 'full_name', 'job_title', 'staff_category', 'employment_status', 'basic_salary']
    list_filter = ['employment_status', 'staff_category', 'pension_system']
    search_fields = ['employee_id', 'first_name', 'last_name', 'national_id_number']
    readonly_fields = ['id', 'created_at', 'updated_at']

    fieldsets = (
        ('Identity', {
            'fields': ('id', 'employee_id', 'national_id_number', 'first_name', 'middle_name', 'last_name')
        }),
        ('Employment', {
            'fields': ('job_title', 'staff_category', 'employment_status', 'hire_date')
        }),
        ('Compensation', {
            'fields': ('basic_salary', 'pension_system')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )
