from django.contrib import admin

from .models import Concept, PayrollRun, PayrollRunConcept, PayrollRunLine


@admin.register(Concept)
class ConceptAdmin(admin.ModelAdmin):
    list_display = ["code", "name", "concept_type", "calculation_type", "order", "is_active"]
    list_filter = ["concept_type", "calculation_type", "is_active"]
    search_fields = ["code", "name"]
    ordering = ["concept_type", "order", "code"]


class PayrollRunLineInline(admin.TabularInline):
    model = PayrollRunLine
    extra = 0
    fields = ["employee_code", "full_name", "total_earnings", "total_deductions", "total_contributions", "net_pay"]
    readonly_fields = fields
    can_delete = False


@admin.register(PayrollRun)
class PayrollRunAdmin(admin.ModelAdmin):
    list_display = ["period", "payroll_type", "personnel_scope", "status", "worker_count", "total_net", "committed_at"]
    list_filter = ["payroll_type", "status", "personnel_scope"]
    search_fields = ["period"]
    readonly_fields = ["id", "committed_at", "created_at", "updated_at"]
    inlines = [PayrollRunLineInline]


admin.site.register(PayrollRunConcept)
