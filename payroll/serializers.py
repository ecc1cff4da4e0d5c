from rest_framework import serializers

from .engine import ConceptApplication, WorkerPayrollLine
from .models import Concept, PayrollRun, PayrollRunConcept, PayrollRunLine
from .utils import PERIOD_RE, round_money

MONEY = {"max_digits": 20, "decimal_places": 2}


def _validate_period_value(value):
    match = PERIOD_RE.fullmatch(value or "")
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise serializers.ValidationError("Use the YYYY-MM format with a month between 01 and 12.")
    return value


class ConceptSerializer(serializers.ModelSerializer):
    calculation_type_display = serializers.CharField(source="get_calculation_type_display", read_only=True)

    class Meta:
        model = Concept
        fields = "__all__"
        read_only_fields = ["id", "created_at", "updated_at"]


class PayrollRunRequestSerializer(serializers.Serializer):
    period = serializers.CharField(max_length=7)
    payroll_type = serializers.ChoiceField(choices=PayrollRun.TYPE_CHOICES, default=PayrollRun.TYPE_REGULAR)
    personnel_scope = serializers.ChoiceField(choices=PayrollRun.SCOPE_CHOICES, default=PayrollRun.SCOPE_ALL)

    def validate_period(self, value):
        return _validate_period_value(value)


class ConceptApplicationSerializer(serializers.Serializer):
    concept_id = serializers.UUIDField()
    code = serializers.CharField(max_length=60)
    name = serializers.CharField(max_length=255, allow_blank=True, required=False, default="")
    concept_type = serializers.ChoiceField(choices=Concept.TYPE_CHOICES)
    value = serializers.DecimalField(min_value=0, **MONEY)


class WorkerPayrollLineSerializer(serializers.Serializer):
    worker_id = serializers.UUIDField()
    employee_code = serializers.CharField(max_length=50, allow_blank=True, required=False, default="")
    national_id = serializers.CharField(max_length=50, allow_blank=True, required=False, default="")
    full_name = serializers.CharField(max_length=255, allow_blank=True, required=False, default="")
    job_title = serializers.CharField(max_length=255, allow_blank=True, required=False, default="")
    basic_salary = serializers.DecimalField(min_value=0, **MONEY)
    total_earnings = serializers.DecimalField(min_value=0, **MONEY)
    total_deductions = serializers.DecimalField(min_value=0, **MONEY)
    total_contributions = serializers.DecimalField(min_value=0, **MONEY)
    net_pay = serializers.DecimalField(**MONEY)
    concepts = ConceptApplicationSerializer(many=True, required=False, default=list)

    def validate(self, attrs):
        expected = round_money(attrs["total_earnings"] - attrs["total_deductions"])
        if round_money(attrs["net_pay"]) != expected:
            raise serializers.ValidationError(
                {"net_pay": f"Net pay must equal total earnings minus total deductions ({expected})."}
            )
        return attrs


class PayrollCommitSerializer(PayrollRunRequestSerializer):
    lines = WorkerPayrollLineSerializer(many=True, allow_empty=True)

    def to_lines(self):
        lines = []
        for row in self.validated_data["lines"]:
            data = dict(row)
            concepts = [ConceptApplication(**item) for item in data.pop("concepts", [])]
            lines.append(WorkerPayrollLine(concepts=concepts, **data))
        return lines


class PayrollHistoryQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=10)
    payroll_type = serializers.ChoiceField(choices=PayrollRun.TYPE_CHOICES, required=False)
    period_from = serializers.CharField(max_length=7, required=False)
    period_to = serializers.CharField(max_length=7, required=False)

    def validate_period_from(self, value):
        return _validate_period_value(value)

    def validate_period_to(self, value):
        return _validate_period_value(value)

    def validate(self, attrs):
        period_from = attrs.get("period_from")
        period_to = attrs.get("period_to")
        if period_from and period_to and period_from > period_to:
            raise serializers.ValidationError({"period_to": "Must not be earlier than period_from."})
        return attrs


class RunTotalsSerializer(serializers.Serializer):
    worker_count = serializers.IntegerField()
    total_earnings = serializers.DecimalField(**MONEY)
    total_deductions = serializers.DecimalField(**MONEY)
    total_contributions = serializers.DecimalField(**MONEY)
    total_net = serializers.DecimalField(**MONEY)


class PayrollPreviewSerializer(serializers.Serializer):
    period = serializers.CharField()
    payroll_type = serializers.CharField()
    personnel_scope = serializers.CharField()
    status = serializers.CharField()
    totals = RunTotalsSerializer()
    lines = WorkerPayrollLineSerializer(many=True)


class PayrollRunConceptSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayrollRunConcept
        fields = ["id", "concept", "code", "name", "concept_type", "amount", "position"]


class PayrollRunLineSerializer(serializers.ModelSerializer):
    concepts = PayrollRunConceptSerializer(many=True, read_only=True)

    class Meta:
        model = PayrollRunLine
        fields = [
            "id",
            "employee",
            "employee_code",
            "full_name",
            "basic_salary",
            "total_earnings",
            "total_deductions",
            "total_contributions",
            "net_pay",
            "concepts",
        ]


class PayrollRunSummarySerializer(serializers.ModelSerializer):
    payroll_type_display = serializers.CharField(source="get_payroll_type_display", read_only=True)

    class Meta:
        model = PayrollRun
        fields = [
            "id",
            "period",
            "payroll_type",
            "payroll_type_display",
            "personnel_scope",
            "status",
            "worker_count",
            "total_earnings",
            "total_deductions",
            "total_contributions",
            "total_net",
            "committed_at",
        ]


class PayrollRunDetailSerializer(PayrollRunSummarySerializer):
    lines = PayrollRunLineSerializer(many=True, read_only=True)

    class Meta(PayrollRunSummarySerializer.Meta):
        fields = PayrollRunSummarySerializer.Meta.fields + ["lines"]
