from django.core.paginator import EmptyPage, Paginator
from django.db.models import Q
from rest_framework import permissions, status, viewsets
from rest_framework.views import APIView

from core.utils import api_response

from .models import Concept
from .serializers import (
    ConceptSerializer,
    PayrollCommitSerializer,
    PayrollHistoryQuerySerializer,
    PayrollPreviewSerializer,
    PayrollRunDetailSerializer,
    PayrollRunRequestSerializer,
    PayrollRunSummarySerializer,
)
from .services import commit_payroll, compute_preview, get_committed_run, list_committed_runs


class ConceptViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Concept.objects.all()
    serializer_class = ConceptSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        qs = super().get_queryset()
        concept_type = self.request.query_params.get("concept_type")
        is_active = self.request.query_params.get("is_active")
        search = self.request.query_params.get("search")

        if concept_type:
            qs = qs.filter(concept_type=concept_type)
        if is_active in ("true", "false"):
            qs = qs.filter(is_active=is_active == "true")
        if search:
            qs = qs.filter(Q(code__icontains=search) | Q(name__icontains=search) | Q(description__icontains=search))
        return qs.order_by("concept_type", "order", "code")


class PayrollPreviewView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = PayrollRunRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = compute_preview(
            period=data["period"],
            payroll_type=data["payroll_type"],
            personnel_scope=data["personnel_scope"],
        )
        return api_response(
            success=True,
            message="Payroll preview computed.",
            data=PayrollPreviewSerializer(result).data,
        )


class PayrollCommitView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = PayrollCommitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        run_id = commit_payroll(
            period=data["period"],
            payroll_type=data["payroll_type"],
            personnel_scope=data["personnel_scope"],
            lines=serializer.to_lines(),
        )
        return api_response(
            success=True,
            message="Payroll committed.",
            data={"run_id": str(run_id)},
            status=status.HTTP_201_CREATED,
        )


class PayrollRunListView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        query = PayrollHistoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        qs = list_committed_runs(
            payroll_type=params.get("payroll_type"),
            period_from=params.get("period_from"),
            period_to=params.get("period_to"),
        )
        paginator = Paginator(qs, params["limit"])
        try:
            page = paginator.page(params["page"])
            results = PayrollRunSummarySerializer(page.object_list, many=True).data
        except EmptyPage:
            page = None
            results = []

        return api_response(
            success=True,
            message="Payroll runs retrieved.",
            data={
                "results": results,
                "pagination": {
                    "current_page": params["page"],
                    "per_page": params["limit"],
                    "total": paginator.count,
                    "total_pages": paginator.num_pages if paginator.count else 0,
                    "has_next_page": bool(page and page.has_next()),
                    "has_prev_page": params["page"] > 1,
                },
            },
        )


class PayrollRunDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, run_id):
        run = get_committed_run(run_id)
        return api_response(
            success=True,
            message="Payroll run retrieved.",
            data=PayrollRunDetailSerializer(run).data,
        )
