from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    ConceptViewSet,
    PayrollCommitView,
    PayrollPreviewView,
    PayrollRunDetailView,
    PayrollRunListView,
)

router = DefaultRouter()
router.register(r"concepts", ConceptViewSet, basename="payroll-concepts")

urlpatterns = [
    path("", include(router.urls)),
    path("preview/", PayrollPreviewView.as_view(), name="payroll-preview"),
    path("commit/", PayrollCommitView.as_view(), name="payroll-commit"),
    path("runs/", PayrollRunListView.as_view(), name="payroll-runs"),
    path("runs/<uuid:run_id>/", PayrollRunDetailView.as_view(), name="payroll-run-detail"),
]
