"""
Reports app URL configuration.

All routes are registered under the ``/api/`` prefix (included from
``backend.urls``).

Route Hierarchy
---------------
  /api/reports/                                   → list / create
  /api/reports/{id}/                              → retrieve

  ── Workflow @actions ───────────────────────────────────────────
  POST /api/reports/{id}/transition/              → perform a status transition
  GET  /api/reports/{id}/available-transitions/   → allowed next statuses
  GET  /api/reports/{id}/timeline/                → status timeline
  GET  /api/reports/{id}/sla/                     → SLA / overdue status
  GET  /api/reports/metrics/                      → performance metrics
  POST /api/reports/validate-transition/          → dry-run validator
"""

from rest_framework.routers import DefaultRouter

from .views import ReportViewSet

router = DefaultRouter()
router.register(
    prefix=r"reports",
    viewset=ReportViewSet,
    basename="report",
)

urlpatterns = router.urls
