"""Reporting module for AccessHub.

Door access reports over lock history and dashboard metrics.
"""

from accesshub.reporting.access_reports import generate_report
from accesshub.reporting.dashboard_metrics import DashboardMetrics, compute_dashboard_metrics

__all__ = ["DashboardMetrics", "compute_dashboard_metrics", "generate_report"]
