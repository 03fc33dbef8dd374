"""Reporting module for the occupation taxonomy.

Aggregates coverage and completeness metrics for the management dashboard.
"""

from occutax.reporting.dashboard_metrics import DashboardMetrics, compute_dashboard_metrics

__all__ = ["DashboardMetrics", "compute_dashboard_metrics"]
