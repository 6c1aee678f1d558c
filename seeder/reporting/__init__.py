"""
Reporting package: CSV exports and live statistics pulled from the downstream
services.
"""

from seeder.reporting.exporter import ReportingExporter, render_csv

__all__ = ["ReportingExporter", "render_csv"]
