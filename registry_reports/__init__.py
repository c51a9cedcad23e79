# registry_reports/__init__.py

"""
Scheduled reports for the civil-registry records system.

This package centralizes:
- config (database URL, scheduler timezone and pool size)
- report definitions and their persistence
- report generation (PDF / Excel) and the cron scheduling engine.
"""

__all__ = ["config"]
