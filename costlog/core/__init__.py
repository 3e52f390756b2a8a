"""
Core modules for CostLog.

This package contains spend statistics, anomaly detection, alert rule
evaluation, debouncing and budget tracking.
"""
