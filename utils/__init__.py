"""Utilities for the coordinator engine."""

from .utils import (
    setup_logging,
    save_results,
    PerformanceMonitor,
    OperationContext,
    OperationSample,
    create_performance_report,
    create_results_summary,
    format_duration,
    get_system_info
)

__all__ = [
    'setup_logging',
    'save_results',
    'PerformanceMonitor',
    'OperationContext',
    'OperationSample',
    'create_performance_report',
    'create_results_summary',
    'format_duration',
    'get_system_info'
]
