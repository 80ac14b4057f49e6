# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Prometheus metrics for share computation, chain reads and transaction submission.
"""

from .metrics import metrics_registry, update_metrics

__all__ = ['metrics_registry', 'update_metrics']
