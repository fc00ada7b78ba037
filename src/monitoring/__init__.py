"""
Monitoring package for operational visibility.

Modules:
- audit_logger: Complete engine event trail (CSV/JSON)
- metrics: Prometheus metrics fed by engine events
"""

from .audit_logger import AuditLogger, AuditRecord
from .metrics import MetricsCollector

__all__ = [
    'AuditLogger',
    'AuditRecord',
    'MetricsCollector'
]
