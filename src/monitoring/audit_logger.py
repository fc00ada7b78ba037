"""
Audit Logger

Logs every engine event for auditability.
Subscribed to the engine's event log, so every committed operation is
recorded and aborted ones never are.

Logged Information:
- Timestamp (UTC) and engine timestamp
- Event type, actor, pool, amount
- Event details (JSON)
- Config hash of the engine parameters in force
"""

import csv
import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from aggregator.events import Event

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class AuditRecord:
    """Complete audit record for an engine event."""
    # Timing
    logged_at: str
    record_id: str
    engine_time: int

    # Event
    event_type: str
    actor: Optional[str]
    pool: Optional[str]
    amount: Optional[int]
    details: str  # JSON

    # Metadata
    config_hash: str


class AuditLogger:
    """
    Audit logger for the complete allocation trail.

    Usage:
        audit = AuditLogger()
        audit.attach(engine)
        ...
        audit.export_report()
    """

    def __init__(self, log_dir: Optional[Path] = None, json_limit: int = 1000):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs
            json_limit: Records kept in the JSON log
        """
        self.log_dir = Path(log_dir) if log_dir else Path(__file__).parent.parent.parent / "logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.audit_log_path = self.log_dir / "aggregator_audit.csv"
        self.audit_json_path = self.log_dir / "aggregator_audit.json"
        self.json_limit = json_limit

        self.engine = None

        self._init_csv()
        self._record_count = self._count_existing()

        logger.info(f"AuditLogger initialized at {self.log_dir}")

    def attach(self, engine):
        """Record every event the engine publishes."""
        self.engine = engine
        engine.events.subscribe(self.log_event)

    def _engine_config(self) -> Dict[str, Any]:
        if self.engine is None:
            return {}
        status = self.engine.status()
        return {
            "max_pool_allocation_bps": status["max_pool_allocation_bps"],
            "min_allocation": status["min_allocation"],
            "rebalance_threshold_bps": status["rebalance_threshold_bps"],
            "rebalance_cooldown": status["rebalance_cooldown"],
        }

    @staticmethod
    def config_hash(config: Dict[str, Any]) -> str:
        """Generate hash of configuration."""
        config_str = json.dumps(config, sort_keys=True)
        return hashlib.md5(config_str.encode()).hexdigest()[:8]

    def _init_csv(self):
        """Initialize CSV with headers if needed."""
        if not self.audit_log_path.exists():
            with open(self.audit_log_path, 'w', newline='') as f:
                writer = csv.DictWriter(f, fieldnames=list(AuditRecord.__annotations__.keys()))
                writer.writeheader()

    def _count_existing(self) -> int:
        with open(self.audit_log_path, 'r') as f:
            return sum(1 for _ in f) - 1  # Subtract header

    def log_event(self, event: Event) -> AuditRecord:
        """
        Log a committed engine event.

        Returns:
            AuditRecord created
        """
        self._record_count += 1

        record = AuditRecord(
            logged_at=datetime.now(timezone.utc).isoformat(),
            record_id=f"A{self._record_count:06d}",
            engine_time=event.timestamp,
            event_type=event.event_type.value,
            actor=event.actor,
            pool=event.pool,
            amount=event.amount,
            details=json.dumps(event.meta, sort_keys=True, default=str),
            config_hash=self.config_hash(self._engine_config())
        )

        with open(self.audit_log_path, 'a', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=list(AuditRecord.__annotations__.keys()))
            writer.writerow(asdict(record))

        self._append_json(record)

        logger.info(f"Audit logged: {record.record_id} - {record.event_type}"
                    f"{' ' + record.pool if record.pool else ''}")

        return record

    def _load_json(self) -> List[dict]:
        if not self.audit_json_path.exists():
            return []
        with open(self.audit_json_path, 'r') as f:
            return json.load(f)

    def _append_json(self, record: AuditRecord):
        """Append record to JSON log."""
        records = self._load_json()
        records.append(asdict(record))

        if len(records) > self.json_limit:
            records = records[-self.json_limit:]

        with open(self.audit_json_path, 'w') as f:
            json.dump(records, f, indent=2)

    def get_recent_records(self, n: int = 10) -> List[AuditRecord]:
        """Get n most recent records."""
        return [AuditRecord(**r) for r in self._load_json()[-n:]]

    def get_record_by_id(self, record_id: str) -> Optional[AuditRecord]:
        for r in self._load_json():
            if r['record_id'] == record_id:
                return AuditRecord(**r)
        return None

    def export_report(self, output_path: Optional[Path] = None) -> Path:
        """Export audit summary report."""
        output_path = output_path or self.log_dir.parent / "reports" / "audit_report.json"
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        records = self._load_json()

        event_counts: Dict[str, int] = {}
        actor_counts: Dict[str, int] = {}
        for r in records:
            event_counts[r['event_type']] = event_counts.get(r['event_type'], 0) + 1
            if r['actor']:
                actor_counts[r['actor']] = actor_counts.get(r['actor'], 0) + 1

        report = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "total_records": len(records),
            "event_counts": event_counts,
            "actor_counts": actor_counts,
            "config_hash": self.config_hash(self._engine_config()),
            "recent_records": records[-20:]
        }

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2)

        logger.info(f"Audit report exported: {output_path}")
        return output_path
