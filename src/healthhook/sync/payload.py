"""JSON webhook payloads: one document per metric type."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from healthhook.health.models import HealthRecord, MetricType


def build_payload(metric_type: MetricType, records: list[HealthRecord], synced_at: datetime) -> dict[str, Any]:
    return {
        "data_type": metric_type.value,
        "label": metric_type.label,
        "record_count": len(records),
        "synced_at": synced_at.isoformat(),
        "records": [r.to_dict() for r in records],
    }


def encode_payload(payload: dict[str, Any]) -> bytes:
    """UTF-8 JSON body.  Non-JSON values (e.g. Decimal) are stringified."""
    return json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
