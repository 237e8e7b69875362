# tanapark/workflow/resume_store.py
"""
Resume records for checkouts whose payment outcome is not known yet.

One JSON file per txRef, written before the widget opens. If the app dies
or polling runs out, the record lets the valet re-verify the same txRef
instead of charging the customer a second time.
"""

import json
import os
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Optional

from tanapark.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PendingCheckout:
    tx_ref: str
    kind: str                           # hourly | package
    created_at: str                     # ISO-8601 UTC
    vehicle_id: Optional[int] = None
    package_duration: Optional[str] = None
    license_plate: Optional[str] = None
    fee: dict = field(default_factory=dict)   # base_amount / vat_amount / total_amount / vat_rate / duration_description


class ResumeStore:
    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, tx_ref: str) -> Path:
        return self.directory / f"{tx_ref}.json"

    def save(self, record: PendingCheckout):
        path = self._path(record.tx_ref)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(asdict(record), indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def load(self, tx_ref: str) -> Optional[PendingCheckout]:
        path = self._path(tx_ref)
        if not path.exists():
            return None
        try:
            return PendingCheckout(**json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, TypeError) as e:
            logger.error(f"[RESUME] Unreadable resume record {path.name}: {e}")
            return None

    def delete(self, tx_ref: str) -> bool:
        path = self._path(tx_ref)
        if not path.exists():
            return False
        path.unlink()
        return True

    def pending(self) -> list[PendingCheckout]:
        records = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                records.append(PendingCheckout(**json.loads(path.read_text(encoding="utf-8"))))
            except (ValueError, TypeError) as e:
                logger.error(f"[RESUME] Unreadable resume record {path.name}: {e}")
        return sorted(records, key=lambda r: r.created_at)
