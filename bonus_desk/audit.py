from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .presets import PresetStore


class AuditLogger:
    def __init__(self, store: PresetStore, log_path: str) -> None:
        self.store = store
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event_type: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "message": message,
            "context": context or {},
        }
        self.store.record_audit(event_type, message, context)
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
