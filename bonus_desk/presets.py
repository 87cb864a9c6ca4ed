from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from bonus_engine.models import BonusConfig


@dataclass
class PresetRecord:
    id: str
    name: str
    created_at: str
    mode: str


class PresetStore:
    """
    Named configuration snapshots plus the audit trail, in one SQLite file.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._ensure_parent()
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._init_db()

    def _ensure_parent(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS presets (
                id TEXT PRIMARY KEY,
                name TEXT,
                created_at TEXT,
                mode TEXT,
                config_json TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS audit (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts TEXT,
                event_type TEXT,
                message TEXT,
                context_json TEXT
            )
            """
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def save(self, name: str, config: BonusConfig) -> str:
        preset_id = uuid.uuid4().hex[:12]
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT INTO presets (id, name, created_at, mode, config_json)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                preset_id,
                name,
                datetime.now(timezone.utc).isoformat(),
                config.mode,
                config.model_dump_json(),
            ),
        )
        self.conn.commit()
        return preset_id

    def list(self) -> List[PresetRecord]:
        cur = self.conn.cursor()
        cur.execute("SELECT id, name, created_at, mode FROM presets ORDER BY created_at DESC")
        return [PresetRecord(id=r["id"], name=r["name"], created_at=r["created_at"], mode=r["mode"]) for r in cur.fetchall()]

    def load(self, preset_id: str) -> Optional[BonusConfig]:
        cur = self.conn.cursor()
        cur.execute("SELECT config_json FROM presets WHERE id = ?", (preset_id,))
        row = cur.fetchone()
        if row is None:
            return None
        return BonusConfig.model_validate_json(row["config_json"])

    def delete(self, preset_id: str) -> bool:
        cur = self.conn.cursor()
        cur.execute("DELETE FROM presets WHERE id = ?", (preset_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def record_audit(self, event_type: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            INSERT INTO audit (ts, event_type, message, context_json)
            VALUES (?, ?, ?, ?)
            """,
            (
                datetime.now(timezone.utc).isoformat(),
                event_type,
                message,
                json.dumps(context or {}),
            ),
        )
        self.conn.commit()

    def recent_audit(self, limit: int = 20) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT ts, event_type, message, context_json FROM audit ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        results: List[Dict[str, Any]] = []
        for row in cur.fetchall():
            results.append(
                {
                    "ts": row["ts"],
                    "event_type": row["event_type"],
                    "message": row["message"],
                    "context": json.loads(row["context_json"] or "{}"),
                }
            )
        return results
