# polaris/db/repository.py
from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, List, Optional
from uuid import uuid4

from polaris.app.errors import RecordNotFound
from polaris.app.logging import get_logger

from .connection import connect, db_session
from .models import BlueprintRecord, BlueprintStatus


logger = get_logger(__name__)

BLUEPRINT_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS blueprints (
  blueprint_id      TEXT PRIMARY KEY,
  user_id           TEXT,
  static_answers    TEXT NOT NULL DEFAULT '{}',
  dynamic_questions TEXT NOT NULL DEFAULT '[]',
  dynamic_answers   TEXT NOT NULL DEFAULT '{}',
  blueprint_json    TEXT,
  status            TEXT NOT NULL DEFAULT 'draft',
  last_error        TEXT,
  created_at        TEXT NOT NULL DEFAULT (datetime('now')),
  updated_at        TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_blueprints_user ON blueprints(user_id);
"""

_JSON_COLUMNS = {"static_answers", "dynamic_questions", "dynamic_answers", "blueprint_json"}


def _dumps(v: Any) -> str:
    return json.dumps(v, ensure_ascii=False)


def _loads(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    return json.loads(raw)


def _row_to_record(r: sqlite3.Row) -> BlueprintRecord:
    return BlueprintRecord(
        blueprint_id=r["blueprint_id"],
        user_id=r["user_id"],
        static_answers=_loads(r["static_answers"], {}),
        dynamic_questions=_loads(r["dynamic_questions"], []),
        dynamic_answers=_loads(r["dynamic_answers"], {}),
        blueprint=_loads(r["blueprint_json"], None),
        status=r["status"],
        last_error=r["last_error"],
        created_at=r["created_at"],
        updated_at=r["updated_at"],
    )


class BlueprintRepository:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def init_schema(self, schema_sql: str = BLUEPRINT_SCHEMA_SQL) -> None:
        # Execute schema SQL in a single transaction.
        conn = connect(self.db_path)
        try:
            conn.executescript(schema_sql)
            conn.commit()
        finally:
            conn.close()

    def create(self, static_answers: Optional[Dict[str, Any]] = None, user_id: Optional[str] = None) -> str:
        blueprint_id = str(uuid4())
        conn = connect(self.db_path)
        try:
            conn.execute(
                "INSERT INTO blueprints(blueprint_id, user_id, static_answers) VALUES (?, ?, ?)",
                (blueprint_id, user_id, _dumps(static_answers or {})),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Blueprint record created", extra={"blueprint_id": blueprint_id})
        return blueprint_id

    def get(self, blueprint_id: str) -> BlueprintRecord:
        conn = connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM blueprints WHERE blueprint_id = ?",
                (blueprint_id,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise RecordNotFound(f"Blueprint not found: {blueprint_id}")
        return _row_to_record(row)

    def list_for_user(self, user_id: str) -> List[BlueprintRecord]:
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM blueprints WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            ).fetchall()
            return [_row_to_record(r) for r in rows]
        finally:
            conn.close()

    def patch(self, blueprint_id: str, /, **fields: Any) -> None:
        # Update any subset of columns safely.
        allowed = _JSON_COLUMNS | {"user_id", "status", "last_error"}
        set_parts = []
        params: List[Any] = []

        for k, v in fields.items():
            if k not in allowed:
                continue
            set_parts.append(f"{k} = ?")
            if k in _JSON_COLUMNS and v is not None:
                params.append(_dumps(v))
            else:
                params.append(v)

        if not set_parts:
            return

        set_parts.append("updated_at = datetime('now')")
        params.append(blueprint_id)
        with db_session(self.db_path) as conn:
            cur = conn.execute(
                f"UPDATE blueprints SET {', '.join(set_parts)} WHERE blueprint_id = ?",
                params,
            )
            if cur.rowcount == 0:
                raise RecordNotFound(f"Blueprint not found: {blueprint_id}")

    # -------------------------
    # Convenience writers
    # -------------------------

    def save_static_answers(self, blueprint_id: str, answers: Dict[str, Any]) -> None:
        self.patch(blueprint_id, static_answers=answers)

    def save_dynamic_questions(self, blueprint_id: str, sections: List[Dict[str, Any]]) -> None:
        self.patch(blueprint_id, dynamic_questions=sections)

    def save_dynamic_answers(
        self, blueprint_id: str, answers: Dict[str, Any], status: Optional[BlueprintStatus] = None
    ) -> None:
        if status is None:
            self.patch(blueprint_id, dynamic_answers=answers)
        else:
            self.patch(blueprint_id, dynamic_answers=answers, status=status)

    def merge_dynamic_answers(
        self, blueprint_id: str, answers: Dict[str, Any], status: Optional[BlueprintStatus] = None
    ) -> Dict[str, Any]:
        # Read, merge and write under one write lock; returns the stored map.
        with db_session(self.db_path, immediate=True) as conn:
            row = conn.execute(
                "SELECT dynamic_answers FROM blueprints WHERE blueprint_id = ?",
                (blueprint_id,),
            ).fetchone()
            if row is None:
                raise RecordNotFound(f"Blueprint not found: {blueprint_id}")

            merged = {**_loads(row["dynamic_answers"], {}), **answers}
            set_parts = ["dynamic_answers = ?", "updated_at = datetime('now')"]
            params: List[Any] = [_dumps(merged)]
            if status is not None:
                set_parts.append("status = ?")
                params.append(status)
            params.append(blueprint_id)
            conn.execute(f"UPDATE blueprints SET {', '.join(set_parts)} WHERE blueprint_id = ?", params)
        return merged

    def save_blueprint(self, blueprint_id: str, blueprint: Dict[str, Any]) -> None:
        self.patch(blueprint_id, blueprint_json=blueprint, status="completed", last_error=None)
        logger.info("Blueprint stored", extra={"blueprint_id": blueprint_id})

    def set_status(self, blueprint_id: str, status: BlueprintStatus, last_error: Optional[str] = None) -> None:
        self.patch(blueprint_id, status=status, last_error=last_error)
