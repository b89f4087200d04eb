"""In-memory stand-in for the persistence layer.

Tool handlers only see ``find/find_by/create/update/delete`` returning a
``Result``; a real backend can replace ``Repository`` without touching them.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from shared.result import Result


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Repository:
    def __init__(self, kind: str):
        self.kind = kind
        self._rows: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def find(self, record_id: str) -> Result[dict | None]:
        with self._lock:
            row = self._rows.get(record_id)
            return Result.success(dict(row) if row else None)

    def find_by(self, **criteria: Any) -> Result[list[dict]]:
        with self._lock:
            rows = [dict(r) for r in self._rows.values() if all(r.get(k) == v for k, v in criteria.items())]
        return Result.success(rows)

    def create(self, data: dict[str, Any]) -> Result[dict]:
        now = _now()
        row = {**data, "id": data.get("id") or str(uuid.uuid4()), "createdAt": now, "updatedAt": now}
        with self._lock:
            if row["id"] in self._rows:
                return Result.failure(f"{self.kind} {row['id']} already exists")
            self._rows[row["id"]] = row
        return Result.success(dict(row))

    def update(self, record_id: str, data: dict[str, Any]) -> Result[dict]:
        with self._lock:
            row = self._rows.get(record_id)
            if row is None:
                return Result.failure(f"{self.kind} not_found: {record_id}")
            row.update({k: v for k, v in data.items() if k not in {"id", "createdAt"}})
            row["updatedAt"] = _now()
            return Result.success(dict(row))

    def delete(self, record_id: str) -> Result[None]:
        with self._lock:
            if self._rows.pop(record_id, None) is None:
                return Result.failure(f"{self.kind} not_found: {record_id}")
        return Result.success(None)


@dataclass
class Repositories:
    users: Repository = field(default_factory=lambda: Repository("user"))
    organizations: Repository = field(default_factory=lambda: Repository("organization"))
    members: Repository = field(default_factory=lambda: Repository("member"))
    projects: Repository = field(default_factory=lambda: Repository("project"))
    tasks: Repository = field(default_factory=lambda: Repository("task"))
    teams: Repository = field(default_factory=lambda: Repository("team"))
    departments: Repository = field(default_factory=lambda: Repository("department"))

    def for_entity(self, entity_type: str) -> Repository:
        repo = {
            "organization": self.organizations,
            "project": self.projects,
            "task": self.tasks,
            "team": self.teams,
            "department": self.departments,
        }.get(entity_type)
        if repo is None:
            raise ValueError(f"unknown entity type: {entity_type}")
        return repo
