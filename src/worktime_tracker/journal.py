"""The command line host's permanent record of delivered sessions.

A JSON file mapping task ids to their closed sessions. Appends are
de-duplicated by session id, so a session delivered twice after an unlucky
crash is only counted once.
"""

import json
import logging
import os
from pathlib import Path

from .models import RecordError, WorkSession

logger = logging.getLogger(__name__)


class SessionJournal:
    """Closed sessions per task, stored in a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, list[dict]]:
        try:
            data = json.loads(self.path.read_text("utf-8"))
        except FileNotFoundError:
            return {}
        except ValueError as e:
            raise RecordError(f"Journal {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise RecordError(f"Journal {self.path} must hold a JSON object")
        return data

    def _save(self, data: dict[str, list[dict]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def append(self, task_id: str, session: WorkSession) -> bool:
        """Record a closed session for a task.

        Returns:
            False if a session with the same id was already recorded
        """
        if session.is_active:
            raise ValueError(f"Cannot journal open session {session.id}")

        data = self._load()
        entries = data.setdefault(task_id, [])
        if any(entry.get("id") == session.id for entry in entries):
            logger.info(
                "Session already journaled, skipping",
                extra={"task_id": task_id, "session_id": session.id},
            )
            return False

        entries.append(session.to_dict())
        self._save(data)
        return True

    def sessions_for(self, task_id: str) -> list[WorkSession]:
        return [WorkSession.from_dict(entry) for entry in self._load().get(task_id, [])]

    def task_ids(self) -> list[str]:
        return sorted(self._load())
