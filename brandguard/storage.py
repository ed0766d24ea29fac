from __future__ import annotations

import json
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from brandguard.config import get_settings
from brandguard.errors import SubmissionNotFound
from brandguard.types import Submission


_SAFE_ID = re.compile(r'^[A-Za-z0-9_.-]+$')


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding='utf-8')
    tmp.replace(path)


def write_bytes_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_bytes(content)
    tmp.replace(path)


def read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding='utf-8'))


def _safe_id(value: str) -> str:
    token = str(value or '').strip()
    if not token:
        raise ValueError('submission id is required')
    if not _SAFE_ID.fullmatch(token) or token in {'.', '..'}:
        raise ValueError(f'invalid submission id: {value}')
    return token


class SubmissionRepository(Protocol):
    def get(self, submission_id: str) -> Submission | None: ...

    def put(self, submission: Submission) -> Submission: ...

    def list_by_project(self, project_id: str) -> list[Submission]: ...

    def next_version(self, project_id: str) -> int: ...

    def require(self, submission_id: str) -> Submission: ...

    def append_event(self, submission_id: str, event: str, **extra: Any) -> None: ...


def _event_row(event: str, **extra: Any) -> dict[str, Any]:
    return {
        'ts': datetime.now(timezone.utc).isoformat(),
        'event': event,
        **extra,
    }


def _newest_first(items: list[Submission]) -> list[Submission]:
    return sorted(items, key=lambda item: (item.created_at, item.version), reverse=True)


class InMemorySubmissionRepository:
    def __init__(self) -> None:
        self._items: dict[str, Submission] = {}
        self._events: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def get(self, submission_id: str) -> Submission | None:
        with self._lock:
            return self._items.get(submission_id)

    def put(self, submission: Submission) -> Submission:
        with self._lock:
            self._items[submission.id] = submission
        return submission

    def list_by_project(self, project_id: str) -> list[Submission]:
        with self._lock:
            items = [item for item in self._items.values() if item.project_id == project_id]
        return _newest_first(items)

    def next_version(self, project_id: str) -> int:
        with self._lock:
            versions = [item.version for item in self._items.values() if item.project_id == project_id]
        return max(versions, default=0) + 1

    def require(self, submission_id: str) -> Submission:
        submission = self.get(submission_id)
        if submission is None:
            raise SubmissionNotFound(f'Submission not found: {submission_id}')
        return submission

    def append_event(self, submission_id: str, event: str, **extra: Any) -> None:
        with self._lock:
            self._events.setdefault(submission_id, []).append(_event_row(event, **extra))

    def read_events(self, submission_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._events.get(submission_id, []))


class JsonSubmissionRepository:
    """One directory per submission holding ``submission.json`` and ``events.jsonl``."""

    def __init__(self, root: Path | None = None):
        self.root = Path(root) if root is not None else get_settings().data_dir / 'submissions'
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def submission_dir(self, submission_id: str) -> Path:
        path = self.root / _safe_id(submission_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def state_path(self, submission_id: str) -> Path:
        return self.submission_dir(submission_id) / 'submission.json'

    def events_path(self, submission_id: str) -> Path:
        return self.submission_dir(submission_id) / 'events.jsonl'

    def get(self, submission_id: str) -> Submission | None:
        try:
            safe = _safe_id(submission_id)
        except ValueError:
            return None
        path = self.root / safe / 'submission.json'
        if not path.exists():
            return None
        with self._lock:
            payload = read_json(path)
        return Submission.model_validate(payload)

    def require(self, submission_id: str) -> Submission:
        submission = self.get(submission_id)
        if submission is None:
            raise SubmissionNotFound(f'Submission not found: {submission_id}')
        return submission

    def put(self, submission: Submission) -> Submission:
        with self._lock:
            write_json_atomic(self.state_path(submission.id), submission.model_dump(mode='json'))
        return submission

    def _all(self) -> list[Submission]:
        items: list[Submission] = []
        for child in sorted(self.root.iterdir()):
            path = child / 'submission.json'
            if not child.is_dir() or not path.exists():
                continue
            with self._lock:
                items.append(Submission.model_validate(read_json(path)))
        return items

    def list_by_project(self, project_id: str) -> list[Submission]:
        return _newest_first([item for item in self._all() if item.project_id == project_id])

    def next_version(self, project_id: str) -> int:
        versions = [item.version for item in self._all() if item.project_id == project_id]
        return max(versions, default=0) + 1

    def append_event(self, submission_id: str, event: str, **extra: Any) -> None:
        row = _event_row(event, **extra)
        with self._lock:
            with self.events_path(submission_id).open('a', encoding='utf-8') as f:
                f.write(json.dumps(row, ensure_ascii=False) + '\n')

    def read_events(self, submission_id: str) -> list[dict[str, Any]]:
        path = self.events_path(submission_id)
        if not path.exists():
            return []
        rows: list[dict[str, Any]] = []
        for line in path.read_text(encoding='utf-8').splitlines():
            if line.strip():
                rows.append(json.loads(line))
        return rows
