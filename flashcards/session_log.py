"""Session logging -- appends a JSONL line for every completed study session."""

import json
from pathlib import Path
from typing import List, Optional

from flashcards.models import StudySessionSummary


def log_session(log_path: Path, summary: StudySessionSummary) -> dict:
    """
    Append a session record to the JSONL log file.

    Returns:
        The record dict that was written.
    """
    record = summary.to_dict()
    record['accuracy'] = round(summary.accuracy, 4)
    duration = (summary.end_time - summary.start_time).total_seconds()
    record['duration_seconds'] = round(max(duration, 0.0), 3)

    log_path.parent.mkdir(parents=True, exist_ok=True)
    with open(log_path, 'a', encoding='utf-8') as f:
        f.write(json.dumps(record, ensure_ascii=False) + '\n')
    return record


def read_session_log(log_path: Path, deck_id: Optional[str] = None) -> List[StudySessionSummary]:
    """Read session records, optionally only those for one deck."""
    records: List[StudySessionSummary] = []
    if not log_path.exists():
        return records
    with open(log_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            summary = StudySessionSummary.from_dict(json.loads(line))
            if deck_id is None or summary.deck_id == deck_id:
                records.append(summary)
    return records
