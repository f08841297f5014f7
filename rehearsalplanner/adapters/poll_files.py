"""
YAML persistence for rehearsal polls.

A poll file looks like::

    poll_id: june-rehearsal
    title: June rehearsal
    location: Room B
    responses:
      - participant: alice
        parts: [guitar]
        slots: ["2025-06-01 14:00", "2025-06-01 14:30"]
"""

from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..domain.models import ParticipantAvailability, PollSession


def load_poll(path: Path) -> PollSession:
    """
    Load a poll and its responses from a YAML file.

    Raises:
        FileNotFoundError: If the poll file doesn't exist
        ValueError: If the file is not valid YAML or a slot cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Poll file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("Poll file must contain a mapping at the root level.")

    session = PollSession(
        poll_id=str(data.get("poll_id") or path.stem),
        title=data.get("title") or "",
        location=data.get("location") or "",
    )

    for response in data.get("responses") or []:
        try:
            participant = str(response["participant"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Poll response without a participant in {path}") from exc

        session = session.with_submission(
            ParticipantAvailability.from_submission(
                participant,
                response.get("slots") or [],
                parts=response.get("parts") or [],
            )
        )

    return session


def save_poll(session: PollSession, path: Path) -> None:
    """Write a poll and its responses to a YAML file."""
    responses: List[Dict[str, Any]] = [
        {
            "participant": submission.participant_id,
            "parts": list(submission.parts),
            "slots": [str(slot) for slot in sorted(submission.slots)],
        }
        for submission in session.submissions
    ]
    data = {
        "poll_id": session.poll_id,
        "title": session.title,
        "location": session.location,
        "responses": responses,
    }

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False)
