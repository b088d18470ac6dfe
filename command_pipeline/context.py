"""
Command session context extraction.

LiveKit job metadata is a freeform string, commonly JSON (see LiveKit Agents
docs: Job lifecycle -> metadata). This module:
- Parses job metadata JSON safely
- Resolves session_id from job metadata / participant attributes with fallback
- Picks per-session overrides (command set, source language)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class DispatchContext:
    """Parsed context derived from LiveKit dispatch / participant."""

    session_id: str
    command_set: Optional[str] = None
    source_language: Optional[str] = None
    metadata_raw: Optional[str] = None


def parse_job_metadata(metadata: Optional[str]) -> dict[str, Any]:
    """
    Parse JobContext.job.metadata.

    Returns {} if metadata is missing or not a JSON object.
    """
    if not metadata:
        return {}
    try:
        parsed = json.loads(metadata)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    return parsed


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_session_id(
    *,
    room_name: str,
    job_metadata: Optional[str],
    participant_attributes: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Resolve the session_id used to correlate logs, events and telemetry.

    Priority:
    1) job metadata JSON key "session_id"
    2) participant attributes key "session_id"
    3) fallback: room name
    """
    md_session_id = _non_empty_str(parse_job_metadata(job_metadata).get("session_id"))
    if md_session_id:
        return md_session_id

    if participant_attributes:
        attr_session_id = _non_empty_str(participant_attributes.get("session_id"))
        if attr_session_id:
            return attr_session_id

    return room_name or "unknown"


def build_dispatch_context(
    *,
    room_name: str,
    job_metadata: Optional[str],
    participant_attributes: Optional[Mapping[str, str]] = None,
) -> DispatchContext:
    """Build a single context object used by the pipeline."""
    md = parse_job_metadata(job_metadata)
    session_id = resolve_session_id(
        room_name=room_name,
        job_metadata=job_metadata,
        participant_attributes=participant_attributes,
    )
    language = _non_empty_str(md.get("language"))
    return DispatchContext(
        session_id=session_id,
        command_set=_non_empty_str(md.get("command_set")),
        source_language=language.lower() if language else None,
        metadata_raw=job_metadata,
    )
