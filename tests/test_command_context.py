"""
Tests for command_pipeline.context session resolution.
"""

from command_pipeline.context import build_dispatch_context, parse_job_metadata, resolve_session_id


def test_parse_job_metadata_empty():
    assert parse_job_metadata(None) == {}
    assert parse_job_metadata("") == {}


def test_parse_job_metadata_non_json():
    assert parse_job_metadata("not-json") == {}
    assert parse_job_metadata("[1, 2]") == {}


def test_parse_job_metadata_json_object():
    assert parse_job_metadata('{"command_set":"relaxed"}') == {"command_set": "relaxed"}


def test_resolve_session_id_prefers_job_metadata():
    sid = resolve_session_id(
        room_name="room-xyz",
        job_metadata='{"session_id":"sess_123"}',
        participant_attributes={"session_id": "sess_attr"},
    )
    assert sid == "sess_123"


def test_resolve_session_id_falls_back_to_participant_attributes():
    sid = resolve_session_id(
        room_name="room-xyz",
        job_metadata='{"session_id":"  "}',
        participant_attributes={"session_id": "sess_attr"},
    )
    assert sid == "sess_attr"


def test_resolve_session_id_falls_back_to_room_name():
    sid = resolve_session_id(
        room_name="room-xyz",
        job_metadata=None,
        participant_attributes={"other": "x"},
    )
    assert sid == "room-xyz"


def test_build_dispatch_context_overrides():
    ctx = build_dispatch_context(
        room_name="room-xyz",
        job_metadata='{"command_set":"relaxed","language":"PT"}',
    )
    assert ctx.session_id == "room-xyz"
    assert ctx.command_set == "relaxed"
    assert ctx.source_language == "pt"


def test_build_dispatch_context_without_overrides():
    ctx = build_dispatch_context(room_name="room-xyz", job_metadata='{"language": 5}')
    assert ctx.command_set is None
    assert ctx.source_language is None
