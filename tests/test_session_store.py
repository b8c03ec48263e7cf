"""Tests for the file-backed per-user state store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sourcing_agent.models.workflow import UserWorkflowState, WorkflowStep
from sourcing_agent.session import StateStore


class TestStateStore:
    def test_missing_user_gets_defaults(self, tmp_path):
        store = StateStore(tmp_path)
        assert store.load("nobody") == UserWorkflowState()

    def test_save_and_load_round_trip(self, tmp_path):
        store = StateStore(tmp_path)
        state = UserWorkflowState(
            current_step=WorkflowStep.SUPPLIERS_FOUND,
            email_id="a@b.com",
            project_id="42",
            engagement_id="202510161830",
            suppliers_json='{"results": []}',
            last_activity_time=datetime(2025, 10, 16, 18, 30, tzinfo=timezone.utc),
            state_id="202510161830",
        )
        store.save("user-1", state)
        assert store.load("user-1") == state

    def test_step_is_stored_as_plain_string(self, tmp_path):
        store = StateStore(tmp_path)
        store.save("user-1", UserWorkflowState(current_step=WorkflowStep.PUBLISHED))
        raw = (tmp_path / "user-1.json").read_text(encoding="utf-8")
        assert '"current_step": "published"' in raw

    def test_user_keys_are_sanitized(self, tmp_path):
        store = StateStore(tmp_path)
        store.save("29:1a/b\\c", UserWorkflowState(project_id="7"))
        assert [p.name for p in tmp_path.iterdir()] == ["29_1a_b_c.json"]
        assert store.load("29:1a/b\\c").project_id == "7"

    def test_corrupt_record_yields_defaults(self, tmp_path, caplog):
        store = StateStore(tmp_path)
        (tmp_path / "user-1.json").write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING):
            assert store.load("user-1") == UserWorkflowState()
        assert "corrupt state" in caplog.text

    def test_invalid_step_yields_defaults(self, tmp_path):
        store = StateStore(tmp_path)
        (tmp_path / "user-1.json").write_text('{"current_step": "halfway"}', encoding="utf-8")
        assert store.load("user-1") == UserWorkflowState()

    def test_save_leaves_no_temp_files(self, tmp_path):
        store = StateStore(tmp_path)
        store.save("u", UserWorkflowState())
        store.save("u", UserWorkflowState(project_id="1"))
        assert [p.name for p in tmp_path.iterdir()] == ["u.json"]

    def test_delete(self, tmp_path):
        store = StateStore(tmp_path)
        store.save("u", UserWorkflowState())
        assert store.delete("u") is True
        assert store.delete("u") is False
        assert store.load("u") == UserWorkflowState()
