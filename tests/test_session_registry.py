"""Tests for the session registry and status merging"""

import math

import pytest
from pydantic import ValidationError

from speedrelay.exceptions import NoTargetError
from speedrelay.protocol import ContextResponse
from speedrelay.registry import (
    ContextStatus,
    SessionRegistry,
    merge_status,
    status_updates_from_response,
)


class TestMergeStatus:
    def test_new_context_defaults(self):
        assert merge_status(None, {}) == ContextStatus()

    def test_absent_fields_keep_previous_values(self):
        existing = ContextStatus(has_media=True, has_playing=True, last_speed=1.5)
        merged = merge_status(existing, {"last_speed": None, "has_playing": False})
        assert merged == ContextStatus(has_media=True, has_playing=False, last_speed=1.5)

    def test_playing_implies_media(self):
        merged = merge_status(ContextStatus(), {"has_playing": True})
        assert merged.has_playing is True
        assert merged.has_media is True

    def test_losing_media_ends_playing(self):
        existing = ContextStatus(has_media=True, has_playing=True)
        merged = merge_status(existing, {"has_media": False})
        assert merged.has_media is False
        assert merged.has_playing is False


class TestStatusUpdatesFromResponse:
    def test_applied_means_playing_media(self):
        updates = status_updates_from_response(ContextResponse(speed=1.25, applied=True))
        assert updates == {"has_playing": True, "has_media": True, "last_speed": 1.25}

    def test_not_applied_means_not_playing(self):
        updates = status_updates_from_response(ContextResponse(speed=1.0, applied=False))
        assert updates["has_playing"] is False

    def test_explicit_media_flag_wins(self):
        updates = status_updates_from_response(ContextResponse(applied=False, has_media=False))
        assert updates["has_media"] is False

    def test_explicit_playing_flag_wins_over_applied(self):
        updates = status_updates_from_response(
            ContextResponse(speed=1.0, applied=False, has_media=True, has_playing=True)
        )
        assert updates == {"has_media": True, "has_playing": True, "last_speed": 1.0}

    def test_empty_response(self):
        assert status_updates_from_response(ContextResponse()) == {}


class TestSessionRegistry:
    @pytest.fixture
    def registry(self):
        return SessionRegistry()

    @pytest.fixture
    def session_id(self):
        return "tab-1"

    def test_initial_state_is_empty(self, registry):
        assert registry.sessions() == []
        assert registry.focused_session is None
        assert registry.contexts("any") == []

    def test_upsert_creates_session_and_context(self, registry, session_id):
        status = registry.upsert_context(session_id, 3, {"has_media": True})
        assert registry.has_session(session_id)
        assert registry.get_context(session_id, 3) == status
        assert status.has_media is True

    def test_contexts_keep_registry_order(self, registry, session_id):
        for context_id in (5, 1, 3):
            registry.upsert_context(session_id, context_id, {})
        assert [context_id for context_id, _ in registry.contexts(session_id)] == [5, 1, 3]

    def test_activity_moves_focus(self, registry):
        registry.upsert_context("a", 1, {"has_media": True})
        assert registry.focused_session is None
        registry.upsert_context("b", 1, {"has_playing": True}, activity=True)
        assert registry.focused_session == "b"

    def test_merge_response_records_reply(self, registry, session_id):
        registry.merge_response(session_id, 2, ContextResponse(speed=2.0, applied=True))
        assert registry.get_context(session_id, 2) == ContextStatus(
            has_media=True, has_playing=True, last_speed=2.0
        )

    def test_merge_empty_response_creates_nothing(self, registry, session_id):
        assert registry.merge_response(session_id, 2, ContextResponse()) is None
        assert registry.contexts(session_id) == []

    def test_remove_context_keeps_session(self, registry, session_id):
        registry.upsert_context(session_id, 1, {"has_media": True})
        registry.cache_speed(session_id, 1.5)

        assert registry.remove_context(session_id, 1) is True
        assert registry.contexts(session_id) == []
        assert registry.cached_speed(session_id) == 1.5
        assert registry.remove_context(session_id, 1) is False

    def test_destroy_session(self, registry, session_id):
        registry.focus(session_id)
        registry.cache_speed(session_id, 2.0)

        assert registry.destroy_session(session_id) is True
        assert not registry.has_session(session_id)
        assert registry.cached_speed(session_id) is None
        assert registry.focused_session is None
        assert registry.destroy_session(session_id) is False

    def test_destroying_another_session_keeps_focus(self, registry):
        registry.focus("a")
        registry.ensure_session("b")
        registry.destroy_session("b")
        assert registry.focused_session == "a"

    def test_speed_cache(self, registry):
        registry.cache_speed("a", 1.5)
        registry.cache_speed("b", 2.0)
        registry.clear_cache("a")
        assert registry.cached_speed("a") is None
        assert registry.cached_speed("b") == 2.0

        registry.clear_all_caches()
        assert registry.cached_speed("b") is None

    def test_reset(self, registry):
        registry.focus("a")
        registry.upsert_context("a", 1, {})
        registry.reset()
        assert registry.sessions() == []
        assert registry.focused_session is None


class TestResolveTarget:
    @pytest.fixture
    def registry(self):
        return SessionRegistry()

    def test_explicit_session_wins(self, registry):
        registry.focus("focused")
        assert registry.resolve_target("other") == "other"

    def test_numeric_session_ids(self, registry):
        assert registry.resolve_target(7) == "7"

    @pytest.mark.parametrize("missing", [None, "", math.nan])
    def test_falls_back_to_focused_session(self, registry, missing):
        registry.focus("focused")
        assert registry.resolve_target(missing) == "focused"

    def test_no_target(self, registry):
        with pytest.raises(NoTargetError):
            registry.resolve_target(None)


class TestStatusInvariant:
    def test_playing_without_media_is_rejected(self):
        with pytest.raises(ValidationError):
            ContextStatus(has_playing=True)

    @pytest.mark.parametrize(
        "updates",
        [
            [{"has_playing": True}, {"has_media": False}, {"has_playing": True}],
            [{"has_media": True, "has_playing": True}, {"has_media": False, "has_playing": True}],
            [{"last_speed": 1.5}, {"has_playing": False}, {"has_media": False}],
        ],
    )
    def test_playing_implies_media_after_every_mutation(self, updates):
        registry = SessionRegistry()
        for update in updates:
            registry.upsert_context("tab", 1, update)
            status = registry.get_context("tab", 1)
            assert not status.has_playing or status.has_media
