"""
Application service tests: the transactional advance core:
  - happy path walk through every phase (monotonic, version, history chain)
  - role gating against the freshly read status
  - terminal lock for every actor
  - per-role section merge isolation, append-only documents
  - full rollback when the commit fails
  - post-commit event emission, non-fatal subscriber failures
  - intake and read helpers
"""

from datetime import datetime, timedelta, timezone

import pytest

from licensing.core.actor import Actor
from licensing.core.exceptions import BadStateError, ForbiddenError, NotFoundError, ValidationError
from licensing.core.phases import PHASES, ROLE_TO_PHASE, role_for_phase
from licensing.models import db as _db
from licensing.services import application_service as svc
from licensing.services.events import APPLICATION_ADVANCED, subscribe, unsubscribe


def _actor(role, actor_id="officer-1", name=None):
    return Actor(id=actor_id, role=role, name=name)


def _owner(phase):
    return _actor(role_for_phase(phase), actor_id=f"{role_for_phase(phase)}-officer")


@pytest.fixture()
def captured_events():
    """Collect application.advanced payloads for the duration of a test."""
    events = []

    def _capture(payload):
        events.append(payload)

    subscribe(APPLICATION_ADVANCED)(_capture)
    yield events
    unsubscribe(APPLICATION_ADVANCED, _capture)


# ═══════════════════════════════════════════════════════════════════════════
# Advance: happy path
# ═══════════════════════════════════════════════════════════════════════════


class TestAdvance:
    def test_entry_phase_owner_moves_application_forward(self, make_application):
        app_id = make_application()

        result = svc.advance(app_id, _actor("moj_flag"), {"comment": "ok"})

        assert result["status"] == PHASES[1]
        assert result["version"] == 1
        assert len(result["history"]) == 1
        entry = result["history"][0]
        assert entry["by"] == "officer-1"
        assert entry["role"] == "moj_flag"
        assert entry["from"] == PHASES[0]
        assert entry["to"] == PHASES[1]
        assert entry["comment"] == "ok"

    def test_walk_through_every_phase(self, make_application):
        app_id = make_application()

        for n in range(1, len(PHASES)):
            current = svc.get_by_id(app_id)
            before = len(current["history"])
            result = svc.advance(app_id, _owner(current["status"]), {})
            assert result["status"] == PHASES[n]
            assert result["version"] == n
            assert len(result["history"]) == before + 1
            assert result["history"][-1]["from"] == current["status"]

        history = svc.get_history(app_id)
        assert history[0]["from"] == PHASES[0]
        for prev, nxt in zip(history, history[1:]):
            assert nxt["from"] == prev["to"]
        assert history[-1]["to"] == PHASES[-1]

    def test_missing_comment_is_recorded_as_empty(self, make_application):
        app_id = make_application()
        result = svc.advance(app_id, _actor("moj_flag"))
        assert result["history"][0]["comment"] == ""

    def test_history_falls_back_to_name_then_unknown(self, make_application):
        app_id = make_application()
        result = svc.advance(app_id, Actor(id=None, role="moj_flag", name="Registry Clerk"))
        assert result["history"][-1]["by"] == "Registry Clerk"

        result = svc.advance(app_id, Actor(id=None, role="club"))
        assert result["history"][-1]["by"] == "unknown"

    def test_result_is_detached_plain_dict(self, make_application):
        app_id = make_application()
        result = svc.advance(app_id, _actor("moj_flag"), {"additions": {"k": "v"}})
        result["sections"]["moj_flag"]["k"] = "tampered"
        result["status"] = "tampered"
        fresh = svc.get_by_id(app_id)
        assert fresh["sections"]["moj_flag"]["k"] == "v"
        assert fresh["status"] == PHASES[1]


# ═══════════════════════════════════════════════════════════════════════════
# Advance: rejections
# ═══════════════════════════════════════════════════════════════════════════


class TestAdvanceRejections:
    def test_same_role_twice_is_rejected_without_state_change(self, make_application):
        app_id = make_application()
        svc.advance(app_id, _actor("moj_flag"), {"comment": "first"})

        with pytest.raises(ForbiddenError) as exc:
            svc.advance(app_id, _actor("moj_flag"), {"comment": "second"})

        assert exc.value.reason == ForbiddenError.WRONG_STAGE
        assert exc.value.current_status == PHASES[1]
        assert exc.value.required_phase == PHASES[0]
        fresh = svc.get_by_id(app_id)
        assert fresh["version"] == 1
        assert len(fresh["history"]) == 1

    def test_owner_of_later_phase_cannot_skip_ahead(self, make_application):
        app_id = make_application()
        with pytest.raises(ForbiddenError) as exc:
            svc.advance(app_id, _actor("police"))
        assert exc.value.reason == ForbiddenError.WRONG_STAGE
        assert svc.get_by_id(app_id)["status"] == PHASES[0]

    @pytest.mark.parametrize("role", sorted(ROLE_TO_PHASE))
    def test_only_current_phase_owner_succeeds(self, make_application, role):
        app_id = make_application(status=PHASES[2])
        if ROLE_TO_PHASE[role] == PHASES[2]:
            assert svc.advance(app_id, _actor(role))["status"] == PHASES[3]
        else:
            with pytest.raises(ForbiddenError):
                svc.advance(app_id, _actor(role))

    def test_missing_role(self, make_application):
        app_id = make_application()
        with pytest.raises(ForbiddenError) as exc:
            svc.advance(app_id, Actor(id="x", role=None))
        assert exc.value.reason == ForbiddenError.ROLE_MISSING

    def test_unknown_role(self, make_application):
        app_id = make_application()
        with pytest.raises(ForbiddenError) as exc:
            svc.advance(app_id, _actor("dealer"))
        assert exc.value.reason == ForbiddenError.UNKNOWN_ROLE
        assert exc.value.role == "dealer"

    def test_not_found(self):
        with pytest.raises(NotFoundError):
            svc.advance(9999, _actor("moj_flag"))

    def test_unknown_stored_status(self, make_application):
        app_id = make_application(status="MOJ")
        with pytest.raises(BadStateError) as exc:
            svc.advance(app_id, _actor("moj_flag"))
        assert exc.value.reason == BadStateError.UNKNOWN_STATUS
        assert exc.value.current_status == "MOJ"

    @pytest.mark.parametrize("role", sorted(ROLE_TO_PHASE) + ["dealer", None])
    def test_terminal_phase_rejects_every_actor(self, make_application, role):
        app_id = make_application(status=PHASES[-1], version=6)
        with pytest.raises(BadStateError) as exc:
            svc.advance(app_id, _actor(role))
        assert exc.value.reason == BadStateError.ALREADY_FINAL
        assert svc.get_by_id(app_id)["version"] == 6

    def test_last_advance_then_repeat(self, make_application):
        app_id = make_application(status=PHASES[-2])
        assert svc.advance(app_id, _actor("cfr"))["status"] == PHASES[-1]
        with pytest.raises((ForbiddenError, BadStateError)):
            svc.advance(app_id, _actor("cfr"))
        with pytest.raises(BadStateError):
            svc.advance(app_id, _actor("operator"))


# ═══════════════════════════════════════════════════════════════════════════
# Sections & documents
# ═══════════════════════════════════════════════════════════════════════════


class TestPayloadMerge:
    def test_additions_land_in_own_section_only(self, make_application):
        app_id = make_application()
        svc.advance(app_id, _actor("moj_flag"), {"additions": {"note": "x"}})
        result = svc.advance(app_id, _actor("club"), {"additions": {"note": "y", "member_no": "C-17"}})

        assert result["sections"]["moj_flag"] == {"note": "x"}
        assert result["sections"]["club"] == {"note": "y", "member_no": "C-17"}

    def test_shallow_merge_keeps_existing_keys(self, make_application):
        app_id = make_application(sections={"moj_flag": {"a": 1, "b": 2}, "club": {"z": 0}})
        result = svc.advance(app_id, _actor("moj_flag"), {"additions": {"b": 3, "c": 4}})
        assert result["sections"]["moj_flag"] == {"a": 1, "b": 3, "c": 4}
        assert result["sections"]["club"] == {"z": 0}

    def test_non_object_additions_are_ignored(self, make_application):
        app_id = make_application()
        result = svc.advance(app_id, _actor("moj_flag"), {"additions": ["not", "a", "dict"]})
        assert result["sections"] == {}
        assert result["status"] == PHASES[1]

    def test_documents_are_appended_in_order(self, make_application):
        app_id = make_application()
        svc.advance(app_id, _actor("moj_flag"), {"documents": [{"name": "a"}]})
        result = svc.advance(app_id, _actor("club"), {"documents": [{"name": "b"}]})
        assert result["documents"] == [{"name": "a"}, {"name": "b"}]

    def test_empty_documents_leave_list_untouched(self, make_application):
        app_id = make_application(documents=[{"filename": "id.pdf"}])
        result = svc.advance(app_id, _actor("moj_flag"), {"documents": []})
        assert result["documents"] == [{"filename": "id.pdf"}]


# ═══════════════════════════════════════════════════════════════════════════
# Atomicity
# ═══════════════════════════════════════════════════════════════════════════


class TestAtomicity:
    def test_failed_commit_leaves_no_partial_writes(self, make_application, monkeypatch, captured_events):
        app_id = make_application(sections={"moj_flag": {"kept": True}})

        def _boom():
            raise RuntimeError("connection lost")

        monkeypatch.setattr(_db.session, "commit", _boom)
        with pytest.raises(RuntimeError):
            svc.advance(app_id, _actor("moj_flag"), {
                "comment": "never stored",
                "additions": {"partial": True},
                "documents": [{"name": "orphan"}],
            })
        monkeypatch.undo()

        fresh = svc.get_by_id(app_id)
        assert fresh["status"] == PHASES[0]
        assert fresh["version"] == 0
        assert fresh["history"] == []
        assert fresh["documents"] == []
        assert fresh["sections"] == {"moj_flag": {"kept": True}}
        assert captured_events == []

    def test_retry_after_failure_succeeds(self, make_application, monkeypatch):
        app_id = make_application()
        def _boom():
            raise RuntimeError("deadlock detected")

        monkeypatch.setattr(_db.session, "commit", _boom)
        with pytest.raises(RuntimeError):
            svc.advance(app_id, _actor("moj_flag"))
        monkeypatch.undo()

        result = svc.advance(app_id, _actor("moj_flag"))
        assert result["version"] == 1
        assert len(result["history"]) == 1


# ═══════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════


class TestAdvanceEvents:
    def test_event_emitted_after_commit(self, make_application):
        app_id = make_application()
        seen = []

        def _check_committed(payload):
            seen.append((payload, svc.get_by_id(payload["applicationId"])["status"]))

        subscribe(APPLICATION_ADVANCED)(_check_committed)
        try:
            svc.advance(app_id, _actor("moj_flag", actor_id="m-1"))
        finally:
            unsubscribe(APPLICATION_ADVANCED, _check_committed)

        assert len(seen) == 1
        payload, stored_status = seen[0]
        assert payload == {
            "applicationId": app_id,
            "by": {"id": "m-1", "role": "moj_flag", "name": None},
            "to": PHASES[1],
        }
        assert stored_status == PHASES[1]

    def test_no_event_on_rejection(self, make_application, captured_events):
        app_id = make_application()
        with pytest.raises(ForbiddenError):
            svc.advance(app_id, _actor("club"))
        assert captured_events == []

    def test_failing_subscriber_does_not_undo_advance(self, make_application, captured_events):
        app_id = make_application()

        def _broken(payload):
            raise ValueError("mail server down")

        subscribe(APPLICATION_ADVANCED)(_broken)
        try:
            result = svc.advance(app_id, _actor("moj_flag"))
        finally:
            unsubscribe(APPLICATION_ADVANCED, _broken)

        assert result["status"] == PHASES[1]
        assert svc.get_by_id(app_id)["status"] == PHASES[1]
        assert len(captured_events) == 1


# ═══════════════════════════════════════════════════════════════════════════
# Intake & reads
# ═══════════════════════════════════════════════════════════════════════════


class TestIntakeAndReads:
    def test_create_application_at_entry_phase(self):
        created = svc.create_application("Dealer licence", _actor("moj_flag"), data={"dealer": "Acme"})
        assert created["status"] == PHASES[0]
        assert created["version"] == 0
        assert created["history"] == []
        assert created["sections"] == {}
        assert created["documents"] == []
        assert created["data"] == {"dealer": "Acme"}
        assert created["created_by"] == "officer-1"

    def test_only_intake_role_may_create(self):
        with pytest.raises(ForbiddenError) as exc:
            svc.create_application("Dealer licence", _actor("club"))
        assert exc.value.reason == ForbiddenError.WRONG_STAGE
        with pytest.raises(ForbiddenError) as exc:
            svc.create_application("Dealer licence", Actor(id="x", role=None))
        assert exc.value.reason == ForbiddenError.ROLE_MISSING

    def test_create_validates_title_and_data(self):
        with pytest.raises(ValidationError) as exc:
            svc.create_application("   ", _actor("moj_flag"))
        assert exc.value.code == "ERR_VALIDATION_REQUIRED"
        with pytest.raises(ValidationError):
            svc.create_application(123, _actor("moj_flag"))
        with pytest.raises(ValidationError):
            svc.create_application("Dealer licence", _actor("moj_flag"), data=["x"])

    def test_list_for_role_newest_updated_first(self, make_application):
        now = datetime.now(timezone.utc)
        old = make_application(status=PHASES[1], title="old", updated_at=now - timedelta(days=2))
        new = make_application(status=PHASES[1], title="new", updated_at=now)
        mid = make_application(status=PHASES[1], title="mid", updated_at=now - timedelta(days=1))
        make_application(status=PHASES[2], title="elsewhere")

        ids = [a["id"] for a in svc.list_for_role("club")]
        assert ids == [new, mid, old]

    def test_list_for_unknown_role_is_empty(self, make_application):
        make_application()
        assert svc.list_for_role("dealer") == []
        assert svc.list_for_role(None) == []

    def test_get_by_id_missing(self):
        assert svc.get_by_id(404) is None

    def test_get_history_missing(self):
        with pytest.raises(NotFoundError):
            svc.get_history(404)
