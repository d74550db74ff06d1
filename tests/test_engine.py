"""Tests for SessionEngine: initialization, filtering and delivery."""

import pytest
from tests.helpers import FailingStore

from worktime_tracker.engine import (
    ACTIVE_SESSION_KEY,
    FilterPolicy,
    SessionEngine,
    TrackerPolicy,
)
from worktime_tracker.models import ActiveSessionRecord, WorkSession
from worktime_tracker.pending import PendingQueue
from worktime_tracker.state import CloseReason


def persist_record(store, task_id: str, session: WorkSession) -> None:
    store.set(ACTIVE_SESSION_KEY, ActiveSessionRecord(task_id, session).to_json())


def stored_record(store) -> ActiveSessionRecord | None:
    raw = store.get(ACTIVE_SESSION_KEY)
    return ActiveSessionRecord.from_json(raw) if raw is not None else None


class TestTrackerPolicy:
    """Tests for building the policy from config."""

    def test_defaults(self) -> None:
        policy = TrackerPolicy.from_config({})

        assert policy.tick_interval == 1.0
        assert policy.sleep_threshold_ms == 120_000
        assert policy.min_session_duration_ms == 60_000
        assert policy.gap_detection is True
        assert policy.filter_policy == FilterPolicy.ALWAYS

    def test_from_config(self) -> None:
        policy = TrackerPolicy.from_config(
            {
                "gap_detection": False,
                "filter_policy": "gap-only",
                "tuning": {"sleep_threshold": 300, "min_session_duration": 30},
            }
        )

        assert policy.gap_detection is False
        assert policy.filter_policy == FilterPolicy.GAP_ONLY
        assert policy.sleep_threshold_ms == 300_000
        assert policy.min_session_duration_ms == 30_000

    def test_environment_overrides_config(self, monkeypatch) -> None:
        monkeypatch.setenv("WORKTIME_MIN_SESSION_DURATION", "5")
        policy = TrackerPolicy.from_config({"tuning": {"min_session_duration": 30}})
        assert policy.min_session_duration_ms == 5_000


class TestClaim:
    """Tests for the initialization algorithm."""

    def test_fresh_session_is_persisted(self, engine, store, clock) -> None:
        session = engine.claim("T1")

        assert session.id == "session-1"
        assert session.start_time == clock.now
        assert session.is_active
        assert stored_record(store) == ActiveSessionRecord("T1", session)

    def test_recovers_session_of_same_task(self, engine, store, clock) -> None:
        previous = WorkSession("crashed", clock.now - 120_000)
        persist_record(store, "T1", previous)

        assert engine.claim("T1") == previous
        assert stored_record(store).session == previous

    def test_recovery_is_idempotent(self, make_engine, store) -> None:
        first = make_engine().claim("T1")
        second = make_engine().claim("T1")
        third = make_engine().claim("T1")

        assert first == second == third
        assert store.keys() == [ACTIVE_SESSION_KEY]

    def test_orphan_of_other_task_goes_to_its_pending_queue(
        self, engine, store, clock, recorder
    ) -> None:
        persist_record(store, "T1", WorkSession("orphan", clock.now - 90_000))

        session = engine.claim("T2")

        assert recorder.delivered == []
        pending = engine.pending.peek("T1")
        assert [(s.id, s.duration_ms) for s in pending] == [("orphan", 90_000)]
        assert stored_record(store) == ActiveSessionRecord("T2", session)

    def test_short_orphan_is_discarded(self, engine, store, clock) -> None:
        persist_record(store, "T1", WorkSession("orphan", clock.now - 10_000))

        engine.claim("T2")

        assert engine.pending.peek("T1") == []

    def test_pending_delivered_exactly_once(self, make_engine, store, clock, recorder) -> None:
        persist_record(store, "T1", WorkSession("orphan", clock.now - 90_000))
        make_engine().claim("T2")

        make_engine().claim("T1")
        make_engine().claim("T1")

        assert recorder.session_ids == ["orphan"]
        assert recorder.delivered[0][0] == "T1"
        assert store.get(PendingQueue.key("T1")) is None

    def test_pending_is_drained_before_recovery(self, engine, store, clock, recorder) -> None:
        engine.pending.enqueue("T1", WorkSession("queued", 0, 90_000))
        persist_record(store, "T1", WorkSession("live", clock.now - 1000))

        session = engine.claim("T1")

        assert recorder.session_ids == ["queued"]
        assert session.id == "live"

    @pytest.mark.parametrize(
        "raw",
        [
            "garbage",
            '{"task_id": "T1"}',
            '{"task_id": "T1", "session": {"id": "x", "start_time": 5, "end_time": 9}}',
        ],
    )
    def test_corrupt_record_starts_fresh(self, engine, store, raw) -> None:
        store.set(ACTIVE_SESSION_KEY, raw)

        session = engine.claim("T1")

        assert session.id == "session-1"
        assert stored_record(store).session == session

    def test_failed_pending_delivery_stays_queued(self, engine, recorder) -> None:
        engine.pending.enqueue("T1", WorkSession("queued", 0, 90_000))
        recorder.fail = True

        engine.claim("T1")

        assert [s.id for s in engine.pending.peek("T1")] == ["queued"]


class TestFilter:
    """Tests for the minimum duration filter."""

    @pytest.mark.parametrize(
        "seconds,passes", [(0, False), (59, False), (59.999, False), (60, True), (61, True)]
    )
    def test_always_policy(self, engine, seconds, passes) -> None:
        session = WorkSession("s", 0, int(seconds * 1000))
        for reason in CloseReason:
            assert engine.passes_filter(session, reason) is passes

    def test_gap_only_policy(self, make_engine) -> None:
        engine = make_engine(TrackerPolicy(filter_policy=FilterPolicy.GAP_ONLY))
        short = WorkSession("s", 0, 10_000)

        assert engine.passes_filter(short, CloseReason.STOP)
        assert engine.passes_filter(short, CloseReason.HANDOFF)
        assert not engine.passes_filter(short, CloseReason.GAP)
        assert engine.passes_filter(WorkSession("s", 0, 60_000), CloseReason.GAP)

    def test_open_session_never_passes(self, engine) -> None:
        assert not engine.passes_filter(WorkSession("s", 0), CloseReason.STOP)


class TestCloseAndComplete:
    def test_close_before_start_discards(self, engine) -> None:
        assert engine.close(WorkSession("s", 10_000), 5_000) is None

    def test_close(self, engine) -> None:
        assert engine.close(WorkSession("s", 10_000), 75_000).duration_ms == 65_000

    def test_complete_delivers(self, engine, recorder) -> None:
        session = WorkSession("s", 0, 61_000)

        assert engine.complete("T1", session, CloseReason.STOP)
        assert recorder.delivered == [("T1", session)]

    def test_complete_filters(self, engine, recorder) -> None:
        assert not engine.complete("T1", WorkSession("s", 0, 59_000), CloseReason.STOP)
        assert recorder.attempts == 0

    def test_callback_failure_queues_session(self, engine, recorder) -> None:
        session = WorkSession("s", 0, 61_000)
        recorder.fail = True

        assert not engine.complete("T1", session, CloseReason.STOP)

        assert engine.pending.peek("T1") == [session]
        recorder.fail = False
        engine.claim("T1")
        assert recorder.delivered == [("T1", session)]


class TestStoreErrors:
    """Store failures are reported, never raised."""

    @pytest.fixture
    def failing_store(self) -> FailingStore:
        return FailingStore()

    @pytest.fixture
    def errors(self) -> list:
        return []

    @pytest.fixture
    def failing_engine(self, make_engine, failing_store, errors) -> SessionEngine:
        return make_engine(store=failing_store, on_store_error=errors.append)

    def test_unreadable_store_reads_as_no_record(self, failing_engine, failing_store, errors) -> None:
        failing_store.fail_reads = True

        assert failing_engine.read_active_record() is None
        assert failing_engine.last_error is errors[0]

    def test_claim_survives_write_failure(self, failing_engine, failing_store, errors) -> None:
        failing_store.fail_writes = True

        session = failing_engine.claim("T1")

        assert session.is_active
        assert failing_store.data == {}
        assert len(errors) == 1

    def test_claim_survives_total_failure(self, failing_engine, failing_store, errors) -> None:
        failing_store.fail_reads = True
        failing_store.fail_writes = True

        assert failing_engine.claim("T1").is_active
        assert errors

    def test_callback_failure_with_broken_store(
        self, failing_engine, failing_store, recorder, errors
    ) -> None:
        recorder.fail = True
        failing_store.fail_writes = True

        assert not failing_engine.complete("T1", WorkSession("s", 0, 61_000), CloseReason.STOP)
        assert len(errors) == 1
