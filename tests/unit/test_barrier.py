import threading

from services.audit_service.db.models import Audit, AuditStatus, CheckResult, Page, TestingStatus
from services.audit_service.pipeline.barrier import BarrierPolicy, CompletionBarrier


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _barrier(session_factory, clock, max_attempts=10, max_wait=None):
    policy = BarrierPolicy(idle_interval=1.0, active_interval=0.5, max_attempts=max_attempts, max_wait=max_wait)
    return CompletionBarrier(session_factory, policy=policy, sleep=clock.sleep, clock=clock)


def _add_result(session_factory, page, key):
    with session_factory() as session:
        session.add(CheckResult(
            page_id=page.id,
            audit_id=page.audit_id,
            check_key=key,
            category="general",
            status="passed",
            summary="ok",
        ))
        session.commit()


def _reload(session_factory, model, key):
    with session_factory() as session:
        return session.get(model, key)


def _testing_page(make_audit, make_page):
    audit = make_audit(status=AuditStatus.TESTING.value, current_phase=AuditStatus.TESTING.value)
    page = make_page(audit)
    return audit, page


def test_converges_once_all_results_arrive(session_factory, make_audit, make_page):
    audit, page = _testing_page(make_audit, make_page)
    _add_result(session_factory, page, "a")
    _add_result(session_factory, page, "b")
    clock = FakeClock()

    assert _barrier(session_factory, clock).wait(page.id, 2) is True
    assert clock.sleeps == []
    assert _reload(session_factory, Page, page.id).testing_status == TestingStatus.COMPLETE.value
    assert _reload(session_factory, Audit, audit.id).status == AuditStatus.COMPLETE.value


def test_results_arriving_while_polling(session_factory, make_audit, make_page):
    audit, page = _testing_page(make_audit, make_page)
    clock = FakeClock()
    arrivals = iter(["a", "b"])

    def sleep(seconds):
        clock.sleep(seconds)
        key = next(arrivals, None)
        if key:
            _add_result(session_factory, page, key)

    barrier = CompletionBarrier(
        session_factory,
        policy=BarrierPolicy(max_attempts=10, max_wait=None),
        sleep=sleep,
        clock=clock,
    )

    assert barrier.wait(page.id, 2) is True
    # idle cadence before the first result, active cadence after
    assert clock.sleeps == [1.0, 0.5]


def test_timeout_still_completes_page_and_audit(session_factory, make_audit, make_page):
    audit, page = _testing_page(make_audit, make_page)
    _add_result(session_factory, page, "a")
    _add_result(session_factory, page, "b")
    clock = FakeClock()

    assert _barrier(session_factory, clock, max_attempts=4).wait(page.id, 3) is False
    assert clock.sleeps == [0.5, 0.5, 0.5]
    assert _reload(session_factory, Page, page.id).testing_status == TestingStatus.COMPLETE.value
    assert _reload(session_factory, Audit, audit.id).status == AuditStatus.COMPLETE.value


def test_deadline_stops_polling_early(session_factory, make_audit, make_page):
    _, page = _testing_page(make_audit, make_page)
    clock = FakeClock()

    assert _barrier(session_factory, clock, max_attempts=100, max_wait=3.0).wait(page.id, 1) is False
    assert len(clock.sleeps) == 3


def test_zero_expected_converges_immediately(session_factory, make_audit, make_page):
    _, page = _testing_page(make_audit, make_page)
    clock = FakeClock()

    assert _barrier(session_factory, clock).wait(page.id, 0) is True
    assert clock.sleeps == []


def test_cancel_event_stops_wait(session_factory, make_audit, make_page):
    _, page = _testing_page(make_audit, make_page)
    clock = FakeClock()
    cancelled = threading.Event()
    cancelled.set()

    assert _barrier(session_factory, clock).wait(page.id, 1, cancel_event=cancelled) is False
    assert clock.sleeps == []


def test_finalize_audit_false_leaves_audit_phase(session_factory, make_audit, make_page):
    audit, page = _testing_page(make_audit, make_page)
    clock = FakeClock()

    _barrier(session_factory, clock).wait(page.id, 0, finalize_audit=False)

    assert _reload(session_factory, Page, page.id).testing_status == TestingStatus.COMPLETE.value
    assert _reload(session_factory, Audit, audit.id).status == AuditStatus.TESTING.value


def test_failed_audit_is_not_resurrected(session_factory, make_audit, make_page):
    audit = make_audit(status=AuditStatus.FAILED.value)
    page = make_page(audit)
    clock = FakeClock()

    _barrier(session_factory, clock).wait(page.id, 0)

    assert _reload(session_factory, Audit, audit.id).status == AuditStatus.FAILED.value
