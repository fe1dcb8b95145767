import pytest

from services.audit_service.db.models import TestingStatus
from services.audit_service.pipeline.dispatcher import CheckDispatcher, applicable_checks
from services.audit_service.pipeline.exceptions import PageNotReadyError
from services.audit_service.pipeline.registry import CheckRegistry


class RecordingSubmit:
    def __init__(self):
        self.jobs = []

    def __call__(self, page_id, check_key):
        self.jobs.append((page_id, check_key))


@pytest.fixture
def catalog(make_check):
    return [
        make_check("nav_item_count"),
        make_check("structure_single_h1"),
        make_check("content_typos", instructions="Find typos"),
        make_check("retired_check", active=False),
    ]


def test_null_selection_runs_every_active_check(db, make_audit, catalog):
    audit = make_audit()
    keys = [check.key for check in applicable_checks(db, audit)]
    assert keys == ["nav_item_count", "structure_single_h1", "content_typos"]


def test_empty_selection_runs_nothing(db, make_audit, catalog):
    audit = make_audit(selected_check_ids=[])
    assert applicable_checks(db, audit) == []


def test_selection_is_intersected_with_active_checks(db, make_audit, catalog):
    nav, _, typos, retired = catalog
    audit = make_audit(selected_check_ids=[typos.id, retired.id, nav.id])

    keys = [check.key for check in applicable_checks(db, audit)]

    assert keys == ["nav_item_count", "content_typos"]


def test_dispatch_submits_one_job_per_check(db, make_audit, make_page, catalog):
    page = make_page(make_audit())
    submit = RecordingSubmit()

    queued = CheckDispatcher(db, submit).dispatch(page)

    assert queued == 3
    assert submit.jobs == [
        (page.id, "nav_item_count"),
        (page.id, "structure_single_h1"),
        (page.id, "content_typos"),
    ]
    assert page.expected_check_count == 3
    assert page.testing_status == TestingStatus.TESTING.value


def test_dispatch_without_checks_completes_page(db, make_audit, make_page, catalog):
    page = make_page(make_audit(selected_check_ids=[]))
    submit = RecordingSubmit()

    assert CheckDispatcher(db, submit).dispatch(page) == 0
    assert submit.jobs == []
    assert page.testing_status == TestingStatus.COMPLETE.value


def test_dispatch_refuses_uncollected_page(db, make_audit, make_page, catalog):
    page = make_page(make_audit(), collected=False)
    submit = RecordingSubmit()

    with pytest.raises(PageNotReadyError):
        CheckDispatcher(db, submit).dispatch(page)
    assert submit.jobs == []


def test_unregistered_keys_are_still_dispatched(db, make_audit, make_page, catalog):
    page = make_page(make_audit())
    submit = RecordingSubmit()
    registry = CheckRegistry.build(rules={})

    assert CheckDispatcher(db, submit, registry=registry).dispatch(page) == 3
    assert len(submit.jobs) == 3
