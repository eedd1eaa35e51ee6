import uuid
from dataclasses import replace
from datetime import timedelta

import pytest

from conftest import NOW, days_from_now, make_user
from fakes import RecordingNotifier
from travel.entities import (
    TravelRequestChanges,
    TravelRequestFilters,
    TravelStatus,
    UserRole,
)
from travel.errors import (
    AlreadyApproved,
    AlreadyCanceled,
    ConcurrentUpdate,
    Conflict,
    FutureDatesOnly,
    InvalidArgument,
    InvalidDateRange,
    InvalidDestination,
    InvalidStatus,
    NotFound,
    NotModifiable,
    Unauthorized,
    ValidationError,
)
from travel.services import TravelWorkflow


def _create(workflow, owner, **overrides):
    values = dict(
        traveler_name="João Silva",
        destination="Paris",
        departure=days_from_now(30),
        return_date=None,
    )
    values.update(overrides)
    return workflow.create_travel_request(owner.id, **values)


def test_create_travel_request(workflow, owner, travels):
    created = _create(workflow, owner)

    assert created.status is TravelStatus.SOLICITED
    assert created.user_id == owner.id
    assert created.user == owner
    assert created.destination_name == "Paris"
    assert created.return_date is None
    assert created.created_at == NOW
    assert travels.find_by_id(created.id) is not None


def test_create_strips_destination(workflow, owner):
    created = _create(workflow, owner, destination="  Lisboa ")

    assert created.destination_name == "Lisboa"


@pytest.mark.parametrize("destination", ["", "   ", None])
def test_create_requires_destination(workflow, owner, destination):
    with pytest.raises(InvalidDestination):
        _create(workflow, owner, destination=destination)


@pytest.mark.parametrize("traveler_name", ["", "   ", None])
def test_create_requires_traveler_name(workflow, owner, traveler_name):
    with pytest.raises(ValidationError):
        _create(workflow, owner, traveler_name=traveler_name)


def test_create_strips_traveler_name(workflow, owner):
    created = _create(workflow, owner, traveler_name="  Maria Santos ")

    assert created.traveler_name == "Maria Santos"


@pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-1), timedelta(days=-10)])
def test_create_rejects_departure_not_in_future(workflow, owner, offset):
    with pytest.raises(FutureDatesOnly):
        _create(workflow, owner, departure=NOW + offset)


def test_create_rejects_return_before_departure(workflow, owner):
    with pytest.raises(InvalidDateRange):
        _create(workflow, owner, departure=days_from_now(10), return_date=days_from_now(5))


def test_create_treats_naive_datetimes_as_utc(workflow, owner):
    naive = days_from_now(30).replace(tzinfo=None)

    created = _create(workflow, owner, departure=naive)

    assert created.departure_date == days_from_now(30)


def test_create_requires_existing_owner(workflow):
    with pytest.raises(NotFound):
        workflow.create_travel_request(
            uuid.uuid4(), "João", "Paris", days_from_now(30)
        )


def test_update_changes_only_supplied_fields(workflow, owner, clock):
    created = _create(workflow, owner, return_date=days_from_now(40))
    clock.advance(hours=2)

    updated = workflow.update_travel_request(
        created.id, owner.id, TravelRequestChanges(destination_name="Roma")
    )

    assert updated.destination_name == "Roma"
    assert updated.traveler_name == created.traveler_name
    assert updated.departure_date == created.departure_date
    assert updated.return_date == created.return_date
    assert updated.updated_at > created.updated_at
    assert updated.user_id == owner.id


def test_update_persists_changes(workflow, owner, travels):
    created = _create(workflow, owner)

    workflow.update_travel_request(
        created.id,
        owner.id,
        TravelRequestChanges(destination_name="Berlin", traveler_name="Maria Santos"),
    )

    stored = travels.find_by_id(created.id)
    assert stored.destination_name == "Berlin"
    assert stored.traveler_name == "Maria Santos"
    assert stored.version == created.version + 1


def test_update_by_other_user_is_unauthorized(workflow, owner, users):
    created = _create(workflow, owner)
    intruder = make_user(users)

    with pytest.raises(Unauthorized):
        workflow.update_travel_request(
            created.id, intruder.id, TravelRequestChanges(destination_name="Roma")
        )


def test_update_missing_request(workflow, owner):
    with pytest.raises(NotFound):
        workflow.update_travel_request(
            uuid.uuid4(), owner.id, TravelRequestChanges(destination_name="Roma")
        )


def test_update_requires_destination(workflow, owner):
    created = _create(workflow, owner)

    with pytest.raises(InvalidDestination):
        workflow.update_travel_request(
            created.id, owner.id, TravelRequestChanges(traveler_name="Maria")
        )


@pytest.mark.parametrize("traveler_name", ["", "   "])
def test_update_rejects_blank_traveler_name(workflow, owner, travels, traveler_name):
    created = _create(workflow, owner)

    with pytest.raises(ValidationError):
        workflow.update_travel_request(
            created.id,
            owner.id,
            TravelRequestChanges(destination_name="Roma", traveler_name=traveler_name),
        )
    assert travels.find_by_id(created.id).traveler_name == "João Silva"


def test_update_strips_traveler_name(workflow, owner):
    created = _create(workflow, owner)

    updated = workflow.update_travel_request(
        created.id,
        owner.id,
        TravelRequestChanges(destination_name="Roma", traveler_name=" Maria Santos  "),
    )

    assert updated.traveler_name == "Maria Santos"


def test_update_rejects_past_departure(workflow, owner):
    created = _create(workflow, owner)

    with pytest.raises(FutureDatesOnly):
        workflow.update_travel_request(
            created.id,
            owner.id,
            TravelRequestChanges(destination_name="Roma", departure_date=NOW - timedelta(days=1)),
        )


def test_update_checks_range_against_both_new_dates(workflow, owner):
    created = _create(workflow, owner)

    with pytest.raises(InvalidDateRange):
        workflow.update_travel_request(
            created.id,
            owner.id,
            TravelRequestChanges(
                destination_name="Roma",
                departure_date=days_from_now(20),
                return_date=days_from_now(10),
            ),
        )


def test_update_checks_new_departure_against_stored_return(workflow, owner):
    created = _create(workflow, owner, return_date=days_from_now(35))

    with pytest.raises(InvalidDateRange):
        workflow.update_travel_request(
            created.id,
            owner.id,
            TravelRequestChanges(destination_name="Roma", departure_date=days_from_now(40)),
        )


def test_update_checks_new_return_against_stored_departure(workflow, owner):
    created = _create(workflow, owner)

    with pytest.raises(InvalidDateRange):
        workflow.update_travel_request(
            created.id,
            owner.id,
            TravelRequestChanges(destination_name="Roma", return_date=days_from_now(29)),
        )


def test_update_allows_keeping_a_departure_that_has_since_passed(workflow, owner, clock):
    created = _create(workflow, owner, departure=days_from_now(1))
    clock.advance(days=2)

    updated = workflow.update_travel_request(
        created.id, owner.id, TravelRequestChanges(destination_name="Roma")
    )

    assert updated.departure_date == created.departure_date


@pytest.mark.parametrize("status", [TravelStatus.APPROVED, TravelStatus.CANCELED])
def test_update_after_decision_is_not_modifiable(workflow, owner, admin, status):
    created = _create(workflow, owner)
    workflow.update_status_travel_request(admin.id, created.id, status)

    with pytest.raises(NotModifiable):
        workflow.update_travel_request(
            created.id, owner.id, TravelRequestChanges(destination_name="Roma")
        )


def test_admin_approval(workflow, owner, admin, notifier, clock, travels):
    created = _create(workflow, owner)
    clock.advance(minutes=5)

    approved = workflow.update_status_travel_request(str(admin.id), str(created.id), "APPROVED")

    assert approved.status is TravelStatus.APPROVED
    assert approved.approved_by == admin.id
    assert approved.approved_at == clock.now
    assert approved.canceled_by is None
    assert travels.find_by_id(created.id).status is TravelStatus.APPROVED
    assert len(notifier.calls) == 1
    notified, previous = notifier.calls[0]
    assert notified.id == created.id
    assert notified.status is TravelStatus.APPROVED
    assert previous is TravelStatus.SOLICITED


@pytest.mark.parametrize("raw", ["CANCELED", "REJECTED", "canceled"])
def test_admin_cancellation(workflow, owner, admin, notifier, raw):
    created = _create(workflow, owner)

    canceled = workflow.update_status_travel_request(admin.id, created.id, raw)

    assert canceled.status is TravelStatus.CANCELED
    assert canceled.canceled_by == admin.id
    assert canceled.canceled_at is not None
    assert canceled.approved_by is None
    assert notifier.calls[0][1] is TravelStatus.SOLICITED


def test_non_admin_status_change_is_unauthorized(workflow, owner, users, notifier, travels):
    created = _create(workflow, owner)
    other = make_user(users)

    with pytest.raises(Unauthorized):
        workflow.update_status_travel_request(other.id, created.id, TravelStatus.APPROVED)

    assert travels.find_by_id(created.id).status is TravelStatus.SOLICITED
    assert travels.update_calls == 0
    assert notifier.calls == []


def test_admin_cannot_decide_own_request(workflow, admin, notifier):
    created = _create(workflow, admin)

    with pytest.raises(Unauthorized):
        workflow.update_status_travel_request(admin.id, created.id, TravelStatus.APPROVED)

    assert notifier.calls == []


@pytest.mark.parametrize("target", ["APPROVED", "CANCELED", "SOLICITED", "REJECTED"])
def test_approved_request_is_terminal(workflow, owner, admin, users, target):
    created = _create(workflow, owner)
    workflow.update_status_travel_request(admin.id, created.id, "APPROVED")
    second_admin = make_user(users, role=UserRole.ADMIN)

    with pytest.raises(AlreadyApproved):
        workflow.update_status_travel_request(second_admin.id, created.id, target)


@pytest.mark.parametrize("target", ["APPROVED", "CANCELED", "SOLICITED"])
def test_canceled_request_is_terminal(workflow, owner, admin, target):
    created = _create(workflow, owner)
    workflow.update_status_travel_request(admin.id, created.id, "CANCELED")

    with pytest.raises(AlreadyCanceled):
        workflow.update_status_travel_request(admin.id, created.id, target)


def test_status_change_rejects_malformed_ids(workflow, admin):
    with pytest.raises(InvalidArgument):
        workflow.update_status_travel_request("not-a-uuid", str(uuid.uuid4()), "APPROVED")
    with pytest.raises(InvalidArgument):
        workflow.update_status_travel_request(str(admin.id), "42", "APPROVED")


def test_status_change_rejects_unknown_status(workflow, owner, admin):
    created = _create(workflow, owner)

    with pytest.raises(InvalidStatus):
        workflow.update_status_travel_request(admin.id, created.id, "PENDING")
    with pytest.raises(InvalidStatus):
        workflow.update_status_travel_request(admin.id, created.id, "SOLICITED")


def test_status_change_missing_entities(workflow, owner, admin):
    created = _create(workflow, owner)

    with pytest.raises(NotFound):
        workflow.update_status_travel_request(uuid.uuid4(), created.id, "APPROVED")
    with pytest.raises(NotFound):
        workflow.update_status_travel_request(admin.id, uuid.uuid4(), "APPROVED")


def test_notifier_failure_does_not_reach_caller(travels, users, owner, admin, clock):
    failing = RecordingNotifier(fail=True)
    workflow = TravelWorkflow(travels, users, failing, clock=clock)
    created = _create(workflow, owner)

    approved = workflow.update_status_travel_request(admin.id, created.id, "APPROVED")

    assert approved.status is TravelStatus.APPROVED
    assert len(failing.calls) == 1


def test_stale_version_is_a_conflict(workflow, owner, admin, travels):
    created = _create(workflow, owner)
    stale = travels.find_by_id(created.id)
    workflow.update_status_travel_request(admin.id, created.id, "APPROVED")

    with pytest.raises(ConcurrentUpdate) as excinfo:
        travels.update(replace(stale, destination_name="Roma"))
    assert isinstance(excinfo.value, Conflict)


def test_get_by_id(workflow, owner, users):
    created = _create(workflow, owner)

    assert workflow.get_by_id(created.id, owner.id).id == created.id

    with pytest.raises(Unauthorized):
        workflow.get_by_id(created.id, make_user(users).id)
    with pytest.raises(NotFound):
        workflow.get_by_id(uuid.uuid4(), owner.id)


def test_list_is_scoped_to_owner(workflow, owner, users):
    other = make_user(users)
    _create(workflow, owner, destination="Paris")
    _create(workflow, owner, destination="Porto")
    _create(workflow, other, destination="Paris")

    items, total = workflow.list_travel_requests(owner.id, TravelRequestFilters())

    assert total == 2
    assert {item.user_id for item in items} == {owner.id}


def test_list_applies_filters(workflow, owner, admin):
    paris = _create(workflow, owner, destination="Paris", departure=days_from_now(10))
    _create(workflow, owner, destination="Porto", departure=days_from_now(60))
    workflow.update_status_travel_request(admin.id, paris.id, "APPROVED")

    by_status, _ = workflow.list_travel_requests(
        owner.id, TravelRequestFilters(status=TravelStatus.APPROVED)
    )
    by_destination, _ = workflow.list_travel_requests(
        owner.id, TravelRequestFilters(destination="por")
    )
    by_window, _ = workflow.list_travel_requests(
        owner.id, TravelRequestFilters(start=days_from_now(30), end=days_from_now(90))
    )

    assert [r.destination_name for r in by_status] == ["Paris"]
    assert [r.destination_name for r in by_destination] == ["Porto"]
    assert [r.destination_name for r in by_window] == ["Porto"]


def test_list_all_requires_admin(workflow, owner, admin):
    _create(workflow, owner)

    items, total = workflow.list_all_travel_requests(admin.id, TravelRequestFilters())
    assert total == 1

    with pytest.raises(Unauthorized):
        workflow.list_all_travel_requests(owner.id, TravelRequestFilters())
    with pytest.raises(NotFound):
        workflow.list_all_travel_requests(uuid.uuid4(), TravelRequestFilters())
