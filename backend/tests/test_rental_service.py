import re
from datetime import timedelta
from decimal import Decimal

import pytest

from rentstock.errors import AssetsUnavailable, InvalidState, InvalidTransition, NotFound
from rentstock.models import AssetUnit, Rental
from rentstock.services import rental_service
from rentstock.validation import ValidationError

from conftest import ACTOR, DAY0


def _payload(ids, *, days=5, rate="100.00", **overrides):
    data = {
        "customer_name": "Sam Customer",
        "customer_email": "sam@example.com",
        "customer_phone": "555-0100",
        "start_date": DAY0.isoformat(),
        "end_date": (DAY0 + timedelta(days=days)).isoformat(),
        "daily_rate": rate,
        "deposit": "50",
        "asset_ids": ids,
    }
    data.update(overrides)
    return data


def _statuses(db_session, ids):
    db_session.expire_all()
    return {a.id: a.status for a in db_session.query(AssetUnit).filter(AssetUnit.id.in_(ids))}


def test_calculate_total_amount_rounds_partial_days_up():
    assert rental_service.calculate_total_amount(DAY0, DAY0 + timedelta(days=5), 200) == Decimal("1000.00")
    assert rental_service.calculate_total_amount(
        DAY0, DAY0 + timedelta(days=5, hours=1), 200
    ) == Decimal("1200.00")


def test_calculate_penalty():
    end = DAY0
    assert rental_service.calculate_penalty(end, end + timedelta(days=3), 100, 1.5) == Decimal("450.00")
    assert rental_service.calculate_penalty(end, end, 100, 1.5) == Decimal("0.00")
    assert rental_service.calculate_penalty(end, end - timedelta(days=1), 100, 1.5) == Decimal("0.00")
    # Two hours late counts as a full day
    assert rental_service.calculate_penalty(end, end + timedelta(hours=2), 100, 2) == Decimal("200.00")


def test_create_claims_assets_and_numbers_rental(make_unit_tracked, db_session):
    _, ids = make_unit_tracked(count=2)

    rental = rental_service.create_rental(_payload(ids, days=5, rate="200"), actor=ACTOR)

    assert re.fullmatch(r"RENT-\d{8}-0001", rental.rental_number)
    assert rental.status == "pending"
    assert rental.total_amount == Decimal("1000.00")
    assert rental.penalty_rate == Decimal("1.50")
    assert rental.created_by == ACTOR
    assert sorted(rental.asset_ids) == sorted(ids)
    assert set(_statuses(db_session, ids).values()) == {"rented"}
    assert {a.current_rental_id for a in rental.assets} == {rental.id}

    _, other_ids = make_unit_tracked("OTHER", asset_code="O", count=1)
    second = rental_service.create_rental(_payload(other_ids), actor=ACTOR)
    assert second.rental_number.endswith("-0002")


def test_create_is_all_or_nothing(make_unit_tracked, db_session):
    _, (a1, a2) = make_unit_tracked(count=2)
    rental_service.create_rental(_payload([a2]), actor=ACTOR)

    with pytest.raises(AssetsUnavailable) as exc_info:
        rental_service.create_rental(_payload([a1, a2]), actor=ACTOR)

    assert exc_info.value.details == {"asset_ids": [a2]}
    assert db_session.query(Rental).count() == 1
    assert _statuses(db_session, [a1])[a1] == "available"


def test_create_unknown_asset_is_unavailable(make_unit_tracked):
    _, (a1, _a2) = make_unit_tracked(count=2)
    with pytest.raises(AssetsUnavailable) as exc_info:
        rental_service.create_rental(_payload([a1, 9999]), actor=ACTOR)
    assert exc_info.value.details == {"asset_ids": [9999]}


@pytest.mark.parametrize(
    "overrides",
    [
        {"end_date": DAY0.isoformat()},
        {"end_date": (DAY0 - timedelta(days=1)).isoformat()},
        {"asset_ids": []},
        {"daily_rate": "-1"},
        {"customer_name": "  "},
        {"rental_number": "RENT-X"},
    ],
)
def test_create_validation(make_unit_tracked, overrides):
    _, ids = make_unit_tracked(count=1)
    with pytest.raises(ValidationError):
        rental_service.create_rental(_payload(ids, **overrides), actor=ACTOR)


def test_full_lifecycle_with_late_return(make_unit_tracked, db_session):
    _, ids = make_unit_tracked(count=2)
    rental = rental_service.create_rental(_payload(ids, days=4, rate="100"), actor=ACTOR)
    end = DAY0 + timedelta(days=4)

    rental = rental_service.update_status(rental.id, "active", actor=ACTOR)
    assert rental.status == "active"
    assert set(_statuses(db_session, ids).values()) == {"rented"}

    rental = rental_service.complete_rental(
        rental.id, actual_return_date=end + timedelta(days=3), actor=ACTOR
    )
    assert rental.status == "completed"
    assert rental.actual_return_date == end + timedelta(days=3)
    assert rental.penalty_amount == Decimal("450.00")
    assert set(_statuses(db_session, ids).values()) == {"available"}
    assert all(a.current_rental_id is None for a in db_session.query(AssetUnit))


def test_on_time_return_has_no_penalty_and_explicit_rate_wins(make_unit_tracked):
    _, ids = make_unit_tracked(count=1)
    rental = rental_service.create_rental(_payload(ids, days=2), actor=ACTOR)
    rental_service.update_status(rental.id, "active", actor=ACTOR)

    on_time = rental_service.update_status(
        rental.id,
        "completed",
        actual_return_date=(DAY0 + timedelta(days=1)).isoformat(),
        penalty_rate=3,
        actor=ACTOR,
    )
    assert on_time.penalty_amount == Decimal("0.00")
    assert on_time.penalty_rate == Decimal("3.00")


def test_invalid_transitions(make_unit_tracked):
    _, ids = make_unit_tracked(count=2)
    rental = rental_service.create_rental(_payload(ids), actor=ACTOR)

    with pytest.raises(InvalidTransition):
        rental_service.update_status(rental.id, "completed", actor=ACTOR)
    with pytest.raises(InvalidTransition):
        rental_service.update_status(rental.id, "pending", actor=ACTOR)
    with pytest.raises(ValidationError):
        rental_service.update_status(rental.id, "returned", actor=ACTOR)

    rental_service.cancel_rental(rental.id, actor=ACTOR)
    for status in ("pending", "active", "completed", "cancelled"):
        with pytest.raises(InvalidTransition):
            rental_service.update_status(rental.id, status, actor=ACTOR)

    with pytest.raises(NotFound):
        rental_service.update_status(9999, "active", actor=ACTOR)


def test_cancel_records_reason_and_releases(make_unit_tracked, db_session):
    _, ids = make_unit_tracked(count=2)
    rental = rental_service.create_rental(_payload(ids), actor=ACTOR)
    rental_service.update_status(rental.id, "active", actor=ACTOR)

    rental = rental_service.cancel_rental(rental.id, reason="Event postponed", actor=ACTOR)

    assert rental.status == "cancelled"
    assert rental.notes == "Event postponed"
    assert rental.penalty_amount == Decimal("0.00")
    assert set(_statuses(db_session, ids).values()) == {"available"}


def test_update_recomputes_total(make_unit_tracked):
    _, ids = make_unit_tracked(count=1)
    rental = rental_service.create_rental(_payload(ids, days=2, rate="100"), actor=ACTOR)
    assert rental.total_amount == Decimal("200.00")

    rental = rental_service.update_rental(
        rental.id, {"end_date": (DAY0 + timedelta(days=3)).isoformat()}, actor=ACTOR
    )
    assert rental.total_amount == Decimal("300.00")

    rental = rental_service.update_rental(rental.id, {"daily_rate": "80"}, actor=ACTOR)
    assert rental.total_amount == Decimal("240.00")

    with pytest.raises(ValidationError):
        rental_service.update_rental(rental.id, {"start_date": (DAY0 + timedelta(days=5)).isoformat()}, actor=ACTOR)


def test_update_swaps_assets(make_unit_tracked, db_session):
    _, (a1, a2, a3) = make_unit_tracked(count=3)
    rental = rental_service.create_rental(_payload([a1, a2]), actor=ACTOR)

    rental = rental_service.update_rental(rental.id, {"asset_ids": [a2, a3]}, actor=ACTOR)

    assert sorted(rental.asset_ids) == [a2, a3]
    assert _statuses(db_session, [a1, a2, a3]) == {a1: "available", a2: "rented", a3: "rented"}


def test_failed_swap_keeps_original_assets(make_unit_tracked, db_session):
    _, (a1, a2, a3) = make_unit_tracked(count=3)
    rental = rental_service.create_rental(_payload([a1]), actor=ACTOR)
    rental_service.create_rental(_payload([a3], customer_name="Other"), actor=ACTOR)

    with pytest.raises(AssetsUnavailable):
        rental_service.update_rental(rental.id, {"asset_ids": [a2, a3]}, actor=ACTOR)

    db_session.expire_all()
    assert rental_service.get_rental(rental.id).asset_ids == [a1]
    assert _statuses(db_session, [a1, a2]) == {a1: "rented", a2: "available"}


def test_update_terminal_rental_is_invalid_state(make_unit_tracked):
    _, ids = make_unit_tracked(count=1)
    rental = rental_service.create_rental(_payload(ids), actor=ACTOR)
    rental_service.cancel_rental(rental.id, actor=ACTOR)

    with pytest.raises(InvalidState):
        rental_service.update_rental(rental.id, {"notes": "too late"}, actor=ACTOR)


def test_list_reports_live_penalty_for_active_rentals(make_unit_tracked):
    _, (a1, a2) = make_unit_tracked(count=2)
    active = rental_service.create_rental(_payload([a1], days=2, rate="100"), actor=ACTOR)
    rental_service.update_status(active.id, "active", actor=ACTOR)
    rental_service.create_rental(
        _payload([a2], days=2, rate="100", customer_name="Pending Pat", customer_email="pat@example.com"),
        actor=ACTOR,
    )

    as_of = DAY0 + timedelta(days=4, hours=1)
    rows, total = rental_service.list_rentals(as_of=as_of)
    assert total == 2
    by_id = {row["id"]: row for row in rows}
    assert by_id[active.id]["penalty_amount"] == 300.0  # 2 days x 100 x 1.5

    # Stored value is untouched
    assert rental_service.get_rental(active.id).penalty_amount == Decimal("0.00")

    overdue = rental_service.list_overdue_rentals(as_of)
    assert [row["id"] for row in overdue] == [active.id]


def test_list_filters(make_unit_tracked):
    _, (a1, a2) = make_unit_tracked(count=2)
    first = rental_service.create_rental(_payload([a1]), actor=ACTOR)
    rental_service.create_rental(
        _payload([a2], customer_name="Pending Pat", customer_email="pat@example.com"),
        actor=ACTOR,
    )
    rental_service.update_status(first.id, "active", actor=ACTOR)

    rows, total = rental_service.list_rentals(search="pat")
    assert total == 1
    assert rows[0]["customer_name"] == "Pending Pat"

    rows, total = rental_service.list_rentals(status="active")
    assert [row["id"] for row in rows] == [first.id]

    rows, total = rental_service.list_rentals(customer_email="sam@example.com")
    assert total == 1

    _, total = rental_service.list_rentals(start_date=DAY0 + timedelta(days=30))
    assert total == 0

    rows, total = rental_service.list_rentals(page=1, limit=1)
    assert total == 2
    assert len(rows) == 1
