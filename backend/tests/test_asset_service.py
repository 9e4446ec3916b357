from datetime import timedelta

import pytest

from rentstock.errors import AssetInUse, DuplicateCode, InvalidProductKind, InvalidTransition
from rentstock.models import ActivityLog, AssetUnit
from rentstock.services import asset_service, rental_service
from rentstock.validation import ValidationError

from conftest import ACTOR, DAY0


def _rent(ids, **overrides):
    data = {
        "customer_name": "Jo Renter",
        "start_date": DAY0.isoformat(),
        "end_date": (DAY0 + timedelta(days=2)).isoformat(),
        "daily_rate": "50.00",
        "asset_ids": ids,
    }
    data.update(overrides)
    return rental_service.create_rental(data, actor=ACTOR)


def test_create_batch_uppercases_code_and_sets_status(make_unit_tracked):
    product_id, _ = make_unit_tracked(count=0)

    units = asset_service.create_batch(product_id, asset_code="drone-x", count=3, notes=" new ", actor=ACTOR)

    assert len(units) == 3
    assert {u.asset_code for u in units} == {"DRONE-X"}
    assert {u.status for u in units} == {"available"}
    assert {u.notes for u in units} == {"new"}
    assert all(u.current_rental_id is None for u in units)


def test_create_batch_codes_unique_per_product(make_unit_tracked):
    product_a, _ = make_unit_tracked("CAM-A", asset_code="KIT", count=1)
    product_b, _ = make_unit_tracked("CAM-B", count=0)

    with pytest.raises(DuplicateCode):
        asset_service.create_batch(product_a, asset_code="kit", count=1, actor=ACTOR)

    # Same code on another product is fine
    assert len(asset_service.create_batch(product_b, asset_code="KIT", count=1, actor=ACTOR)) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"asset_code": "OK", "count": 0},
        {"asset_code": "OK", "count": 501},
        {"asset_code": "bad code!", "count": 1},
        {"asset_code": "OK", "count": 1, "initial_status": "rented"},
        {"asset_code": "OK", "count": 1, "initial_status": "lost"},
    ],
)
def test_create_batch_validation(make_unit_tracked, kwargs):
    product_id, _ = make_unit_tracked(count=0)
    with pytest.raises(ValidationError):
        asset_service.create_batch(product_id, actor=ACTOR, **kwargs)


def test_create_batch_rejects_countable_product(make_countable):
    product_id = make_countable()
    with pytest.raises(InvalidProductKind):
        asset_service.create_batch(product_id, asset_code="X", count=1, actor=ACTOR)


def test_set_status_override_and_audit(make_unit_tracked, db_session):
    _, (asset_id, _other) = make_unit_tracked()

    asset = asset_service.set_status(asset_id, "maintenance", notes="lens check", actor=ACTOR)

    assert asset.status == "maintenance"
    assert asset.notes == "lens check"
    log = db_session.query(ActivityLog).filter_by(entity_type="asset", action="update").one()
    assert log.changes == {"old": {"status": "available"}, "new": {"status": "maintenance"}}


def test_set_status_cannot_enter_rented(make_unit_tracked):
    _, (asset_id, _other) = make_unit_tracked()
    with pytest.raises(InvalidTransition):
        asset_service.set_status(asset_id, "rented", actor=ACTOR)


def test_set_status_leaving_rented_clears_rental(make_unit_tracked):
    _, (asset_id, _other) = make_unit_tracked()
    _rent([asset_id])

    asset = asset_service.set_status(asset_id, "damaged", actor=ACTOR)

    assert asset.status == "damaged"
    assert asset.current_rental_id is None


def test_delete_rented_unit_fails_until_released(make_unit_tracked, db_session):
    _, (asset_id, _other) = make_unit_tracked()
    rental = _rent([asset_id])

    with pytest.raises(AssetInUse):
        asset_service.delete(asset_id, actor=ACTOR)

    rental_service.cancel_rental(rental.id, reason="customer called off", actor=ACTOR)
    asset_service.delete(asset_id, actor=ACTOR)

    assert db_session.get(AssetUnit, asset_id) is None
    assert rental_service.get_rental(rental.id).asset_ids == []


def test_update_asset_rename_conflict(make_unit_tracked):
    product_id, (first, _second) = make_unit_tracked(asset_code="OLD", count=2)
    asset_service.create_batch(product_id, asset_code="TAKEN", count=1, actor=ACTOR)

    with pytest.raises(DuplicateCode):
        asset_service.update_asset(first, asset_code="taken", actor=ACTOR)

    asset = asset_service.update_asset(first, asset_code="fresh", notes="relabelled", actor=ACTOR)
    assert asset.asset_code == "FRESH"
    assert asset.notes == "relabelled"


def test_list_grouped_counts_and_status_filter(make_unit_tracked):
    product_id, (a1, _a2) = make_unit_tracked("CAM", asset_code="CAM", count=2, name="Camera")
    make_unit_tracked("LIGHT", asset_code="LED", count=3, name="Light")
    asset_service.set_status(a1, "maintenance", actor=ACTOR)

    groups, total = asset_service.list_grouped()
    assert total == 2
    cam = next(g for g in groups if g["asset_code"] == "CAM")
    assert cam["total_count"] == 2
    assert cam["status_counts"]["available"] == 1
    assert cam["status_counts"]["maintenance"] == 1

    groups, total = asset_service.list_grouped(status="maintenance")
    assert total == 1
    assert groups[0]["product_id"] == product_id

    groups, total = asset_service.list_grouped(search="light")
    assert total == 1
    assert groups[0]["asset_code"] == "LED"

    groups, total = asset_service.list_grouped(page=2, limit=1)
    assert total == 2
    assert len(groups) == 1


def test_list_available_and_grouped(make_unit_tracked):
    product_id, (a1, a2) = make_unit_tracked("CAM", asset_code="CAM", count=2)
    _, (b1,) = make_unit_tracked("LIGHT", asset_code="LED", count=1)
    _rent([a1])

    available = asset_service.list_available()
    assert [u.id for u in available] == [a2, b1]
    assert [u.id for u in asset_service.list_available(product_id)] == [a2]

    grouped = asset_service.list_available_grouped()
    by_code = {g["asset_code"]: g for g in grouped}
    assert by_code["CAM"]["asset_ids"] == [a2]
    assert by_code["CAM"]["available_count"] == 1
    assert by_code["LED"]["asset_ids"] == [b1]


def test_delete_available_unit(make_unit_tracked, db_session):
    _, (asset_id, other_id) = make_unit_tracked(asset_code="SPARE", count=2)

    asset_service.delete(asset_id, actor=ACTOR)

    assert db_session.get(AssetUnit, asset_id) is None
    assert asset_service.get_asset(other_id).asset_code == "SPARE"
    log = db_session.query(ActivityLog).filter_by(entity_type="asset", action="delete").one()
    assert log.entity_id == str(asset_id)


def test_release_leaves_units_moved_out_of_rented(make_unit_tracked):
    _, (damaged_id, kept_id) = make_unit_tracked(count=2)
    rental = _rent([damaged_id, kept_id])
    rental_service.update_status(rental.id, "active", actor=ACTOR)

    asset_service.set_status(damaged_id, "damaged", actor=ACTOR)
    rental_service.complete_rental(rental.id, actor=ACTOR)

    assert asset_service.get_asset(damaged_id).status == "damaged"
    assert asset_service.get_asset(kept_id).status == "available"
    assert asset_service.get_asset(kept_id).current_rental_id is None


def test_cancel_leaves_units_moved_out_of_rented(make_unit_tracked):
    _, (repair_id, kept_id) = make_unit_tracked(count=2)
    rental = _rent([repair_id, kept_id])

    asset_service.set_status(repair_id, "maintenance", actor=ACTOR)
    rental_service.cancel_rental(rental.id, actor=ACTOR)

    assert asset_service.get_asset(repair_id).status == "maintenance"
    assert asset_service.get_asset(kept_id).status == "available"


def test_rename_splits_unit_from_its_batch(make_unit_tracked):
    product_id, (first, second) = make_unit_tracked(asset_code="BATCH", count=2)

    asset_service.update_asset(first, asset_code="NEWCODE", actor=ACTOR)

    assert asset_service.get_asset(second).asset_code == "BATCH"
    with pytest.raises(DuplicateCode):
        asset_service.update_asset(second, asset_code="NEWCODE", actor=ACTOR)

    groups, total = asset_service.list_grouped(product_id=product_id)
    assert total == 2
    assert sorted(g["asset_code"] for g in groups) == ["BATCH", "NEWCODE"]
