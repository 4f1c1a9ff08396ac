from datetime import date

import pytest

from appointment_engine.models.unit_balance import UnitBalance
from appointment_engine.services.unit_balance import UnitBalanceCalculator

MARCH = date(2025, 3, 1)


async def seed_balance(db, remaining=8, allocated=40, client_id=100, speciality_id=3, month=MARCH):
    db.add(
        UnitBalance(
            client_id=client_id,
            speciality_id=speciality_id,
            month_year=month,
            total_allocated=allocated,
            total_used=allocated - remaining,
            total_remaining=remaining,
        )
    )
    await db.commit()


@pytest.mark.asyncio
async def test_exact_balance_is_not_insufficient(db):
    await seed_balance(db, remaining=8)

    projection = await UnitBalanceCalculator(db).project(
        100, 3, date(2025, 3, 15), duration_minutes=120
    )

    assert projection.available == 8
    assert projection.required == 8
    assert projection.projected == 0
    assert projection.insufficient is False
    assert projection.month_year == MARCH


@pytest.mark.asyncio
async def test_one_unit_over_is_insufficient(db):
    await seed_balance(db, remaining=8)

    projection = await UnitBalanceCalculator(db).project(
        100, 3, date(2025, 3, 15), duration_minutes=135
    )

    assert projection.required == 9
    assert projection.projected == -1
    assert projection.insufficient is True


@pytest.mark.asyncio
async def test_partial_units_round_up(db):
    await seed_balance(db, remaining=8)

    projection = await UnitBalanceCalculator(db).project(
        100, 3, date(2025, 3, 15), duration_minutes=16
    )
    assert projection.required == 2


@pytest.mark.asyncio
async def test_required_units_override_duration(db):
    await seed_balance(db, remaining=8)

    projection = await UnitBalanceCalculator(db).project(
        100, 3, date(2025, 3, 2), duration_minutes=600, required_units=3
    )
    assert projection.required == 3
    assert projection.projected == 5


@pytest.mark.asyncio
async def test_other_months_are_not_mixed_in(db):
    await seed_balance(db, remaining=8)

    projection = await UnitBalanceCalculator(db).project(
        100, 3, date(2025, 4, 1), duration_minutes=60
    )
    assert projection.balance_found is False
    assert projection.available == 0
    assert projection.insufficient is True


@pytest.mark.asyncio
async def test_check_reports_insufficiency_as_advisory(db):
    await seed_balance(db, remaining=8)

    report = await UnitBalanceCalculator(db).check(100, 3, date(2025, 3, 15), 135)

    assert report.codes() == ["insufficient_units"]
    assert not report.has_blocking
    assert report.warnings[0].source == "unit_balance"


@pytest.mark.asyncio
async def test_check_flags_missing_allocation(db):
    report = await UnitBalanceCalculator(db).check(100, 3, date(2025, 3, 15), 60)
    assert report.codes() == ["no_allocation"]


@pytest.mark.asyncio
async def test_check_is_clean_when_units_remain(db):
    await seed_balance(db, remaining=8)
    report = await UnitBalanceCalculator(db).check(100, 3, date(2025, 3, 15), 60)
    assert report.is_clean


@pytest.mark.asyncio
async def test_balance_row_is_never_modified(db):
    await seed_balance(db, remaining=8)
    await UnitBalanceCalculator(db).project(100, 3, date(2025, 3, 15), duration_minutes=135)

    balance = await db.get(UnitBalance, 1, populate_existing=True)
    assert (balance.total_allocated, balance.total_used, balance.total_remaining) == (40, 32, 8)
