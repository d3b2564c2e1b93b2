"""
Integration tests for payment schedules and payments.

Tests schedule generation, recording and reverting payments, manual
lines and the tenancy payment view over HTTP.
"""

import pytest
from datetime import date
from decimal import Decimal

from backend.app.core.clock import today
from backend.app.models.payment_enums import PaymentOption


def _next_september():
    return date(today().year + 1, 9, 1)


@pytest.fixture
async def tenancy(make_tenancy):
    start = _next_september()
    return await make_tenancy(
        start, date(start.year + 1, 8, 31),
        members=[
            {"rent_pppw": Decimal("100.00"), "deposit_amount": Decimal("500.00"),
             "payment_option": PaymentOption.QUARTERLY},
            {"rent_pppw": Decimal("150.00"), "deposit_amount": Decimal("600.00"),
             "payment_option": PaymentOption.MONTHLY},
        ],
    )


@pytest.fixture
async def schedules(client, agent_headers, tenancy):
    response = await client.post(f"/v1/tenancies/{tenancy.id}/payment-schedule", headers=agent_headers)
    assert response.status_code == 201
    return response.json()["schedules"]


@pytest.mark.asyncio
async def test_generate_schedule(client, agent_headers, tenancy):
    response = await client.post(f"/v1/tenancies/{tenancy.id}/payment-schedule", headers=agent_headers)

    assert response.status_code == 201
    data = response.json()
    # 1 deposit + 5 quarterly + 12 monthly
    assert data["lines_created"] == 18
    assert data["rent_credits_applied"] == 0
    deposit = [s for s in data["schedules"] if s["payment_type"] == "deposit"]
    assert len(deposit) == 1
    assert Decimal(deposit[0]["amount_due"]) == Decimal("1100.00")
    assert all(s["status"] == "pending" and s["schedule_type"] == "automated" for s in data["schedules"])

    again = await client.post(f"/v1/tenancies/{tenancy.id}/payment-schedule", headers=agent_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_generate_applies_holding_deposit_credit(
    client, db_session, agent_headers, make_application, make_tenancy
):
    application = await make_application()
    held = await client.post("/v1/holding-deposits", json={
        "application_id": application.id,
        "amount": "200.00",
        "date_received": today().isoformat(),
    }, headers=agent_headers)
    start = _next_september()
    tenancy = await make_tenancy(
        start, date(start.year + 1, 8, 31),
        members=[{"rent_pppw": Decimal("150.00"), "payment_option": PaymentOption.MONTHLY,
                  "application_id": application.id}],
    )
    applied = await client.post(f"/v1/holding-deposits/{held.json()['id']}/apply", json={
        "tenancy_id": tenancy.id,
        "status": "applied_to_rent",
    }, headers=agent_headers)
    assert applied.status_code == 200

    response = await client.post(f"/v1/tenancies/{tenancy.id}/payment-schedule", headers=agent_headers)

    assert response.json()["rent_credits_applied"] == 1
    first = min(response.json()["schedules"], key=lambda s: s["due_date"])
    assert Decimal(first["amount_due"]) == Decimal("450.00")


@pytest.mark.asyncio
async def test_record_and_revert_payment(client, agent_headers, tenancy, schedules):
    line = next(s for s in schedules if s["description"] == "Rent - Until quarter start")

    response = await client.post(f"/v1/payments/{line['id']}/record", json={
        "amount": "100.00",
        "paid_date": today().isoformat(),
        "reference": "SO-1",
    }, headers=agent_headers)
    assert response.status_code == 201
    assert response.json()["schedule"]["status"] == "partial"
    assert response.json()["payment"]["reference"] == "SO-1"

    history = await client.get(f"/v1/payments/{line['id']}/history", headers=agent_headers)
    assert len(history.json()) == 1

    payments = await client.get(f"/v1/tenancies/{tenancy.id}/payments", headers=agent_headers)
    paid = {s["id"]: Decimal(s["amount_paid"]) for s in payments.json()}
    assert paid[line["id"]] == Decimal("100.00")

    reverted = await client.post(f"/v1/payments/{line['id']}/revert", headers=agent_headers)
    assert reverted.status_code == 200
    assert reverted.json()["payments_deleted"] == 1
    assert reverted.json()["schedule"]["status"] == "pending"


@pytest.mark.asyncio
async def test_overpayment_rejected(client, agent_headers, schedules):
    line = next(s for s in schedules if s["payment_type"] == "deposit")

    response = await client.post(f"/v1/payments/{line['id']}/record", json={
        "amount": "1100.01",
        "paid_date": today().isoformat(),
    }, headers=agent_headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_PAYMENT_001"
    assert response.json()["details"]["remaining_balance"] == "1100.00"


@pytest.mark.asyncio
async def test_delete_single_payment_record(client, agent_headers, schedules):
    line = next(s for s in schedules if s["payment_type"] == "deposit")
    first = await client.post(f"/v1/payments/{line['id']}/record", json={
        "amount": "600.00", "paid_date": today().isoformat(),
    }, headers=agent_headers)
    await client.post(f"/v1/payments/{line['id']}/record", json={
        "amount": "500.00", "paid_date": today().isoformat(),
    }, headers=agent_headers)

    response = await client.delete(
        f"/v1/payments/{line['id']}/records/{first.json()['payment']['id']}", headers=agent_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "partial"


@pytest.mark.asyncio
async def test_breakdown(client, agent_headers, schedules):
    quarter = next(s for s in schedules if s["description"].startswith("Rent - October-December"))

    response = await client.get(f"/v1/payments/{quarter['id']}/breakdown", headers=agent_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["is_multi_month"] is True
    assert len(data["monthly_breakdown"]) == 3
    assert abs(Decimal(data["calculated_amount"]) - Decimal(quarter["amount_due"])) <= Decimal("0.01")

    deposit = next(s for s in schedules if s["payment_type"] == "deposit")
    assert (await client.get(f"/v1/payments/{deposit['id']}/breakdown", headers=agent_headers)).status_code == 400


@pytest.mark.asyncio
async def test_manual_line_create_update_delete(client, agent_headers, tenancy, schedules):
    member_id = next(s["tenancy_member_id"] for s in schedules if s["tenancy_member_id"])

    created = await client.post("/v1/payments/manual", json={
        "tenancy_id": tenancy.id,
        "member_id": member_id,
        "due_date": _next_september().isoformat(),
        "amount_due": "35.00",
        "payment_type": "fees",
        "description": "Key replacement",
    }, headers=agent_headers)
    assert created.status_code == 201
    line = created.json()
    assert line["schedule_type"] == "manual"

    updated = await client.put(f"/v1/payments/{line['id']}", json={
        "amount_due": "40.00",
        "due_date": line["due_date"],
        "payment_type": "fees",
        "description": "Key replacement x2",
    }, headers=agent_headers)
    assert updated.status_code == 200
    assert Decimal(updated.json()["amount_due"]) == Decimal("40.00")

    deleted = await client.delete(f"/v1/payments/{line['id']}", headers=agent_headers)
    assert deleted.status_code == 204
    assert (await client.get(f"/v1/payments/{line['id']}/history", headers=agent_headers)).status_code == 404


@pytest.mark.asyncio
async def test_summary_and_deposit_return(client, agent_headers, tenancy, schedules):
    summary = await client.get(f"/v1/tenancies/{tenancy.id}/payments/summary", headers=agent_headers)
    assert summary.status_code == 200
    assert summary.json()["status_counts"]["pending"] == 18
    assert Decimal(summary.json()["total_paid"]) == Decimal("0.00")

    key_return = date(_next_september().year + 1, 8, 31)
    response = await client.post(f"/v1/tenancies/{tenancy.id}/deposit-return", json={
        "key_return_date": key_return.isoformat(),
    }, headers=agent_headers)
    assert response.status_code == 201
    assert response.json()["deposit_return_date"] == date(key_return.year, 9, 14).isoformat()
    assert sorted(Decimal(s["amount_due"]) for s in response.json()["schedules"]) == [
        Decimal("-600.00"), Decimal("-500.00"),
    ]

    again = await client.post(f"/v1/tenancies/{tenancy.id}/deposit-return", json={
        "key_return_date": key_return.isoformat(),
    }, headers=agent_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_other_agency_cannot_touch_schedule(client, other_agency_headers, tenancy, schedules):
    response = await client.post(f"/v1/payments/{schedules[0]['id']}/record", json={
        "amount": "10.00", "paid_date": today().isoformat(),
    }, headers=other_agency_headers)
    assert response.status_code == 404

    response = await client.get(f"/v1/tenancies/{tenancy.id}/payments", headers=other_agency_headers)
    assert response.status_code == 404
