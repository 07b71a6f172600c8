from decimal import Decimal
from unittest.mock import patch

from fastapi import status
from sqlalchemy.exc import OperationalError


def create_budget(client):
    response = client.post("/api/v1/budgets/", json={"name": "Household"})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


def create_entity(client, budget_id, kind, name):
    response = client.post(f"/api/v1/budgets/{budget_id}/{kind}/", json={"name": name})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["id"]


def post_transaction(client, budget_id, **payload):
    payload.setdefault("transaction_date", "2025-07-01")
    return client.post(f"/api/v1/budgets/{budget_id}/transactions/", json=payload)


def pool_of(client, budget_id):
    return Decimal(client.get(f"/api/v1/budgets/{budget_id}").json()["available_amount"])


def balance_of(client, envelope_id):
    return Decimal(client.get(f"/api/v1/envelopes/{envelope_id}").json()["current_balance"])


def setup_budget(client):
    budget_id = create_budget(client)
    return {
        "budget_id": budget_id,
        "salary": create_entity(client, budget_id, "income-sources", "Salary"),
        "market": create_entity(client, budget_id, "payees", "Market"),
        "groceries": create_entity(client, budget_id, "envelopes", "Groceries"),
        "rent": create_entity(client, budget_id, "envelopes", "Rent"),
    }


def test_income_and_allocation_flow(client):
    ids = setup_budget(client)
    budget_id = ids["budget_id"]

    income = post_transaction(client, budget_id, transaction_type="income", amount="3000.00",
                              income_source_id=ids["salary"])
    allocation = post_transaction(client, budget_id, transaction_type="allocation", amount="500",
                                  to_envelope_id=ids["groceries"], description="July groceries")

    assert income.status_code == status.HTTP_201_CREATED
    assert allocation.status_code == status.HTTP_201_CREATED
    data = allocation.json()
    assert data["transaction_type"] == "allocation"
    assert Decimal(data["amount"]) == Decimal("500.00")
    assert data["is_deleted"] is False
    assert data["created_by"] == "user-1"
    assert pool_of(client, budget_id) == Decimal("2500.00")
    assert balance_of(client, ids["groceries"]) == Decimal("500.00")


def test_delete_and_restore(client):
    ids = setup_budget(client)
    budget_id = ids["budget_id"]
    post_transaction(client, budget_id, transaction_type="income", amount="1000", income_source_id=ids["salary"])
    post_transaction(client, budget_id, transaction_type="allocation", amount="1000", to_envelope_id=ids["groceries"])
    expense_id = post_transaction(client, budget_id, transaction_type="expense", amount="200",
                                  from_envelope_id=ids["groceries"], payee_id=ids["market"]).json()["id"]
    assert balance_of(client, ids["groceries"]) == Decimal("800.00")

    deleted = client.delete(f"/api/v1/transactions/{expense_id}")
    assert deleted.status_code == status.HTTP_200_OK
    assert deleted.json()["is_deleted"] is True
    assert deleted.json()["deleted_by"] == "user-1"
    assert balance_of(client, ids["groceries"]) == Decimal("1000.00")

    again = client.delete(f"/api/v1/transactions/{expense_id}")
    assert again.status_code == status.HTTP_409_CONFLICT
    assert again.json()["detail"]["error"] == "conflict"
    assert balance_of(client, ids["groceries"]) == Decimal("1000.00")

    restored = client.post(f"/api/v1/transactions/{expense_id}/restore")
    assert restored.status_code == status.HTTP_200_OK
    assert restored.json()["is_deleted"] is False
    assert balance_of(client, ids["groceries"]) == Decimal("800.00")

    assert client.post(f"/api/v1/transactions/{expense_id}/restore").status_code == status.HTTP_409_CONFLICT

    events = client.get(f"/api/v1/transactions/{expense_id}/events").json()
    assert [event["event_type"] for event in events] == ["created", "deleted", "restored"]


def test_deleted_hidden_from_list(client):
    ids = setup_budget(client)
    budget_id = ids["budget_id"]
    first = post_transaction(client, budget_id, transaction_type="income", amount="10", income_source_id=ids["salary"])
    second = post_transaction(client, budget_id, transaction_type="income", amount="20", income_source_id=ids["salary"])
    client.delete(f"/api/v1/transactions/{first.json()['id']}")

    visible = client.get(f"/api/v1/budgets/{budget_id}/transactions/").json()
    everything = client.get(f"/api/v1/budgets/{budget_id}/transactions/", params={"include_deleted": True}).json()

    assert [t["id"] for t in visible] == [second.json()["id"]]
    assert len(everything) == 2


def test_patch_transaction(client):
    ids = setup_budget(client)
    budget_id = ids["budget_id"]
    post_transaction(client, budget_id, transaction_type="income", amount="1000", income_source_id=ids["salary"])
    transfer_id = post_transaction(client, budget_id, transaction_type="allocation", amount="300",
                                   to_envelope_id=ids["groceries"]).json()["id"]

    response = client.patch(f"/api/v1/transactions/{transfer_id}", json={"amount": "450.00", "notes": "raised"})

    assert response.status_code == status.HTTP_200_OK
    assert Decimal(response.json()["amount"]) == Decimal("450.00")
    assert response.json()["notes"] == "raised"
    assert pool_of(client, budget_id) == Decimal("550.00")
    assert balance_of(client, ids["groceries"]) == Decimal("450.00")

    events = client.get(f"/api/v1/budgets/{budget_id}/transaction-events/", params={"event_type": "updated"}).json()
    assert len(events) == 1
    assert events[0]["changed_fields"] == ["amount", "notes"]


def test_validation_errors(client):
    ids = setup_budget(client)
    budget_id = ids["budget_id"]

    wrong_shape = post_transaction(client, budget_id, transaction_type="income", amount="10",
                                   income_source_id=ids["salary"], to_envelope_id=ids["groceries"])
    same_envelope = post_transaction(client, budget_id, transaction_type="transfer", amount="10",
                                     from_envelope_id=ids["groceries"], to_envelope_id=ids["groceries"])
    negative = post_transaction(client, budget_id, transaction_type="allocation", amount="-5",
                                to_envelope_id=ids["groceries"])
    unknown_type = post_transaction(client, budget_id, transaction_type="refund", amount="5")

    assert wrong_shape.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert wrong_shape.json()["detail"]["field"] == "to_envelope_id"
    assert same_envelope.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert negative.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert negative.json()["detail"]["field"] == "amount"
    assert unknown_type.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    huge = post_transaction(client, budget_id, transaction_type="income", amount="1e30",
                            income_source_id=ids["salary"])
    assert huge.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert huge.json()["detail"]["field"] == "amount"

    assert client.get(f"/api/v1/budgets/{budget_id}/transactions/").json() == []
    assert pool_of(client, budget_id) == Decimal("0.00")


def test_not_found_errors(client):
    ids = setup_budget(client)
    budget_id = ids["budget_id"]

    unknown_envelope = post_transaction(client, budget_id, transaction_type="allocation", amount="5",
                                        to_envelope_id="does-not-exist")
    unknown_budget = post_transaction(client, "no-such-budget", transaction_type="income", amount="5",
                                      income_source_id=ids["salary"])

    assert unknown_envelope.status_code == status.HTTP_404_NOT_FOUND
    assert unknown_envelope.json()["detail"]["entity"] == "Envelope"
    assert unknown_budget.status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/api/v1/transactions/nope").status_code == status.HTTP_404_NOT_FOUND
    assert client.delete("/api/v1/transactions/nope").status_code == status.HTTP_404_NOT_FOUND


def test_other_user_sees_nothing(client):
    ids = setup_budget(client)
    budget_id = ids["budget_id"]
    income_id = post_transaction(client, budget_id, transaction_type="income", amount="5",
                                 income_source_id=ids["salary"]).json()["id"]
    stranger = {"X-User-Id": "user-2"}

    assert client.get(f"/api/v1/transactions/{income_id}", headers=stranger).status_code == status.HTTP_404_NOT_FOUND
    assert client.get(f"/api/v1/budgets/{budget_id}/transactions/", headers=stranger).status_code == status.HTTP_404_NOT_FOUND
    assert client.delete(f"/api/v1/transactions/{income_id}", headers=stranger).status_code == status.HTTP_404_NOT_FOUND


def test_missing_user_header(client):
    ids = setup_budget(client)

    client.headers.pop("X-User-Id")
    missing = client.get(f"/api/v1/budgets/{ids['budget_id']}")

    assert missing.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@patch("backend.app.services.transaction_service.record_transaction_event")
def test_store_failure_returns_503(mock_record, client):
    ids = setup_budget(client)
    mock_record.side_effect = OperationalError("INSERT INTO transaction_events", {}, Exception("disk full"))

    response = post_transaction(client, ids["budget_id"], transaction_type="income", amount="100",
                                income_source_id=ids["salary"])

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["detail"]["error"] == "store_error"
    assert pool_of(client, ids["budget_id"]) == Decimal("0.00")
