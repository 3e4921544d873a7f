import pytest
from fastapi.testclient import TestClient

from loanview.catalog import get_default_catalog
from loanview.core.assembler import ResponseAssembler
from loanview.server import app, get_assembler

ANSWERS = ["home", "1500000", "20", "80000", "720", "5000", "salaried"]


@pytest.fixture
def client():
    engine = ResponseAssembler(get_default_catalog())
    app.dependency_overrides[get_assembler] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_chat_scenario(client):
    response = client.post("/chat", json={"sessionId": "conv_1", "text": "I need a laptop loan"})

    assert response.status_code == 200
    body = response.json()
    assert body["category"] == "loan_card"
    assert body["payload"] == {"loanTypeId": "gadget"}
    assert body["title"]


def test_chat_eligibility_flow(client):
    start = client.post("/chat", json={"sessionId": "conv_2", "text": "am I eligible for a loan"}).json()
    assert start["category"] == "start_eligibility"

    body = None
    for answer in ANSWERS:
        body = client.post("/chat", json={"sessionId": "conv_2", "text": answer}).json()

    assert body["category"] == "eligibility_result"
    assert [v["lenderId"] for v in body["payload"]["verdicts"]] == ["apex", "horizon", "summit"]


def test_chat_requires_session_and_text(client):
    assert client.post("/chat", json={"text": "hi"}).status_code == 422
    assert client.post("/chat", json={"sessionId": "conv_1"}).status_code == 422


def test_emi_endpoint(client):
    response = client.post("/tools/emi", json={"principal": 1000000, "annualRatePercent": 8.5, "tenureMonths": 240})

    assert response.status_code == 200
    body = response.json()
    assert body["totalPayment"] == pytest.approx(body["emi"] * 240)
    assert body["totalInterest"] == pytest.approx(body["totalPayment"] - 1000000)


def test_emi_endpoint_rejects_invalid_loan(client):
    response = client.post("/tools/emi", json={"principal": 0, "annualRatePercent": 8.5, "tenureMonths": 240})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error_type"] == "calculator_input_error"
    assert "principal" in detail["error"]


def test_amortization_endpoint(client):
    response = client.post("/tools/amortization", json={"principal": 12000, "annualRatePercent": 0, "tenureMonths": 12})

    assert response.status_code == 200
    body = response.json()
    assert body["emi"] == 1000
    assert len(body["schedule"]) == 12
    assert body["schedule"][-1]["remainingBalance"] == 0


def test_amortization_endpoint_rejects_negative_rate(client):
    response = client.post("/tools/amortization", json={"principal": 12000, "annualRatePercent": -2, "tenureMonths": 12})
    assert response.status_code == 400


def test_lenders(client):
    body = client.get("/lenders").json()

    assert [lender["id"] for lender in body] == ["apex", "horizon", "summit"]
    assert len(body[2]["offers"]) == 3


def test_compare(client):
    response = client.get("/compare/home", params={"amount": 500000, "tenureMonths": 120})

    assert response.status_code == 200
    rows = response.json()
    assert [row["annualRatePercent"] for row in rows] == [6.5, 6.8, 8.9]
    assert rows[0]["bestOffer"] is True


def test_compare_defaults_follow_engine_settings():
    engine = ResponseAssembler(get_default_catalog(), comparison_amount=500_000, comparison_tenure_months=120)
    app.dependency_overrides[get_assembler] = lambda: engine
    try:
        client = TestClient(app)
        rows = client.get("/compare/home").json()
        card = client.post("/chat", json={"sessionId": "conv_3", "text": "compare lenders for me"}).json()
    finally:
        app.dependency_overrides.clear()

    assert [row["emi"] for row in rows] == [row["emi"] for row in card["payload"]["offers"]]
    assert card["payload"]["amount"] == 500_000
    assert card["payload"]["tenureMonths"] == 120


def test_compare_unknown_loan_type(client):
    response = client.get("/compare/yacht")

    assert response.status_code == 400
    assert response.json()["detail"]["error_type"] == "unknown_loan_type"


def test_market_listing(client):
    rows = client.get("/market", params={"sortBy": "interestRate", "descending": "true"}).json()

    assert len(rows) == 15
    assert rows[0]["annualRatePercent"] == 13.5
    assert client.get("/market", params={"sortBy": "popularity"}).status_code == 400


def test_market_stats(client):
    body = client.get("/market/stats", params={"loanType": "home"}).json()

    assert body["offerCount"] == 3
    assert body["minRatePercent"] == 6.5
    assert client.get("/market/stats", params={"loanType": "yacht"}).status_code == 400


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["lenders"] == 3
    assert body["generator"] == "disabled"
