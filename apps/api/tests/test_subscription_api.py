from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import events
from app.business.subscription.aggregation import aggregation_service
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app


USER_ID = "60601fee-2bf1-4721-ae6f-7636e79a0cba"
OTHER_USER_ID = "0d5f4a3e-9a52-4c1c-8e4b-9f54b7d1b6a2"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_state() -> Generator[None, None, None]:
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create(
    client: TestClient,
    service_name: str = "Yandex Plus",
    price: int = 400,
    start_date: str = "07-2025",
    end_date: str | None = None,
    user_id: str = USER_ID,
) -> dict:
    payload: dict[str, object] = {
        "service_name": service_name,
        "price": price,
        "user_id": user_id,
        "start_date": start_date,
    }
    if end_date is not None:
        payload["end_date"] = end_date
    response = client.post("/subscriptions", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_returns_record_with_month_dates(client: TestClient) -> None:
    response = client.post(
        "/subscriptions",
        json={
            "service_name": "Yandex Plus",
            "price": 400,
            "user_id": USER_ID,
            "start_date": "07-2025",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["service_name"] == "Yandex Plus"
    assert body["price"] == 400
    assert body["user_id"] == USER_ID
    assert body["start_date"] == "07-2025"
    assert body["end_date"] is None
    assert response.headers["location"] == f"/subscriptions/{body['id']}"

    created = [item for item in events.published_events if item.get("event_type") == "subscription.created"]
    assert created
    assert created[-1]["subscription_id"] == body["id"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"user_id": "not-a-uuid"},
        {"price": -1},
        {"service_name": "   "},
        {"start_date": "2025-07"},
        {"start_date": "13-2025"},
        {"start_date": "07-2025", "end_date": "06-2025"},
    ],
)
def test_create_rejects_invalid_body(client: TestClient, overrides: dict[str, object]) -> None:
    payload: dict[str, object] = {
        "service_name": "Netflix",
        "price": 100,
        "user_id": USER_ID,
        "start_date": "07-2025",
    }
    payload.update(overrides)

    response = client.post("/subscriptions", json=payload)

    assert response.status_code == 422


def test_get_update_delete_roundtrip(client: TestClient) -> None:
    created = _create(client, service_name="Netflix", price=800, start_date="01-2024")

    fetched = client.get(f"/subscriptions/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json() == created

    updated = client.put(
        f"/subscriptions/{created['id']}",
        json={
            "service_name": "Netflix Premium",
            "price": 1200,
            "user_id": USER_ID,
            "start_date": "01-2024",
            "end_date": "12-2024",
        },
    )
    assert updated.status_code == 200
    assert updated.json()["service_name"] == "Netflix Premium"
    assert updated.json()["end_date"] == "12-2024"

    deleted = client.delete(f"/subscriptions/{created['id']}")
    assert deleted.status_code == 204
    assert deleted.content == b""

    missing = client.get(f"/subscriptions/{created['id']}")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "subscription not found"


def test_missing_subscription_is_404_for_every_verb(client: TestClient) -> None:
    unknown = uuid.uuid4()
    body = {"service_name": "Netflix", "price": 1, "user_id": USER_ID, "start_date": "01-2024"}

    assert client.get(f"/subscriptions/{unknown}").status_code == 404
    assert client.put(f"/subscriptions/{unknown}", json=body).status_code == 404
    assert client.delete(f"/subscriptions/{unknown}").status_code == 404


def test_list_filters_and_paginates(client: TestClient) -> None:
    _create(client, service_name="Netflix", start_date="01-2024")
    _create(client, service_name="Spotify", start_date="03-2024")
    _create(client, service_name="Netflix", start_date="02-2024", user_id=OTHER_USER_ID)

    everything = client.get("/subscriptions")
    assert everything.status_code == 200
    assert [item["start_date"] for item in everything.json()] == ["03-2024", "02-2024", "01-2024"]

    by_user = client.get("/subscriptions", params={"user_id": OTHER_USER_ID})
    assert [item["user_id"] for item in by_user.json()] == [OTHER_USER_ID]

    by_name = client.get("/subscriptions", params={"service_name": "netf"})
    assert {item["service_name"] for item in by_name.json()} == {"Netflix"}
    assert len(by_name.json()) == 2

    page = client.get("/subscriptions", params={"limit": 1, "offset": 1})
    assert [item["start_date"] for item in page.json()] == ["02-2024"]


def test_list_rejects_invalid_user_id(client: TestClient) -> None:
    response = client.get("/subscriptions", params={"user_id": "nope"})

    assert response.status_code == 400
    assert response.json()["detail"] == "user_id must be a valid UUID"


def test_aggregate_returns_numbered_breakdown(client: TestClient) -> None:
    _create(client, service_name="Spotify", price=300, start_date="01-2024")
    _create(client, service_name="Netflix", price=800, start_date="02-2024", end_date="04-2024")
    _create(client, service_name="Archive", price=999, start_date="01-2020", end_date="12-2020")

    response = client.get("/subscriptions/aggregate", params={"from": "01-2024", "to": "12-2024"})

    assert response.status_code == 200
    body = response.json()
    assert "user_id" not in body
    assert body["from"] == "01-2024"
    assert body["to"] == "12-2024"
    assert body["total"] == 1100
    assert body["subscriptions"] == [
        {"number": 1, "service_name": "Netflix", "price": 800, "user_id": USER_ID},
        {"number": 2, "service_name": "Spotify", "price": 300, "user_id": USER_ID},
    ]


def test_aggregate_echoes_user_filter(client: TestClient) -> None:
    _create(client, service_name="Netflix", price=800, start_date="01-2024")
    _create(client, service_name="Netflix", price=500, start_date="01-2024", user_id=OTHER_USER_ID)

    response = client.get(
        "/subscriptions/aggregate",
        params={"from": "01-2024", "to": "01-2024", "user_id": OTHER_USER_ID},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == OTHER_USER_ID
    assert body["total"] == 500
    assert [row["user_id"] for row in body["subscriptions"]] == [OTHER_USER_ID]


def test_aggregate_with_no_matches(client: TestClient) -> None:
    response = client.get("/subscriptions/aggregate", params={"from": "01-2024", "to": "12-2024"})

    assert response.status_code == 200
    assert response.json() == {"subscriptions": [], "from": "01-2024", "to": "12-2024", "total": 0}


@pytest.mark.parametrize(
    ("params", "detail"),
    [
        ({"to": "12-2024"}, "from and to are required (MM-YYYY)"),
        ({"from": "01-2024"}, "from and to are required (MM-YYYY)"),
        ({"from": "2024-01", "to": "12-2024"}, "invalid from format, expected MM-YYYY"),
        ({"from": "01-2024", "to": "13-2024"}, "invalid to format, expected MM-YYYY"),
        ({"from": "05-2024", "to": "04-2024"}, "`from` must be less than or equal to `to`"),
    ],
)
def test_aggregate_rejects_bad_window(client: TestClient, params: dict[str, str], detail: str) -> None:
    response = client.get("/subscriptions/aggregate", params=params)

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_aggregate_total_is_overlap_weighted(client: TestClient) -> None:
    _create(client, service_name="Spotify", price=300, start_date="01-2024")
    _create(client, service_name="Netflix", price=800, start_date="02-2024", end_date="04-2024")

    response = client.get(
        "/subscriptions/aggregate/total",
        params={"from": "01-2024", "to": "12-2024", "service_name": "spot"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "from": "01-2024",
        "to": "12-2024",
        "service_name": "spot",
        "total": 300 * 12,
    }


class _FailingSource:
    def find_overlapping(self, session, window, *, user_id=None, service_name=None):  # type: ignore[no-untyped-def]
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


def test_store_failure_maps_to_internal_error(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(aggregation_service, "repository", _FailingSource())

    response = client.get(
        "/subscriptions/aggregate",
        params={"from": "01-2024", "to": "12-2024"},
        headers={"X-Correlation-Id": "db-down-1"},
    )

    assert response.status_code == 500
    assert response.json() == {
        "code": "INTERNAL_ERROR",
        "message": "internal error",
        "details": None,
        "correlation_id": "db-down-1",
    }


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
