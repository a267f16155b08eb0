from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.business.subscription.aggregation import aggregation_service
from app.business.subscription.months import Month, MonthWindow
from app.business.subscription.schemas import (
    AggregateRead,
    AggregateRowRead,
    AggregateTotalRead,
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionUpdate,
)
from app.business.subscription.service import subscription_service
from app.core.config import get_settings
from app.core.database import get_db


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _parse_month_param(name: str, raw: str | None) -> Month:
    if raw is None or raw == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="from and to are required (MM-YYYY)")
    try:
        return Month.parse(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"invalid {name} format, expected MM-YYYY")


def get_month_window(
    from_month: str | None = Query(default=None, alias="from"),
    to_month: str | None = Query(default=None, alias="to"),
) -> MonthWindow:
    start = _parse_month_param("from", from_month)
    end = _parse_month_param("to", to_month)
    try:
        return MonthWindow(start=start, end=end)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def get_user_id(user_id: str | None = Query(default=None)) -> str | None:
    if user_id is None or user_id.strip() == "":
        return None
    try:
        return str(uuid.UUID(user_id.strip()))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id must be a valid UUID")


def get_list_limit(limit: int | None = Query(default=None, ge=1)) -> int:
    settings = get_settings()
    if limit is None:
        return settings.subscriptions_list_default_limit
    return min(limit, settings.subscriptions_list_max_limit)


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: SubscriptionCreate,
    response: Response,
    db: Session = Depends(get_db),
) -> SubscriptionRead:
    created = subscription_service.create(db, payload)
    response.headers["Location"] = f"/subscriptions/{created.id}"
    return created


@router.get("", response_model=list[SubscriptionRead])
def list_subscriptions(
    user_id: str | None = Depends(get_user_id),
    service_name: str | None = Query(default=None),
    limit: int = Depends(get_list_limit),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[SubscriptionRead]:
    return subscription_service.list(db, user_id=user_id, service_name=service_name, limit=limit, offset=offset)


@router.get("/aggregate", response_model=AggregateRead, response_model_exclude_none=True)
def aggregate(
    window: MonthWindow = Depends(get_month_window),
    user_id: str | None = Depends(get_user_id),
    service_name: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> AggregateRead:
    details = aggregation_service.aggregate_with_details(
        db,
        window,
        user_id=user_id,
        service_name=service_name,
    )
    return AggregateRead(
        user_id=user_id,
        subscriptions=[
            AggregateRowRead(
                number=row.number,
                service_name=row.service_name,
                price=row.price,
                user_id=row.user_id,
            )
            for row in details.rows
        ],
        from_month=window.start.format(),
        to_month=window.end.format(),
        total=details.total,
    )


@router.get("/aggregate/total", response_model=AggregateTotalRead, response_model_exclude_none=True)
def aggregate_total(
    window: MonthWindow = Depends(get_month_window),
    user_id: str | None = Depends(get_user_id),
    service_name: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> AggregateTotalRead:
    total = aggregation_service.aggregate_total(db, window, user_id=user_id, service_name=service_name)
    return AggregateTotalRead(
        from_month=window.start.format(),
        to_month=window.end.format(),
        user_id=user_id,
        service_name=service_name or None,
        total=total,
    )


@router.get("/{subscription_id}", response_model=SubscriptionRead)
def get_subscription(
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> SubscriptionRead:
    return subscription_service.get(db, subscription_id)


@router.put("/{subscription_id}", response_model=SubscriptionRead)
def update_subscription(
    subscription_id: uuid.UUID,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
) -> SubscriptionRead:
    return subscription_service.update(db, subscription_id, payload)


@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subscription(
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> Response:
    subscription_service.delete(db, subscription_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
