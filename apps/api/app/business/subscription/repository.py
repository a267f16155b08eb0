from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy import Select, and_, or_, select
from sqlalchemy.orm import Session

from app.business.subscription.models import Subscription
from app.business.subscription.months import MonthWindow


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _as_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class SubscriptionRepository:
    def apply_filters(
        self,
        stmt: Select[Any],
        *,
        user_id: str | uuid.UUID | None,
        service_name: str | None,
    ) -> Select[Any]:
        if user_id:
            stmt = stmt.where(Subscription.user_id == _as_uuid(user_id))
        if service_name:
            stmt = stmt.where(Subscription.service_name.ilike(_like_pattern(service_name), escape="\\"))
        return stmt

    def find_overlapping(
        self,
        session: Session,
        window: MonthWindow,
        *,
        user_id: str | None = None,
        service_name: str | None = None,
    ) -> Sequence[Subscription]:
        stmt = select(Subscription).where(
            and_(
                Subscription.start_date <= window.end.first_day(),
                or_(
                    Subscription.end_date.is_(None),
                    Subscription.end_date >= window.start.first_day(),
                ),
            )
        )
        stmt = self.apply_filters(stmt, user_id=user_id, service_name=service_name)
        return session.scalars(stmt).all()

    def get(self, session: Session, subscription_id: uuid.UUID) -> Subscription | None:
        return session.get(Subscription, subscription_id)

    def list(
        self,
        session: Session,
        *,
        user_id: str | uuid.UUID | None,
        service_name: str | None,
        limit: int,
        offset: int,
    ) -> Sequence[Subscription]:
        stmt = self.apply_filters(select(Subscription), user_id=user_id, service_name=service_name)
        stmt = stmt.order_by(Subscription.start_date.desc(), Subscription.id.asc()).limit(limit).offset(offset)
        return session.scalars(stmt).all()

    def add(self, session: Session, subscription: Subscription) -> Subscription:
        session.add(subscription)
        session.flush()
        return subscription

    def delete(self, session: Session, subscription: Subscription) -> None:
        session.delete(subscription)
        session.flush()
