from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app import events
from app.business.subscription.models import Subscription
from app.business.subscription.months import Month
from app.business.subscription.repository import SubscriptionRepository
from app.business.subscription.schemas import SubscriptionCreate, SubscriptionRead, SubscriptionUpdate
from app.metrics import observe_subscription_mutation


logger = logging.getLogger("app.subscriptions")


@dataclass(slots=True)
class SubscriptionService:
    repository: SubscriptionRepository = field(default_factory=SubscriptionRepository)

    def create(self, session: Session, payload: SubscriptionCreate) -> SubscriptionRead:
        logger.info(
            "subscriptions.create",
            extra={"user_id": str(payload.user_id), "service_name": payload.service_name},
        )
        subscription = Subscription(**payload.model_dump(mode="python"))
        self.repository.add(session, subscription)
        session.commit()
        session.refresh(subscription)

        observe_subscription_mutation("create")
        self._publish("subscription.created", subscription)
        logger.debug("subscriptions.created", extra={"subscription_id": str(subscription.id)})
        return SubscriptionRead.model_validate(subscription)

    def get(self, session: Session, subscription_id: uuid.UUID) -> SubscriptionRead:
        return SubscriptionRead.model_validate(self._get_or_404(session, subscription_id))

    def list(
        self,
        session: Session,
        *,
        user_id: str | None,
        service_name: str | None,
        limit: int,
        offset: int,
    ) -> list[SubscriptionRead]:
        rows = self.repository.list(
            session,
            user_id=user_id,
            service_name=service_name or None,
            limit=limit,
            offset=offset,
        )
        logger.info(
            "subscriptions.list",
            extra={
                "user_id": user_id,
                "service_name": service_name,
                "count": len(rows),
            },
        )
        return [SubscriptionRead.model_validate(row) for row in rows]

    def update(self, session: Session, subscription_id: uuid.UUID, payload: SubscriptionUpdate) -> SubscriptionRead:
        subscription = self._get_or_404(session, subscription_id)
        for key, value in payload.model_dump(mode="python").items():
            setattr(subscription, key, value)
        session.commit()
        session.refresh(subscription)

        observe_subscription_mutation("update")
        self._publish("subscription.updated", subscription)
        logger.info("subscriptions.updated", extra={"subscription_id": str(subscription.id)})
        return SubscriptionRead.model_validate(subscription)

    def delete(self, session: Session, subscription_id: uuid.UUID) -> None:
        subscription = self._get_or_404(session, subscription_id)
        envelope = self._envelope("subscription.deleted", subscription)
        self.repository.delete(session, subscription)
        session.commit()

        observe_subscription_mutation("delete")
        events.publish(envelope)
        logger.info("subscriptions.deleted", extra={"subscription_id": str(subscription_id)})

    def _get_or_404(self, session: Session, subscription_id: uuid.UUID) -> Subscription:
        subscription = self.repository.get(session, subscription_id)
        if subscription is None:
            logger.warning("subscriptions.not_found", extra={"subscription_id": str(subscription_id)})
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="subscription not found")
        return subscription

    def _publish(self, event_type: str, subscription: Subscription) -> None:
        events.publish(self._envelope(event_type, subscription))

    @staticmethod
    def _envelope(event_type: str, subscription: Subscription) -> dict[str, object]:
        return {
            "event_type": event_type,
            "subscription_id": str(subscription.id),
            "user_id": str(subscription.user_id),
            "service_name": subscription.service_name,
            "price": subscription.price,
            "start_month": Month.from_date(subscription.start_date).format(),
            "end_month": Month.from_date(subscription.end_date).format() if subscription.end_date else None,
        }


subscription_service = SubscriptionService()
