from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from opentelemetry import trace
from sqlalchemy.orm import Session

from app.business.subscription.models import Subscription
from app.business.subscription.months import MonthWindow, overlap_months
from app.business.subscription.repository import SubscriptionRepository
from app.context import get_correlation_id
from app.metrics import observe_aggregation


logger = logging.getLogger("app.subscriptions")
tracer = trace.get_tracer("app.subscriptions.aggregation")


class SubscriptionSource(Protocol):
    def find_overlapping(
        self,
        session: Session,
        window: MonthWindow,
        *,
        user_id: str | None = None,
        service_name: str | None = None,
    ) -> Sequence[Subscription]: ...


@dataclass(frozen=True, slots=True)
class AggregateRow:
    number: int
    service_name: str
    price: int
    user_id: str


@dataclass(frozen=True, slots=True)
class AggregateDetails:
    rows: list[AggregateRow] = field(default_factory=list)
    total: int = 0


def _blank_to_none(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    return value


@dataclass(slots=True)
class AggregationService:
    """Spend aggregation over a window of whole months.

    Two entry points exist and their totals deliberately differ:
    ``aggregate_total`` weights each price by the months it overlaps the
    window, while ``aggregate_with_details`` reports the flat sum of nominal
    monthly prices next to its numbered breakdown. Callers of either rely on
    the current numbers, so they are kept apart.

    The service keeps no state between calls. Errors raised by the data
    source propagate unchanged.
    """

    repository: SubscriptionSource = field(default_factory=SubscriptionRepository)

    def aggregate_total(
        self,
        session: Session,
        window: MonthWindow,
        *,
        user_id: str | None = None,
        service_name: str | None = None,
    ) -> int:
        user_id = _blank_to_none(user_id)
        service_name = _blank_to_none(service_name)
        with tracer.start_as_current_span("subscriptions.aggregate_total") as span:
            self._annotate(span, window)
            candidates = self.repository.find_overlapping(
                session,
                window,
                user_id=user_id,
                service_name=service_name,
            )
            total = sum(item.price * overlap_months(item, window) for item in candidates)
            span.set_attribute("candidate_count", len(candidates))

        observe_aggregation("total", len(candidates))
        logger.info(
            "subscriptions.aggregate_total",
            extra={
                "from_month": window.start.format(),
                "to_month": window.end.format(),
                "user_id": user_id,
                "service_name": service_name,
                "candidate_count": len(candidates),
                "total": total,
            },
        )
        return total

    def aggregate_with_details(
        self,
        session: Session,
        window: MonthWindow,
        *,
        user_id: str | None = None,
        service_name: str | None = None,
    ) -> AggregateDetails:
        user_id = _blank_to_none(user_id)
        service_name = _blank_to_none(service_name)
        with tracer.start_as_current_span("subscriptions.aggregate_with_details") as span:
            self._annotate(span, window)
            candidates = self.repository.find_overlapping(
                session,
                window,
                user_id=user_id,
                service_name=service_name,
            )
            # sorted() is stable: equal service names keep retrieval order
            ordered = sorted(candidates, key=lambda item: item.service_name)
            rows = [
                AggregateRow(
                    number=position,
                    service_name=item.service_name,
                    price=item.price,
                    user_id=str(item.user_id),
                )
                for position, item in enumerate(ordered, start=1)
            ]
            total = sum(item.price for item in ordered)
            span.set_attribute("candidate_count", len(rows))

        observe_aggregation("details", len(rows))
        logger.info(
            "subscriptions.aggregate_with_details",
            extra={
                "from_month": window.start.format(),
                "to_month": window.end.format(),
                "user_id": user_id,
                "service_name": service_name,
                "candidate_count": len(rows),
                "total": total,
            },
        )
        return AggregateDetails(rows=rows, total=total)

    @staticmethod
    def _annotate(span: trace.Span, window: MonthWindow) -> None:
        span.set_attribute("from_month", window.start.format())
        span.set_attribute("to_month", window.end.format())
        correlation_id = get_correlation_id()
        if correlation_id:
            span.set_attribute("correlation_id", correlation_id)


aggregation_service = AggregationService()
