from app.business.subscription.aggregation import AggregateDetails, AggregateRow, AggregationService, aggregation_service
from app.business.subscription.api import router
from app.business.subscription.models import Subscription
from app.business.subscription.months import Month, MonthWindow, overlap_months
from app.business.subscription.repository import SubscriptionRepository
from app.business.subscription.schemas import (
    AggregateRead,
    AggregateTotalRead,
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionUpdate,
)
from app.business.subscription.service import SubscriptionService, subscription_service

__all__ = [
    "router",
    "Subscription",
    "Month",
    "MonthWindow",
    "overlap_months",
    "SubscriptionRepository",
    "AggregateDetails",
    "AggregateRow",
    "AggregationService",
    "aggregation_service",
    "AggregateRead",
    "AggregateTotalRead",
    "SubscriptionCreate",
    "SubscriptionRead",
    "SubscriptionUpdate",
    "SubscriptionService",
    "subscription_service",
]
