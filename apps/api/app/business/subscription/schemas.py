from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from app.business.subscription.months import Month, normalize_month_start


def _coerce_month(value: Any) -> Any:
    if isinstance(value, str):
        return Month.parse(value).first_day()
    if isinstance(value, date):
        return normalize_month_start(value)
    return value


class SubscriptionWrite(BaseModel):
    service_name: str = Field(min_length=1, max_length=255)
    price: int = Field(ge=0)
    user_id: UUID
    start_date: date
    end_date: date | None = None

    @field_validator("service_name")
    @classmethod
    def _service_name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("service_name is required")
        return value

    @field_validator("start_date", mode="before")
    @classmethod
    def _parse_start_date(cls, value: Any) -> Any:
        return _coerce_month(value)

    @field_validator("end_date", mode="before")
    @classmethod
    def _parse_end_date(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return _coerce_month(value)

    @model_validator(mode="after")
    def _end_not_before_start(self) -> SubscriptionWrite:
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be the same or after start_date")
        return self


class SubscriptionCreate(SubscriptionWrite):
    pass


class SubscriptionUpdate(SubscriptionWrite):
    pass


class SubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_name: str
    price: int
    user_id: UUID
    start_date: date
    end_date: date | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _accept_month_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return Month.parse(value).first_day()
        return value

    @field_serializer("start_date", "end_date")
    def _format_month(self, value: date | None) -> str | None:
        if value is None:
            return None
        return Month.from_date(value).format()


class AggregateRowRead(BaseModel):
    number: int
    service_name: str
    price: int
    user_id: str


class AggregateRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = None
    subscriptions: list[AggregateRowRead] = Field(default_factory=list)
    from_month: str = Field(alias="from")
    to_month: str = Field(alias="to")
    total: int


class AggregateTotalRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_month: str = Field(alias="from")
    to_month: str = Field(alias="to")
    user_id: str | None = None
    service_name: str | None = None
    total: int
