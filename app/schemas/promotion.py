from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.utils.clock import to_naive_utc


class PromotionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=255)
    type: Literal["automatic", "one-time", "onetime"]
    startTime: datetime
    endTime: datetime
    minSpending: Optional[float] = Field(default=None, gt=0)
    rate: Optional[float] = Field(default=None, gt=0)
    points: Optional[int] = Field(default=None, gt=0)

    class Config:
        extra = "forbid"

    @field_validator("startTime", "endTime")
    @classmethod
    def _as_naive_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.endTime <= self.startTime:
            raise ValueError("endTime must be after startTime")
        return self


class PromotionOut(BaseModel):
    id: int
    name: str
    description: str
    type: str

    start_time: datetime
    end_time: datetime

    min_spending: Optional[float] = None
    rate: Optional[float] = None
    points: Optional[int] = None

    class Config:
        from_attributes = True
