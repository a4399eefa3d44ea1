from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.utils.clock import to_naive_utc

Utorid = Annotated[str, Field(min_length=7, max_length=8)]


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=255)
    location: str = Field(min_length=1, max_length=255)
    startTime: datetime
    endTime: datetime
    capacity: Optional[int] = Field(default=None, gt=0)
    points: int = Field(gt=0)

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


class EventUserAdd(BaseModel):
    utorid: Utorid

    class Config:
        extra = "forbid"


class EventPublish(BaseModel):
    published: Literal[True]

    class Config:
        extra = "forbid"


class EventRewardCreate(BaseModel):
    type: Literal["event"]
    utorid: Optional[Utorid] = None
    amount: int = Field(gt=0)

    class Config:
        extra = "forbid"


class EventUserOut(BaseModel):
    id: int
    utorid: str
    name: str

    class Config:
        from_attributes = True


class EventOut(BaseModel):
    id: int
    name: str
    description: str
    location: str

    start_time: datetime
    end_time: datetime

    capacity: Optional[int] = None
    num_guests: int

    points_remain: int
    points_awarded: int

    published: bool

    organizers: List[EventUserOut] = []
    guests: List[EventUserOut] = []

    class Config:
        from_attributes = True
