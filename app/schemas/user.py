from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Utorid = Annotated[str, Field(min_length=7, max_length=8)]


class UserCreate(BaseModel):
    utorid: Utorid
    name: str = Field(min_length=1, max_length=50)
    email: str = Field(min_length=1, max_length=100)

    class Config:
        extra = "forbid"

    @field_validator("email")
    @classmethod
    def _university_email(cls, value: str) -> str:
        if not value.endswith("@mail.utoronto.ca"):
            raise ValueError("email must end with @mail.utoronto.ca")
        return value


class UserUpdate(BaseModel):
    verified: Optional[Literal[True]] = None
    suspicious: Optional[bool] = None
    role: Optional[Literal["regular", "cashier", "manager", "superuser"]] = None

    class Config:
        extra = "forbid"


class UserOut(BaseModel):
    id: int
    utorid: str
    name: str
    email: str

    role: str
    points: int

    verified: bool
    suspicious: bool

    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class ResetRequest(BaseModel):
    utorid: Utorid

    class Config:
        extra = "forbid"
