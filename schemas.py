from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from models import TransactionType

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _normalize_email(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


class SignupIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1, max_length=72)

    normalize_email = field_validator("email", mode="before")(_normalize_email)


class SigninIn(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)

    normalize_email = field_validator("email", mode="before")(_normalize_email)


class UserUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    active: Optional[bool] = None

    normalize_email = field_validator("email", mode="before")(_normalize_email)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    active: bool


class UserDetailOut(UserOut):
    created_at: datetime
    updated_at: datetime


class TokenOut(BaseModel):
    token: str


class MessageOut(BaseModel):
    message: str


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: TransactionType

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("Category name cannot be empty")
        return clean


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: TransactionType
    auth_user_id: str
    created_at: datetime
    updated_at: datetime


class TransactionIn(BaseModel):
    amount: Decimal = Field(..., max_digits=14, decimal_places=2)
    title: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("title", "description"),
    )
    category_id: str = Field(..., min_length=1)
    type: Optional[TransactionType] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("Title cannot be empty")
        return clean


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    amount: Decimal
    type: TransactionType
    category_id: str
    auth_user_id: str
    created_at: datetime
    updated_at: datetime
