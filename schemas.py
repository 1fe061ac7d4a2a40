from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from amounts import amount_to_float, to_amount
from models import TransactionType


def coerce_datetime(value: Any) -> Any:
    """Accept datetimes, dates and ISO strings; normalise to naive UTC."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid date: {value!r}") from exc
    else:
        return value
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def _positive_cents(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return float(to_amount(value))


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    type: TransactionType


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[TransactionType] = None

    @model_validator(mode="after")
    def reject_nulls(self) -> "CategoryUpdate":
        for field in self.model_fields_set:
            if getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class TransactionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: float = Field(..., gt=0, lt=100_000_000)
    description: str = Field(..., min_length=1)
    date: datetime
    category_id: int = Field(..., gt=0)
    type: TransactionType

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @field_validator("amount")
    @classmethod
    def round_amount(cls, value: Optional[float]) -> Optional[float]:
        return _positive_cents(value)


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[float] = Field(default=None, gt=0, lt=100_000_000)
    description: Optional[str] = Field(default=None, min_length=1)
    date: Optional[datetime] = None
    category_id: Optional[int] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return coerce_datetime(value)

    @field_validator("amount")
    @classmethod
    def round_amount(cls, value: Optional[float]) -> Optional[float]:
        return _positive_cents(value)

    @model_validator(mode="after")
    def reject_nulls(self) -> "TransactionUpdate":
        for field in self.model_fields_set:
            if getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class TransactionQuery(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return coerce_datetime(value)


class DateRangeIn(BaseModel):
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def coerce_dates(cls, value: Any) -> Any:
        return coerce_datetime(value)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    created_at: datetime


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: float
    description: str
    date: datetime
    category_id: int
    type: TransactionType
    created_at: datetime
    category_name: str

    @field_validator("amount", mode="before")
    @classmethod
    def amount_from_storage(cls, value: Any) -> Any:
        if isinstance(value, (Decimal, str)):
            return amount_to_float(value)
        return value


class ReportPeriod(BaseModel):
    start_date: datetime
    end_date: datetime


class ReportSummary(BaseModel):
    total_income: float
    total_expense: float
    net_amount: float
    transactions_count: int
    period: ReportPeriod


class CategoryReport(BaseModel):
    category_id: int
    category_name: str
    type: TransactionType
    total_amount: float
    transactions_count: int


class ExportResult(BaseModel):
    file_url: str
    filename: str


class DeleteResult(BaseModel):
    success: bool
