from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, computed_field
from pydantic.alias_generators import to_camel


CENT = Decimal("0.01")


class BalanceField(str, Enum):
    HOME = "home"
    GAS = "gas"


class EntryCategory(str, Enum):
    DEFAULT = "default"
    WALLET = "wallet"
    GAS_FEE = "gas_fee"
    WITHDRAW = "withdraw"

    @property
    def field(self) -> BalanceField:
        if self is EntryCategory.GAS_FEE:
            return BalanceField.GAS
        return BalanceField.HOME


def to_cents(amount: Decimal) -> int:
    """Convert a USD amount to integer cents, rejecting sub-cent precision."""
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation as e:
        raise ValueError(f"Amount {amount} is not representable in cents") from e
    if quantized != amount:
        raise ValueError(f"Amount {amount} has more than two decimal places")
    return int(quantized * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(WireModel):
    email: Optional[str] = None
    name: Optional[str] = None
    password: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "alice@example.com",
            "name": "Alice",
            "password": "hunter22",
        }
    })


class LoginRequest(WireModel):
    email: Optional[str] = None
    password: Optional[str] = None


class GasCreditRequest(WireModel):
    uid: str = Field(..., min_length=1)
    amount: Decimal


class HomeCreditRequest(WireModel):
    uid: str = Field(..., min_length=1)
    amount: Decimal
    note: Optional[str] = Field(default=None, max_length=64)


class WithdrawRequest(WireModel):
    uid: str = Field(..., min_length=1)
    principal_amount: Decimal
    gas_amount: Decimal

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "uid": "uid_3f2a9c0d5e7b4a1f8c6d2e0b9a7f5c3d",
            "principalAmount": 40.00,
            "gasAmount": 10.00,
        }
    })


class Balance(WireModel):
    uid: str
    home_balance: Decimal
    gas_balance: Decimal
    updated_at: Optional[datetime] = None


class Profile(WireModel):
    uid: str
    email: str
    name: Optional[str] = None
    home_balance: Decimal = Decimal("0.00")
    gas_balance: Decimal = Decimal("0.00")


class UserSummary(Profile):
    created_at: datetime


class LedgerEntry(WireModel):
    id: int
    uid: str
    amount: Decimal
    category: EntryCategory
    note: Optional[str] = None
    created_at: datetime


class ProfileResponse(WireModel):
    ok: bool = True
    profile: Profile


class UserListResponse(WireModel):
    ok: bool = True
    users: list[UserSummary]


class LedgerHistoryResponse(WireModel):
    ok: bool = True
    deposits: list[LedgerEntry]


class ReconciliationReport(WireModel):
    uid: str
    home_balance: Decimal
    gas_balance: Decimal
    home_ledger_total: Decimal
    gas_ledger_total: Decimal
    entry_count: int

    @computed_field(alias="homeDrift")
    @property
    def home_drift(self) -> Decimal:
        return self.home_balance - self.home_ledger_total

    @computed_field(alias="gasDrift")
    @property
    def gas_drift(self) -> Decimal:
        return self.gas_balance - self.gas_ledger_total

    @computed_field
    @property
    def consistent(self) -> bool:
        return self.home_drift == 0 and self.gas_drift == 0
