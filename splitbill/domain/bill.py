"""Data models for bill splitting."""

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")

SERVICE_CHARGE_LABEL = re.compile(r"service\s*(charge|chg)|\bserc\b", re.IGNORECASE)


def to_cents(value: Decimal) -> Decimal:
    """Round a money value to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce JSON-ish numbers/strings to Decimal; unparseable values map to default."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        return default
    try:
        # str() keeps float repr digits (0.1 -> "0.1") instead of binary expansion
        return Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return default


@dataclass
class BillItem:
    """A single line item on a bill.

    `quantity` counts the units not yet allocated to anyone; allocated units live in
    `color_allocations` keyed by colour.
    """

    description: str
    quantity: int
    unit_price: Decimal
    color_allocations: dict[str, int] = field(default_factory=dict)

    @property
    def allocated_quantity(self) -> int:
        return sum(self.color_allocations.values())

    @property
    def original_quantity(self) -> int:
        return self.quantity + self.allocated_quantity

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.original_quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": str(self.unit_price),
            "colorAllocations": dict(self.color_allocations),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BillItem":
        allocations = data.get("colorAllocations") or {}
        return cls(
            description=str(data.get("description") or ""),
            quantity=max(0, int(data.get("quantity") or 0)),
            unit_price=to_decimal(data.get("unitPrice")),
            color_allocations={str(k): int(v) for k, v in allocations.items() if int(v) > 0},
        )


@dataclass
class BillCharge:
    """A non-item monetary line (service charge, tax, round-off, discount)."""

    label: str
    amount: Decimal

    @property
    def is_service_charge(self) -> bool:
        # Only service charges are split across people; taxes are display-only.
        return SERVICE_CHARGE_LABEL.search(self.label) is not None

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BillCharge":
        return cls(label=str(data.get("label") or "Charge"), amount=to_decimal(data.get("amount")))


@dataclass(frozen=True)
class ParseResult:
    """Output of one parsing attempt, before it is published to the bill."""

    items: tuple[BillItem, ...] = ()
    charges: tuple[BillCharge, ...] = ()
    net_total: Decimal | None = None
    raw_text: str = ""  # Recognised text, when the engine exposes it

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "charges": [charge.to_dict() for charge in self.charges],
            "netTotal": None if self.net_total is None else str(self.net_total),
        }


@dataclass(frozen=True)
class ReconciliationVerdict:
    """Result of checking the item sum against the detected bill total."""

    items_sum: Decimal
    accepted: bool
    tolerance: Decimal | None = None


@dataclass(frozen=True)
class EngineAttempt:
    """One engine invocation inside an orchestration run."""

    engine_name: str
    result: ParseResult | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.result is None
