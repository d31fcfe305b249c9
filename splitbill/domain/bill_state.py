"""Long-lived bill state and the allocation bookkeeping built on it.

The parsing pipeline seeds items/charges/net total; everything else here is driven by
direct user actions. Allocation operations keep one invariant per item:
``quantity + sum(color_allocations.values())`` only changes through an explicit
add/delete/change-quantity edit, never through allocate/deallocate/override.
"""

import random
from dataclasses import dataclass, field
from decimal import Decimal

from .bill import BillCharge, BillItem, ParseResult, to_cents

DEFAULT_COLORS: tuple[str, ...] = (
    "#FF0000", "#0000FF", "#00FF00", "#FFA500", "#800080",
    "#FFFF00", "#FF1493", "#00FFFF", "#FF69B4", "#32CD32",
    "#8A2BE2", "#FF4500", "#20B2AA", "#DC143C", "#4169E1",
    "#228B22", "#FF6347", "#9932CC", "#DAA520", "#008B8B",
    "#B22222", "#5F9EA0", "#D2691E", "#6495ED", "#CD5C5C",
)  # fmt: skip

DEFAULT_NUM_PERSONS = 5


@dataclass
class BillState:
    """Mutable bill shared by the orchestrator and the allocation UI."""

    items: list[BillItem] = field(default_factory=list)
    charges: list[BillCharge] = field(default_factory=list)
    net_total: Decimal | None = None
    bill_image: str | None = None
    bill_text: str = ""
    tip_allocations: dict[str, Decimal] = field(default_factory=dict)
    user_colors: list[str] = field(default_factory=lambda: list(DEFAULT_COLORS))
    active_color: str | None = DEFAULT_COLORS[0]
    num_persons: int = DEFAULT_NUM_PERSONS
    split_charges_evenly: bool = True
    selected_charge_color: str | None = None
    tip_input: Decimal = Decimal("0")
    split_tip_evenly: bool = True
    selected_tip_color: str | None = None
    split_evenly: bool = False
    # Set by any manual edit; suppresses automatic overwrite by a new parse.
    has_user_edits: bool = False

    # --- Parse publication ---

    def apply_parse_result(self, result: ParseResult) -> None:
        """Replace items/charges/net total with a freshly accepted parse."""
        self.items = [
            BillItem(item.description, item.original_quantity, item.unit_price) for item in result.items
        ]
        self.charges = [BillCharge(c.label, c.amount) for c in result.charges]
        self.net_total = result.net_total
        self.bill_text = result.raw_text
        self.has_user_edits = False

    def clear_parse_state(self) -> None:
        """Drop prior parse output and tip allocations before a new run."""
        self.items = []
        self.charges = []
        self.net_total = None
        self.bill_text = ""
        self.tip_allocations = {}
        self.tip_input = Decimal("0")

    def reset_all(self) -> None:
        self.clear_parse_state()
        self.bill_image = None
        self.user_colors = list(DEFAULT_COLORS)
        self.active_color = DEFAULT_COLORS[0]
        self.has_user_edits = False

    # --- Allocation ---

    def allocate_one(self, index: int) -> bool:
        """Move one unallocated unit of item `index` to the active colour."""
        color = self.active_color
        if color is None:
            return False
        item = self.items[index]
        if item.quantity <= 0:
            return False
        self.has_user_edits = True
        item.quantity -= 1
        item.color_allocations[color] = item.color_allocations.get(color, 0) + 1
        return True

    def deallocate_one(self, index: int, color: str) -> bool:
        """Return one unit from `color` back to the unallocated pool."""
        item = self.items[index]
        current = item.color_allocations.get(color, 0)
        if current <= 0:
            return False
        self.has_user_edits = True
        _decrement_allocation(item, color)
        item.quantity += 1
        return True

    def override_allocation(self, index: int, from_color: str) -> bool:
        """Move one allocated unit from `from_color` to the active colour."""
        color = self.active_color
        if color is None or color == from_color:
            return False
        item = self.items[index]
        if item.color_allocations.get(from_color, 0) <= 0:
            return False
        self.has_user_edits = True
        _decrement_allocation(item, from_color)
        item.color_allocations[color] = item.color_allocations.get(color, 0) + 1
        return True

    def undo_allocations(self) -> None:
        """Return every allocated unit to its item and clear tip allocations."""
        self.has_user_edits = True
        for item in self.items:
            item.quantity = item.original_quantity
            item.color_allocations = {}
        self.tip_allocations = {}

    # --- Item edits ---

    def change_item_price(self, index: int, unit_price: Decimal) -> None:
        self.has_user_edits = True
        self.items[index].unit_price = Decimal(unit_price)

    def change_item_description(self, index: int, description: str) -> None:
        self.has_user_edits = True
        self.items[index].description = description

    def change_item_original_quantity(self, index: int, original_quantity: int) -> None:
        """Set the item's total quantity; allocated units are kept, never dropped."""
        self.has_user_edits = True
        item = self.items[index]
        item.quantity = max(0, int(original_quantity) - item.allocated_quantity)

    def add_empty_item(self) -> None:
        self.has_user_edits = True
        self.items.append(BillItem(description="", quantity=1, unit_price=Decimal("0")))

    def delete_item(self, index: int) -> None:
        self.has_user_edits = True
        del self.items[index]

    # --- Charges, tips, colours ---

    def increment_tip(self, amount: Decimal) -> None:
        color = self.active_color
        if color is None:
            return
        self.has_user_edits = True
        self.tip_allocations[color] = to_cents(self.tip_allocations.get(color, Decimal("0")) + amount)

    def change_charges_total(self, next_total: Decimal) -> None:
        """Adjust charges so they sum to `next_total`.

        The delta lands on the service charge when there is one, otherwise on the last
        charge; an empty charge list becomes a single service charge.
        """
        target = max(Decimal("0"), to_cents(Decimal(next_total)))
        if not self.charges:
            self.charges = [BillCharge("Service Charge", target)]
            return
        delta = to_cents(target - sum((c.amount for c in self.charges), Decimal("0")))
        if delta == 0:
            return
        service = [c for c in self.charges if c.is_service_charge]
        charge = service[0] if service else self.charges[-1]
        charge.amount = to_cents(charge.amount + delta)

    def add_color(self, color: str | None = None) -> str:
        if color is None:
            color = f"#{random.randrange(0x1000000):06x}"
        self.user_colors.append(color)
        self.active_color = color
        return color

    # --- Read contract ---

    @property
    def visible_colors(self) -> list[str]:
        return self.user_colors[: max(1, self.num_persons)]

    def totals_by_color(self) -> dict[str, Decimal]:
        """Amount owed per visible colour: items, service charges, tips, even split."""
        visible = self.visible_colors
        totals: dict[str, Decimal] = {color: Decimal("0") for color in visible}

        def add(color: str, amount: Decimal) -> None:
            totals[color] = to_cents(totals.get(color, Decimal("0")) + amount)

        for item in self.items:
            for color, qty in item.color_allocations.items():
                if color in totals:
                    add(color, qty * item.unit_price)

        service_total = sum((c.amount for c in self.charges if c.is_service_charge), Decimal("0"))
        if service_total != 0:
            if self.split_charges_evenly:
                for color in visible:
                    add(color, service_total / len(visible))
            elif self.selected_charge_color in totals:
                add(self.selected_charge_color, service_total)

        for color, tip in self.tip_allocations.items():
            if color in totals:
                add(color, tip)

        if self.tip_input > 0:
            if self.split_tip_evenly:
                for color in visible:
                    add(color, self.tip_input / len(visible))
            elif self.selected_tip_color in totals:
                add(self.selected_tip_color, self.tip_input)

        if self.split_evenly:
            remaining = sum((item.quantity * item.unit_price for item in self.items), Decimal("0"))
            if remaining > 0:
                for color in visible:
                    add(color, remaining / len(visible))

        return totals

    @property
    def tip_total(self) -> Decimal:
        return sum(self.tip_allocations.values(), Decimal("0"))

    @property
    def subtotal(self) -> Decimal:
        if self.net_total is not None and self.net_total > 0:
            return self.net_total
        return sum((item.allocated_quantity * item.unit_price for item in self.items), Decimal("0"))

    @property
    def grand_total(self) -> Decimal:
        return to_cents(self.subtotal + self.tip_total + self.tip_input)

    @property
    def amount_remaining(self) -> Decimal:
        """Everything on the bill minus what has been assigned to someone."""
        if self.split_evenly:
            return Decimal("0.00")
        items_total = sum((item.total for item in self.items), Decimal("0"))
        charges_total = sum((c.amount for c in self.charges), Decimal("0"))
        everything = items_total + charges_total + self.tip_input + self.tip_total

        allocated = sum((item.allocated_quantity * item.unit_price for item in self.items), Decimal("0"))
        if charges_total > 0 and (self.split_charges_evenly or self.selected_charge_color):
            allocated += charges_total
        if self.tip_input > 0 and (self.split_tip_evenly or self.selected_tip_color):
            allocated += self.tip_input
        allocated += self.tip_total
        return to_cents(everything - allocated)


def _decrement_allocation(item: BillItem, color: str) -> None:
    remaining = item.color_allocations[color] - 1
    if remaining:
        item.color_allocations[color] = remaining
    else:
        del item.color_allocations[color]
