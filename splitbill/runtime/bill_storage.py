"""Persisted bill state.

Each persisted field lives in its own JSON file, named after the key the front end
uses for it:

    state/
    ├── items.json
    ├── billImage.json
    ├── billText.json
    ├── tipAllocations.json
    ├── userColors.json
    ├── activeColor.json
    ├── numPersons.json
    ├── splitChargesEvenly.json
    └── splitTipEvenly.json

Only keys whose serialized value changed are rewritten. A missing or corrupt file
falls back to the BillState default for that field.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from decimal import Decimal
from pathlib import Path
from typing import Any

from splitbill.domain.bill import BillItem, to_decimal
from splitbill.domain.bill_state import DEFAULT_COLORS, BillState
from splitbill.runtime.logging import get_logger

logger = get_logger(__name__)

PERSISTED_KEYS = (
    "items",
    "billImage",
    "billText",
    "tipAllocations",
    "userColors",
    "activeColor",
    "numPersons",
    "splitChargesEvenly",
    "splitTipEvenly",
)


def serialize_state(state: BillState) -> dict[str, Any]:
    """Return the JSON value stored under each persisted key."""
    return {
        "items": [item.to_dict() for item in state.items],
        "billImage": state.bill_image,
        "billText": state.bill_text,
        "tipAllocations": {color: str(amount) for color, amount in state.tip_allocations.items()},
        "userColors": list(state.user_colors),
        "activeColor": state.active_color,
        "numPersons": state.num_persons,
        "splitChargesEvenly": state.split_charges_evenly,
        "splitTipEvenly": state.split_tip_evenly,
    }


def _items(value: Any) -> list[BillItem]:
    if not isinstance(value, list):
        raise ValueError("items must be a list")
    return [BillItem.from_dict(entry) for entry in value if isinstance(entry, dict)]


def _tip_allocations(value: Any) -> dict[str, Decimal]:
    if not isinstance(value, dict):
        raise ValueError("tipAllocations must be an object")
    return {str(color): to_decimal(amount) for color, amount in value.items()}


def _colors(value: Any) -> list[str]:
    if not isinstance(value, list) or not value:
        return list(DEFAULT_COLORS)
    return [str(color) for color in value]


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError("expected a boolean")
    return value


# key -> (BillState attribute, converter from stored JSON)
_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "items": ("items", _items),
    "billImage": ("bill_image", _optional_str),
    "billText": ("bill_text", lambda v: "" if v is None else str(v)),
    "tipAllocations": ("tip_allocations", _tip_allocations),
    "userColors": ("user_colors", _colors),
    "activeColor": ("active_color", _optional_str),
    "numPersons": ("num_persons", lambda v: max(1, int(v))),
    "splitChargesEvenly": ("split_charges_evenly", _bool),
    "splitTipEvenly": ("split_tip_evenly", _bool),
}


class BillStore:
    """One JSON file per persisted key under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        # Last serialized text per key, as known to be on disk
        self._written: dict[str, str] = {}

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return None

    def load(self) -> BillState:
        """Rehydrate a BillState from disk; unreadable keys keep their defaults."""
        state = BillState()
        for key, (attribute, convert) in _FIELDS.items():
            text = self._read(key)
            if text is None:
                continue
            try:
                value = convert(json.loads(text))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Ignoring corrupt stored value for %s: %s", key, e)
                continue
            setattr(state, attribute, value)
            self._written[key] = text
        if state.active_color is not None and state.active_color not in state.user_colors:
            state.active_color = state.user_colors[0]
        return state

    def save(self, state: BillState) -> list[str]:
        """
        Write keys whose value changed since the last load/save.

        Returns:
            The keys that were written
        """
        changed: list[str] = []
        for key, value in serialize_state(state).items():
            text = json.dumps(value, ensure_ascii=False)
            if self._written.get(key) == text:
                continue
            if key not in self._written and self._read(key) == text:
                self._written[key] = text
                continue
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path_for(key).with_suffix(".json.tmp")
            tmp_path.write_text(text, encoding="utf-8")
            tmp_path.replace(self.path_for(key))
            self._written[key] = text
            changed.append(key)
        if changed:
            logger.debug("Saved bill state keys: %s", ", ".join(changed))
        return changed

    def clear(self) -> None:
        for key in PERSISTED_KEYS:
            self.path_for(key).unlink(missing_ok=True)
        self._written.clear()
