"""Bill session: one BillState, its engine orchestrator and its persistence."""

from __future__ import annotations

from typing import Any

import httpx

from splitbill.domain.bill_state import BillState
from splitbill.engines.base import EngineAdapter
from splitbill.engines.registry import build_engines
from splitbill.receipt.image_helpers import encode_data_url, load_image_input
from splitbill.runtime import BillStore, Settings, get_logger, get_paths

from .orchestrator import EngineOrchestrator, OrchestratorState

logger = get_logger(__name__)


class BillSession:
    """
    Wires the orchestrator to a bill and saves the bill after every step.

    Args:
        engines: Engine chain in priority order
        state: Bill to publish into; loaded from ``store`` when omitted
        store: Persistence; None keeps the session in memory only
        settings: Provides parser thresholds for reconciliation
    """

    def __init__(
        self,
        engines: list[EngineAdapter],
        *,
        state: BillState | None = None,
        store: BillStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        if state is None:
            state = store.load() if store is not None else BillState()
        self.state = state
        self.orchestrator = EngineOrchestrator(engines, state, thresholds=self.settings.thresholds)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: BillStore | None = None,
        persist: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> BillSession:
        """Build engines from settings; the store defaults to the state directory."""
        if store is None and persist:
            store = BillStore(get_paths().state)
        return cls(build_engines(settings, transport), store=store, settings=settings)

    def save(self) -> list[str]:
        if self.store is None:
            return []
        return self.store.save(self.state)

    async def upload(self, image: bytes | str, *, force: bool = False) -> OrchestratorState:
        """Accept an image (bytes, data URL or base64) and run the engine chain on it."""
        image_bytes = load_image_input(image)
        if isinstance(image, str) and image.startswith("data:"):
            self.state.bill_image = image
        else:
            self.state.bill_image = encode_data_url(image_bytes)
        self.save()
        try:
            return await self.orchestrator.start(image_bytes, force=force)
        finally:
            self.save()

    async def retry_next(self) -> OrchestratorState:
        try:
            return await self.orchestrator.retry_next()
        finally:
            self.save()

    def cancel(self) -> None:
        self.orchestrator.cancel()
        self.save()

    def accept_best(self) -> bool:
        accepted = self.orchestrator.accept_best()
        self.save()
        return accepted

    def reset(self) -> None:
        """Forget the current bill entirely, including user edits."""
        self.orchestrator.cancel()
        self.state.reset_all()
        # Fresh orchestrator so the same image can be processed again
        self.orchestrator = EngineOrchestrator(
            self.orchestrator.engines, self.state, thresholds=self.settings.thresholds
        )
        self.save()

    def snapshot(self, *, include_image: bool = False) -> dict[str, Any]:
        """JSON-ready view of the bill and the orchestration status."""
        state = self.state
        snapshot: dict[str, Any] = {
            "status": self.orchestrator.to_dict(),
            "items": [item.to_dict() for item in state.items],
            "charges": [charge.to_dict() for charge in state.charges],
            "netTotal": None if state.net_total is None else str(state.net_total),
            "billText": state.bill_text,
            "totalsByColor": {color: str(amount) for color, amount in state.totals_by_color().items()},
            "amountRemaining": str(state.amount_remaining),
            "grandTotal": str(state.grand_total),
            "hasUserEdits": state.has_user_edits,
        }
        accepted = self.orchestrator.accepted
        if accepted is not None and not self.orchestrator.published:
            # Parse kept aside because the user had already edited the bill
            snapshot["unpublishedResult"] = accepted.result.to_dict()
        if include_image:
            snapshot["billImage"] = state.bill_image
        return snapshot
