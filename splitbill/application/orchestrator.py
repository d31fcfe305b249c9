"""Multi-engine orchestration: run engines in priority order until one reconciles.

States::

    idle -> running -> accepted
                    -> engine_failed -> running (retry_next) -> ...
                                     -> cancelled (cancel)
                    -> exhausted (last engine failed)

Engines are tried strictly in the configured order and only advance on an explicit
``retry_next()``. Every engine error is turned into a state transition; nothing
raised by an adapter escapes ``start()`` or ``retry_next()``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal

from splitbill.domain.bill import EngineAttempt, ParseResult, ReconciliationVerdict
from splitbill.domain.bill_state import BillState
from splitbill.engines.base import EngineAdapter
from splitbill.receipt.image_helpers import image_digest
from splitbill.receipt.parser_config import DEFAULT_THRESHOLDS, ParserThresholds
from splitbill.receipt.reconciliation import evaluate
from splitbill.runtime import get_logger

logger = get_logger(__name__)

OrchestratorState = Literal["idle", "running", "accepted", "engine_failed", "cancelled", "exhausted"]
FailureKind = Literal["adapter_failure", "parse_ambiguity", "reconciliation_mismatch"]
OrchestratorEvent = Literal["state", "progress", "prompt", "accepted"]
Listener = Callable[[OrchestratorEvent, "EngineOrchestrator"], None]


@dataclass(frozen=True)
class EnginePrompt:
    """What the user is asked after an engine failed or did not reconcile."""

    engine: str
    items_sum: Decimal
    bill_total: Decimal | None
    next_engine: str | None
    failure_kind: FailureKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "itemsSum": str(self.items_sum),
            "billTotal": None if self.bill_total is None else str(self.bill_total),
            "nextEngine": self.next_engine,
            "failureKind": self.failure_kind,
        }


@dataclass(frozen=True)
class Candidate:
    """A parse together with its reconciliation verdict."""

    engine: str
    result: ParseResult
    verdict: ReconciliationVerdict

    @property
    def distance(self) -> Decimal | None:
        if self.result.net_total is None:
            return None
        return abs(self.verdict.items_sum - self.result.net_total)


def _closer(candidate: Candidate, current: Candidate | None) -> bool:
    """Prefer parses with a total, then the smallest gap, then more items."""
    if current is None:
        return True
    if (candidate.distance is None) != (current.distance is None):
        return candidate.distance is not None
    if candidate.distance is not None and current.distance is not None and candidate.distance != current.distance:
        return candidate.distance < current.distance
    return len(candidate.result.items) > len(current.result.items)


class EngineOrchestrator:
    """
    Drive one image through the engine fallback chain.

    Args:
        engines: Adapters in priority order
        bill_state: State that accepted parses are published to
        thresholds: Reconciliation limits
        listeners: Called with (event, orchestrator) on state, progress and prompt changes
    """

    def __init__(
        self,
        engines: Sequence[EngineAdapter],
        bill_state: BillState,
        *,
        thresholds: ParserThresholds = DEFAULT_THRESHOLDS,
        listeners: Sequence[Listener] = (),
    ) -> None:
        self.engines = list(engines)
        self.bill_state = bill_state
        self.thresholds = thresholds
        self.listeners: list[Listener] = list(listeners)

        self.state: OrchestratorState = "idle"
        self.engine_index = 0
        self.progress = 0
        self.prompt: EnginePrompt | None = None
        self.accepted: Candidate | None = None
        # False when an accepted parse was not published because the user had edits
        self.published = False
        self.show_total_confirmation = False
        self.attempts: list[EngineAttempt] = []
        self.best_result: Candidate | None = None

        self._image: bytes | None = None
        self._image_digest: str | None = None
        self._in_flight = False
        # Bumped on every start/retry/cancel; results from older generations are dropped
        self._generation = 0

    # --- Queries ---

    @property
    def current_engine(self) -> str | None:
        if 0 <= self.engine_index < len(self.engines):
            return self.engines[self.engine_index].name
        return None

    @property
    def next_engine(self) -> str | None:
        index = self.engine_index + 1
        return self.engines[index].name if index < len(self.engines) else None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "engine": self.current_engine,
            "progress": self.progress,
            "prompt": None if self.prompt is None else self.prompt.to_dict(),
            "showTotalConfirmation": self.show_total_confirmation,
            "published": self.published,
            "attempts": [
                {"engine": attempt.engine_name, "failed": attempt.failed, "error": attempt.error}
                for attempt in self.attempts
            ],
            "hasBestResult": self.best_result is not None,
        }

    # --- Commands ---

    async def start(self, image: bytes, *, force: bool = False) -> OrchestratorState:
        """
        Run the chain from the first engine for a new image.

        The same image is processed once; repeated calls are no-ops unless ``force``.
        """
        digest = image_digest(image)
        if not force and digest == self._image_digest:
            logger.debug("Image %s already processed; skipping", digest[:12])
            return self.state

        self._generation += 1
        generation = self._generation
        self._image = image
        self._image_digest = digest
        self.engine_index = 0
        self.prompt = None
        self.accepted = None
        self.published = False
        self.show_total_confirmation = False
        self.attempts = []
        self.best_result = None
        self._set_progress(0)
        if not self.bill_state.has_user_edits:
            self.bill_state.clear_parse_state()

        if not self.engines:
            logger.warning("No engines configured")
            self._set_state("exhausted")
            return self.state

        self._set_state("idle")
        await self._run_current(generation)
        return self.state

    async def retry_next(self) -> OrchestratorState:
        """Advance to the next engine after a failure; ignored in any other state."""
        if self.state != "engine_failed" or self._image is None or self.next_engine is None:
            logger.debug("retry_next ignored in state %s", self.state)
            return self.state
        self._generation += 1
        generation = self._generation
        self.engine_index += 1
        self._set_prompt(None)
        await self._run_current(generation)
        return self.state

    def cancel(self) -> None:
        """Stop the chain. A result still in flight is discarded when it arrives.

        Only a running chain or a pending engine prompt can be cancelled; any other
        state is left as it is.
        """
        if self.state not in ("running", "engine_failed"):
            logger.debug("cancel ignored in state %s", self.state)
            return
        self._generation += 1
        self._in_flight = False
        self._set_prompt(None)
        self._set_progress(0)
        self._set_state("cancelled")

    def accept_best(self) -> bool:
        """Publish the closest rejected parse as-is. Returns False if there is none."""
        if self.best_result is None or self.state not in ("engine_failed", "exhausted", "cancelled"):
            return False
        logger.info("Accepting best available parse from %s", self.best_result.engine)
        self._generation += 1
        self._publish(self.best_result, force=True)
        return True

    def add_listener(self, listener: Listener) -> None:
        self.listeners.append(listener)

    # --- Internals ---

    async def _run_current(self, generation: int) -> None:
        engine = self.engines[self.engine_index]
        assert self._image is not None
        self._in_flight = True
        self._set_state("running")
        logger.info("Running engine %s (%d/%d)", engine.name, self.engine_index + 1, len(self.engines))

        def report_progress(value: float) -> None:
            if generation == self._generation:
                self._set_progress(value)

        error: str | None = None
        try:
            result = await engine.call(self._image, report_progress)
        except Exception as e:  # every adapter error is a hard failure for this engine
            logger.warning("Engine %s failed: %s", engine.name, e)
            result, error = None, str(e) or type(e).__name__

        if generation != self._generation:
            logger.info("Discarding result from %s: superseded or cancelled", engine.name)
            return
        self._in_flight = False

        if result is None:
            error = error or "no result"
            self.attempts.append(EngineAttempt(engine.name, None, error))
            self._fail(engine.name, Decimal("0"), None, "adapter_failure")
            return

        self.attempts.append(EngineAttempt(engine.name, result))
        verdict = evaluate(result.items, result.net_total, self.thresholds)
        candidate = Candidate(engine.name, result, verdict)
        logger.info(
            "Engine %s: items sum %s, bill total %s, tolerance %s, accepted=%s",
            engine.name,
            verdict.items_sum,
            result.net_total,
            verdict.tolerance,
            verdict.accepted,
        )
        if verdict.accepted:
            self._publish(candidate)
            return

        if result.items and _closer(candidate, self.best_result):
            self.best_result = candidate
        kind: FailureKind = (
            "parse_ambiguity" if not result.items or result.net_total is None else "reconciliation_mismatch"
        )
        self._fail(engine.name, verdict.items_sum, result.net_total, kind)

    def _fail(self, engine: str, items_sum: Decimal, bill_total: Decimal | None, kind: FailureKind) -> None:
        next_engine = self.next_engine
        self._set_prompt(EnginePrompt(engine, items_sum, bill_total, next_engine, kind))
        self._set_state("engine_failed" if next_engine is not None else "exhausted")

    def _publish(self, candidate: Candidate, *, force: bool = False) -> None:
        self.accepted = candidate
        if self.bill_state.has_user_edits and not force:
            logger.info("Keeping user-edited bill; parse from %s not published", candidate.engine)
            self.published = False
        else:
            self.bill_state.apply_parse_result(candidate.result)
            self.published = True
        self._in_flight = False
        self.show_total_confirmation = candidate.result.net_total is not None
        self._set_prompt(None)
        self._set_progress(100, complete=True)
        self._set_state("accepted")
        self._emit("accepted")

    def _set_state(self, state: OrchestratorState) -> None:
        if state != self.state:
            logger.debug("State %s -> %s", self.state, state)
            self.state = state
            self._emit("state")

    def _set_progress(self, value: float, *, complete: bool = False) -> None:
        # Adapters report 0..100; 100 is reserved for an accepted parse
        progress = 100 if complete else int(min(99, max(0, value)))
        if progress != self.progress:
            self.progress = progress
            self._emit("progress")

    def _set_prompt(self, prompt: EnginePrompt | None) -> None:
        if prompt != self.prompt:
            self.prompt = prompt
            self._emit("prompt")

    def _emit(self, event: OrchestratorEvent) -> None:
        for listener in self.listeners:
            try:
                listener(event, self)
            except Exception:
                logger.exception("Listener failed on %s event", event)
