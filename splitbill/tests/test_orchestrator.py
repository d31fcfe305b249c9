from __future__ import annotations

import asyncio
from decimal import Decimal

from conftest import FakeEngine, make_result

from splitbill.application.orchestrator import EngineOrchestrator
from splitbill.domain.bill import ParseResult
from splitbill.domain.bill_state import BillState
from splitbill.engines.base import EngineUnavailable, ProgressCallback

IMAGE = b"\xff\xd8\xff\xe0bill-photo"

GOOD = make_result([("Tea", 2, "10"), ("Cake", 1, "30")], "50")
MISMATCH = make_result([("Tea", 1, "10")], "100")


class GatedEngine:
    """Engine that waits for a gate before answering."""

    def __init__(self, name: str, result: ParseResult) -> None:
        self.name = name
        self.result = result
        self.gate = asyncio.Event()
        self.calls = 0

    async def call(self, image: bytes, report_progress: ProgressCallback) -> ParseResult | None:
        self.calls += 1
        await self.gate.wait()
        return self.result


def test_first_reconciling_engine_is_published() -> None:
    state = BillState()
    engines = [FakeEngine("local", GOOD), FakeEngine("openai", GOOD)]
    orchestrator = EngineOrchestrator(engines, state)

    assert asyncio.run(orchestrator.start(IMAGE)) == "accepted"

    assert [(i.description, i.quantity) for i in state.items] == [("Tea", 2), ("Cake", 1)]
    assert state.net_total == Decimal("50")
    assert orchestrator.published
    assert orchestrator.progress == 100
    assert orchestrator.show_total_confirmation
    assert orchestrator.accepted is not None and orchestrator.accepted.engine == "local"
    assert [e.calls for e in engines] == [1, 0]


def test_chain_terminates_after_last_engine() -> None:
    engines = [FakeEngine(name, MISMATCH) for name in ("local", "veryfi", "openai")]
    orchestrator = EngineOrchestrator(engines, BillState())

    async def scenario() -> list[str | None]:
        next_engines: list[str | None] = []
        state = await orchestrator.start(IMAGE)
        while state == "engine_failed":
            assert orchestrator.prompt is not None
            next_engines.append(orchestrator.prompt.next_engine)
            state = await orchestrator.retry_next()
        assert orchestrator.prompt is not None
        next_engines.append(orchestrator.prompt.next_engine)
        # Further retries are no-ops
        await orchestrator.retry_next()
        return next_engines

    assert asyncio.run(scenario()) == ["veryfi", "openai", None]
    assert orchestrator.state == "exhausted"
    assert [e.calls for e in engines] == [1, 1, 1]
    assert [a.engine_name for a in orchestrator.attempts] == ["local", "veryfi", "openai"]


def test_mismatch_prompt_reports_sum_and_total() -> None:
    orchestrator = EngineOrchestrator([FakeEngine("local", MISMATCH), FakeEngine("openai", GOOD)], BillState())

    assert asyncio.run(orchestrator.start(IMAGE)) == "engine_failed"

    prompt = orchestrator.prompt
    assert prompt is not None
    assert (prompt.engine, prompt.next_engine, prompt.failure_kind) == ("local", "openai", "reconciliation_mismatch")
    assert prompt.items_sum == Decimal("10.00")
    assert prompt.bill_total == Decimal("100")
    assert prompt.to_dict()["itemsSum"] == "10.00"


def test_hard_failure_then_next_engine_succeeds() -> None:
    state = BillState()
    engines = [FakeEngine("local", error=EngineUnavailable("local: HTTP 503")), FakeEngine("openai", GOOD)]
    orchestrator = EngineOrchestrator(engines, state)

    async def scenario() -> None:
        assert await orchestrator.start(IMAGE) == "engine_failed"
        prompt = orchestrator.prompt
        assert prompt is not None
        assert prompt.failure_kind == "adapter_failure"
        assert prompt.items_sum == Decimal("0")
        assert prompt.bill_total is None
        assert state.items == []
        assert await orchestrator.retry_next() == "accepted"

    asyncio.run(scenario())
    assert [(a.engine_name, a.failed, a.error) for a in orchestrator.attempts] == [
        ("local", True, "local: HTTP 503"),
        ("openai", False, None),
    ]
    assert len(state.items) == 2


def test_unexpected_adapter_errors_do_not_escape() -> None:
    orchestrator = EngineOrchestrator([FakeEngine("local", error=KeyError("boom"))], BillState())
    assert asyncio.run(orchestrator.start(IMAGE)) == "exhausted"
    assert orchestrator.attempts[0].failed


def test_empty_result_is_a_hard_failure() -> None:
    orchestrator = EngineOrchestrator([FakeEngine("local", None), FakeEngine("openai", GOOD)], BillState())
    asyncio.run(orchestrator.start(IMAGE))

    assert orchestrator.prompt is not None
    assert orchestrator.prompt.failure_kind == "adapter_failure"
    assert orchestrator.attempts[0].error == "no result"


def test_missing_total_or_items_is_parse_ambiguity() -> None:
    for result in (make_result([("Tea", 1, "10")], None), make_result([], "100")):
        orchestrator = EngineOrchestrator([FakeEngine("local", result), FakeEngine("openai", GOOD)], BillState())
        assert asyncio.run(orchestrator.start(IMAGE)) == "engine_failed"
        assert orchestrator.prompt is not None
        assert orchestrator.prompt.failure_kind == "parse_ambiguity"


def test_same_image_is_processed_once() -> None:
    engine = FakeEngine("local", GOOD)
    orchestrator = EngineOrchestrator([engine], BillState())

    async def scenario() -> None:
        await asyncio.gather(orchestrator.start(IMAGE), orchestrator.start(IMAGE))
        await orchestrator.start(IMAGE)
        assert engine.calls == 1
        await orchestrator.start(IMAGE, force=True)
        assert engine.calls == 2
        await orchestrator.start(IMAGE + b"other")
        assert engine.calls == 3

    asyncio.run(scenario())


def test_concurrent_start_while_in_flight_does_not_invoke_again() -> None:
    engine = GatedEngine("local", GOOD)
    orchestrator = EngineOrchestrator([engine], BillState())

    async def scenario() -> None:
        first = asyncio.create_task(orchestrator.start(IMAGE))
        await asyncio.sleep(0)
        assert orchestrator.in_flight
        await orchestrator.start(IMAGE)
        engine.gate.set()
        await first

    asyncio.run(scenario())
    assert engine.calls == 1
    assert orchestrator.state == "accepted"


def test_cancel_discards_in_flight_result() -> None:
    state = BillState()
    engine = GatedEngine("local", GOOD)
    orchestrator = EngineOrchestrator([engine], state)

    async def scenario() -> None:
        task = asyncio.create_task(orchestrator.start(IMAGE))
        await asyncio.sleep(0)
        assert orchestrator.state == "running"
        orchestrator.cancel()
        engine.gate.set()
        await task

    asyncio.run(scenario())
    assert orchestrator.state == "cancelled"
    assert orchestrator.accepted is None
    assert orchestrator.attempts == []
    assert state.items == []
    assert not orchestrator.in_flight


def test_cancel_after_acceptance_keeps_the_accepted_bill() -> None:
    state = BillState()
    orchestrator = EngineOrchestrator([FakeEngine("local", MISMATCH), FakeEngine("openai", GOOD)], state)

    async def scenario() -> None:
        await orchestrator.start(IMAGE)
        await orchestrator.retry_next()

    asyncio.run(scenario())
    assert orchestrator.state == "accepted"

    orchestrator.cancel()
    assert orchestrator.state == "accepted"
    assert not orchestrator.accept_best()
    assert [i.description for i in state.items] == ["Tea", "Cake"]


def test_cancel_is_ignored_when_idle_or_exhausted() -> None:
    orchestrator = EngineOrchestrator([FakeEngine("local", MISMATCH)], BillState())
    orchestrator.cancel()
    assert orchestrator.state == "idle"

    asyncio.run(orchestrator.start(IMAGE))
    assert orchestrator.state == "exhausted"
    orchestrator.cancel()
    assert orchestrator.state == "exhausted"
    assert orchestrator.prompt is not None


def test_forced_restart_supersedes_in_flight_run() -> None:
    state = BillState()
    slow = GatedEngine("local", GOOD)
    orchestrator = EngineOrchestrator([slow], state)

    async def scenario() -> None:
        first = asyncio.create_task(orchestrator.start(IMAGE))
        await asyncio.sleep(0)
        second = asyncio.create_task(orchestrator.start(IMAGE, force=True))
        await asyncio.sleep(0)
        slow.gate.set()
        await asyncio.gather(first, second)

    asyncio.run(scenario())
    assert slow.calls == 2
    assert orchestrator.state == "accepted"
    assert len(orchestrator.attempts) == 1


def test_user_edits_are_not_overwritten() -> None:
    state = BillState()
    state.add_empty_item()
    state.change_item_description(0, "Typed by hand")
    orchestrator = EngineOrchestrator([FakeEngine("local", GOOD)], state)

    assert asyncio.run(orchestrator.start(IMAGE)) == "accepted"

    assert [i.description for i in state.items] == ["Typed by hand"]
    assert state.has_user_edits
    assert not orchestrator.published
    assert orchestrator.accepted is not None


def test_new_run_clears_previous_parse_without_user_edits() -> None:
    state = BillState()
    state.apply_parse_result(GOOD)
    orchestrator = EngineOrchestrator([FakeEngine("local", error=EngineUnavailable("down"))], state)

    asyncio.run(orchestrator.start(IMAGE))

    assert state.items == []
    assert state.net_total is None


def test_accept_best_publishes_closest_rejected_parse() -> None:
    state = BillState()
    far = make_result([("Tea", 1, "50")], "100")
    near = make_result([("Tea", 1, "70")], "100")
    engines = [FakeEngine("local", far), FakeEngine("veryfi", near), FakeEngine("openai", error=EngineUnavailable("x"))]
    orchestrator = EngineOrchestrator(engines, state)

    async def scenario() -> None:
        await orchestrator.start(IMAGE)
        await orchestrator.retry_next()
        await orchestrator.retry_next()

    asyncio.run(scenario())
    assert orchestrator.state == "exhausted"
    assert orchestrator.best_result is not None
    assert orchestrator.best_result.engine == "veryfi"

    assert orchestrator.accept_best()
    assert orchestrator.state == "accepted"
    assert [i.unit_price for i in state.items] == [Decimal("70")]
    assert orchestrator.published


def test_accept_best_needs_a_candidate() -> None:
    orchestrator = EngineOrchestrator([FakeEngine("local", error=EngineUnavailable("x"))], BillState())
    assert not orchestrator.accept_best()
    asyncio.run(orchestrator.start(IMAGE))
    assert not orchestrator.accept_best()
    assert orchestrator.state == "exhausted"


def test_progress_is_clamped_below_completion() -> None:
    seen: list[tuple[str, int]] = []
    engines = [FakeEngine("local", MISMATCH, progress=(-5, 50, 150)), FakeEngine("openai", GOOD, progress=(30,))]
    orchestrator = EngineOrchestrator(engines, BillState(), listeners=[lambda event, o: seen.append((event, o.progress))])

    asyncio.run(orchestrator.start(IMAGE))
    assert orchestrator.progress == 99
    assert [p for event, p in seen if event == "progress"] == [50, 99]

    asyncio.run(orchestrator.retry_next())
    assert orchestrator.progress == 100
    assert [p for event, p in seen if event == "progress"][-2:] == [30, 100]
    assert seen[-1][0] == "accepted"


def test_listener_errors_do_not_break_the_run() -> None:
    def broken(event: str, orchestrator: EngineOrchestrator) -> None:
        raise RuntimeError("listener bug")

    orchestrator = EngineOrchestrator([FakeEngine("local", GOOD)], BillState(), listeners=[broken])
    assert asyncio.run(orchestrator.start(IMAGE)) == "accepted"


def test_no_engines_is_exhausted_immediately() -> None:
    orchestrator = EngineOrchestrator([], BillState())
    assert asyncio.run(orchestrator.start(IMAGE)) == "exhausted"


def test_retry_next_is_ignored_outside_failure_state() -> None:
    engine = FakeEngine("local", GOOD)
    orchestrator = EngineOrchestrator([engine, FakeEngine("openai", GOOD)], BillState())

    assert asyncio.run(orchestrator.retry_next()) == "idle"
    asyncio.run(orchestrator.start(IMAGE))
    assert asyncio.run(orchestrator.retry_next()) == "accepted"
    assert engine.calls == 1
