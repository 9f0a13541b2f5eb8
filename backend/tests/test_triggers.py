"""Tests for trigger matching and the event bus listener."""

import asyncio
import json

import pytest

from triggers.event_bus import EventBusListener, decode_event
from workflow.models import Trigger, WorkflowResult

USER = "user-1"

OVERDUE_STEPS = [{
    "id": "flag",
    "type": "action",
    "configuration": {"action_type": "set_variables", "parameters": {"invoice": "{{triggerData.invoice_id}}"}},
}]


@pytest.mark.integration
class TestTriggerMatcher:
    """Event to workflow dispatch."""

    async def test_matching_trigger_starts_workflow(self, matcher, create_workflow, create_trigger, repository):
        wf = await create_workflow(OVERDUE_STEPS)
        await create_trigger(wf, "invoice.overdue", {"amount": {"operator": "greater_than", "value": 1000}})

        results = await matcher.dispatch("invoice.overdue", {"invoice_id": "INV-5", "amount": 1200})

        assert len(results) == 1
        assert results[0].success is True
        assert results[0].output["flag"]["variables"] == {"invoice": "INV-5"}
        record = await repository.get_execution(results[0].execution_id, USER)
        assert record["trigger_data"] == {"invoice_id": "INV-5", "amount": 1200}

    async def test_conditions_not_met(self, matcher, create_workflow, create_trigger):
        wf = await create_workflow(OVERDUE_STEPS)
        await create_trigger(wf, "invoice.overdue", {"amount": {"operator": "greater_than", "value": 1000}})

        assert await matcher.dispatch("invoice.overdue", {"amount": 10}) == []

    async def test_other_event_types_ignored(self, matcher, create_workflow, create_trigger):
        wf = await create_workflow(OVERDUE_STEPS)
        await create_trigger(wf, "invoice.overdue")

        assert await matcher.dispatch("invoice.created", {}) == []

    async def test_inactive_trigger_ignored(self, matcher, create_workflow, create_trigger):
        wf = await create_workflow(OVERDUE_STEPS)
        await create_trigger(wf, "invoice.overdue", is_active=False)

        assert await matcher.dispatch("invoice.overdue", {}) == []

    async def test_runs_are_independent(self, matcher, create_workflow, create_trigger):
        good = await create_workflow(OVERDUE_STEPS)
        bad = await create_workflow([{"id": "x", "type": "action", "configuration": {"action_type": "nope"}}])
        await create_trigger(good, "payroll.completed")
        await create_trigger(bad, "payroll.completed")

        results = await matcher.dispatch("payroll.completed", {"invoice_id": "P-1"})

        assert len(results) == 2
        assert sorted(r.success for r in results) == [False, True]

    async def test_runs_execute_as_trigger_owner(self, matcher, create_workflow, create_trigger):
        wf = await create_workflow(OVERDUE_STEPS, user_id="owner-2")
        await create_trigger(wf, "invoice.overdue", user_id="owner-2")

        results = await matcher.dispatch("invoice.overdue", {"invoice_id": "INV-1"})

        assert results[0].success is True

    async def test_emit_event_adds_entity_fields(self, matcher, create_workflow, create_trigger):
        wf = await create_workflow([{
            "id": "flag",
            "type": "action",
            "configuration": {"action_type": "set_variables", "parameters": {"ref": "{{triggerData.entityId}}"}},
        }])
        await create_trigger(wf, "client.updated", {"entity_type": "client"})

        results = await matcher.emit_event(USER, "client.updated", "cl-9", "client", {"name": "Acme"})

        assert len(results) == 1
        assert results[0].output["flag"]["variables"] == {"ref": "cl-9"}

    def test_matches_requires_active(self, matcher):
        trigger = Trigger(id="t", event_type="e", workflow_id="wf", user_id=USER, conditions={}, is_active=False)
        assert matcher.matches(trigger, {}) is False


class FakeMatcher:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    async def dispatch(self, event_type, entity_data=None):
        self.events.append((event_type, entity_data))
        return [WorkflowResult(success=True, execution_id="exec_1")]


class BlockingMatcher:
    """Dispatch holds until released, like a run parked on a delay step."""

    def __init__(self, expected: int):
        self.started: list[str] = []
        self.release = asyncio.Event()
        self.all_started = asyncio.Event()
        self._expected = expected

    async def dispatch(self, event_type, entity_data=None):
        self.started.append(event_type)
        if len(self.started) >= self._expected:
            self.all_started.set()
        await self.release.wait()
        return []


class FakePubSub:
    def __init__(self, messages):
        self._messages = messages
        self.closed = False

    async def subscribe(self, channel):
        self.channel = channel

    async def listen(self):
        yield {"type": "subscribe", "data": 1}
        for data in self._messages:
            yield {"type": "message", "data": data}
        await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.published: list[tuple[str, str]] = []
        self.closed = False
        self.messages: list[bytes] = []

    def pubsub(self):
        self.subscriber = FakePubSub(self.messages)
        return self.subscriber

    async def publish(self, channel, body):
        self.published.append((channel, body))
        return 1

    async def aclose(self):
        self.closed = True


@pytest.mark.unit
class TestEventBus:
    """Redis pub/sub bridge."""

    def test_decode_valid(self):
        raw = json.dumps({"event_type": "invoice.created", "entity_data": {"id": "i1"}}).encode()
        assert decode_event(raw) == ("invoice.created", {"id": "i1"})

    def test_decode_defaults_entity_data(self):
        assert decode_event('{"event_type": "x"}') == ("x", {})

    @pytest.mark.parametrize("raw", [b"not json", "[]", '{"entity_data": {}}', '{"event_type": "x", "entity_data": 3}', None, 5])
    def test_decode_malformed(self, raw):
        assert decode_event(raw) is None

    async def test_handle_message_dispatches(self, settings):
        fake = FakeMatcher()
        listener = EventBusListener(fake, redis_client=FakeRedis(), settings=settings)

        results = await listener.handle_message(b'{"event_type": "invoice.paid", "entity_data": {"id": "i2"}}')

        assert fake.events == [("invoice.paid", {"id": "i2"})]
        assert results[0].execution_id == "exec_1"

    async def test_handle_malformed_message(self, settings):
        fake = FakeMatcher()
        listener = EventBusListener(fake, redis_client=FakeRedis(), settings=settings)

        assert await listener.handle_message(b"{") == []
        assert fake.events == []

    async def test_publish_and_stop(self, settings):
        redis = FakeRedis()
        listener = EventBusListener(FakeMatcher(), redis_client=redis, settings=settings)

        delivered = await listener.publish_event("invoice.created", {"id": "i3"})
        await listener.stop()

        assert delivered == 1
        channel, body = redis.published[0]
        assert channel == settings.EVENT_BUS_CHANNEL
        assert json.loads(body) == {"event_type": "invoice.created", "entity_data": {"id": "i3"}}
        assert redis.closed is True
        assert listener.is_running is False

    async def test_slow_run_does_not_hold_later_events(self, settings):
        redis = FakeRedis()
        redis.messages = [
            b'{"event_type": "invoice.overdue", "entity_data": {}}',
            b'{"event_type": "invoice.paid", "entity_data": {}}',
        ]
        matcher = BlockingMatcher(expected=2)
        listener = EventBusListener(matcher, redis_client=redis, settings=settings)

        await listener.start()
        try:
            await asyncio.wait_for(matcher.all_started.wait(), timeout=2)
        finally:
            await listener.stop()

        assert matcher.started == ["invoice.overdue", "invoice.paid"]
        assert redis.subscriber.closed is True
        assert redis.closed is True

    async def test_stop_cancels_pending_dispatches(self, settings):
        matcher = BlockingMatcher(expected=1)
        listener = EventBusListener(matcher, redis_client=FakeRedis(), settings=settings)

        task = listener.schedule_message(b'{"event_type": "invoice.overdue"}')
        await asyncio.wait_for(matcher.all_started.wait(), timeout=2)
        await listener.stop()

        assert task.cancelled() is True
