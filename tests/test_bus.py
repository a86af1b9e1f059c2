import logging

import pytest

from starlive.app.bus import ALL_TOPICS, InProcessBus
from starlive.app.uow import UnitOfWork


@pytest.mark.asyncio
class TestInProcessBus:
    async def test_topic_delivery(self):
        bus = InProcessBus()
        seen = []
        bus.subscribe(seen.append, "news")
        await bus.publish("hello", topic="news")
        await bus.publish("ignored", topic="sport")
        assert seen == ["hello"]

    async def test_wildcard_gets_everything(self):
        bus = InProcessBus()
        seen = []
        bus.subscribe(seen.append, ALL_TOPICS)
        await bus.publish("a", topic="news")
        await bus.publish("b", topic="sport")
        assert seen == ["a", "b"]

    async def test_async_handlers(self):
        bus = InProcessBus()
        seen = []

        async def handler(message):
            seen.append(message)

        bus.subscribe(handler, "t")
        await bus.publish(1, topic="t")
        assert seen == [1]

    async def test_failing_handler_is_logged(self, caplog):
        bus = InProcessBus()
        seen = []

        def broken(message):
            raise RuntimeError("boom")

        bus.subscribe(broken, "t")
        bus.subscribe(seen.append, "t")
        with caplog.at_level(logging.ERROR, logger="starlive.app.bus"):
            await bus.publish("x", topic="t")
        assert seen == ["x"]
        assert "boom" in caplog.text

    async def test_unsubscribe(self):
        bus = InProcessBus()
        seen = []
        bus.subscribe(seen.append, "t")
        bus.subscribe(seen.append, "t")
        assert bus.subscriber_count("t") == 1
        bus.unsubscribe(seen.append, "t")
        assert bus.subscriber_count("t") == 0
        assert bus.topics() == []
        await bus.publish("x", topic="t")
        assert seen == []

    async def test_unsubscribe_all(self):
        bus = InProcessBus()
        handler = lambda m: None
        bus.subscribe(handler, "a")
        bus.subscribe(handler, "b")
        bus.unsubscribe_all(handler)
        assert bus.subscriber_count() == 0


@pytest.mark.asyncio
class TestUnitOfWork:
    async def test_commit_publishes(self):
        bus = InProcessBus()
        seen = []
        bus.subscribe(seen.append, "t")
        uow = UnitOfWork(bus).begin(state={"a": 1})
        uow.collect_event("t", "m1")
        uow.collect_event("t", "m2")
        assert uow.pending_events == 2
        await uow.commit()
        assert seen == ["m1", "m2"]
        assert uow.is_committed
        assert uow.pending_events == 0

    async def test_rollback_returns_snapshot(self):
        bus = InProcessBus()
        seen = []
        bus.subscribe(seen.append, "t")
        uow = UnitOfWork(bus).begin(state={"a": 1}, url="/x")
        uow.collect_event("t", "m")
        snapshot = uow.rollback()
        assert snapshot == {"state": {"a": 1}, "url": "/x"}
        await uow.commit()
        assert seen == []

    async def test_commit_without_bus(self):
        uow = UnitOfWork().begin()
        uow.collect_event("t", "m")
        await uow.commit()
        assert uow.pending_events == 0
