"""Tests for the message bus and correlated requests."""

import asyncio

import pytest

from snipdown.errors import ContextUnavailableError, RemoteError, RequestTimeoutError
from snipdown.messaging import Capabilities, Message, MessageBus, correlated_request
from snipdown.models.config import TopologyName
from snipdown.models.options import ConversionOptions, DownloadMode


async def settle(rounds: int = 3) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def bus():
    return MessageBus()


class TestMessage:
    """Tests for Message."""

    def test_reply_addressed_to_sender(self):
        """Test that a reply targets the sender and keeps the request id."""
        message = Message(type="ping", request_id="r1", sender="coordinator", target="worker")
        reply = message.reply("pong", {"ok": True})
        assert reply.target == "coordinator"
        assert reply.request_id == "r1"
        assert reply.payload == {"ok": True}


class TestMessageBus:
    """Tests for MessageBus and ExecutionContext."""

    @pytest.mark.asyncio
    async def test_unknown_target_rejected(self, bus):
        """Test that sending to a missing context raises."""
        sender = bus.create_context("coordinator")
        with pytest.raises(ContextUnavailableError):
            sender.post("ping", target="nowhere")

    @pytest.mark.asyncio
    async def test_duplicate_context_rejected(self, bus):
        """Test that context names are unique."""
        bus.create_context("worker")
        with pytest.raises(ValueError):
            bus.create_context("worker")

    @pytest.mark.asyncio
    async def test_messages_arrive_in_order(self, bus):
        """Test that a context sees messages in the order they were sent."""
        sender = bus.create_context("coordinator")
        receiver = bus.create_context("worker")
        seen = []
        receiver.on("n", lambda message: seen.append(message.payload["i"]))
        for i in range(5):
            sender.post("n", {"i": i}, target="worker")
        await settle()
        assert seen == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_payload_copied(self, bus):
        """Test that the receiver gets its own copy of the payload."""
        sender = bus.create_context("coordinator")
        receiver = bus.create_context("worker")
        seen = []
        receiver.on("data", lambda message: seen.append(message))
        payload = {"items": [1]}
        sender.post("data", payload, target="worker")
        payload["items"].append(2)
        await settle()
        assert seen[0].payload == {"items": [1]}
        assert seen[0].sender == "coordinator"

    @pytest.mark.asyncio
    async def test_message_without_receiver_dropped(self, bus):
        """Test that a message with no handler is silently dropped."""
        sender = bus.create_context("coordinator")
        bus.create_context("worker")
        sender.post("unknown", target="worker")
        await settle()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_dispatch(self, bus):
        """Test that a raising handler only loses its own message."""
        sender = bus.create_context("coordinator")
        receiver = bus.create_context("worker")
        seen = []

        def handler(message):
            if message.payload["i"] == 0:
                raise RuntimeError("boom")
            seen.append(message.payload["i"])

        receiver.on("n", handler)
        sender.post("n", {"i": 0}, target="worker")
        sender.post("n", {"i": 1}, target="worker")
        await settle()
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_async_handlers_drained(self, bus):
        """Test that drain waits for coroutine handlers."""
        sender = bus.create_context("coordinator")
        receiver = bus.create_context("worker")
        done = []

        async def handler(message):
            await asyncio.sleep(0.01)
            done.append(message.type)

        receiver.on("slow", handler)
        sender.post("slow", target="worker")
        await settle()
        await receiver.drain()
        assert done == ["slow"]

    @pytest.mark.asyncio
    async def test_listener_consumes_before_handler(self, bus):
        """Test that a consuming listener hides the message from handlers."""
        sender = bus.create_context("coordinator")
        receiver = bus.create_context("worker")
        handled, listened = [], []
        receiver.on("x", lambda message: handled.append(message))
        receiver.add_listener(lambda message: listened.append(message) or True)
        sender.post("x", target="worker")
        await settle()
        assert len(listened) == 1
        assert handled == []

    @pytest.mark.asyncio
    async def test_closed_context_unreachable(self, bus):
        """Test that a closed context can no longer receive."""
        sender = bus.create_context("coordinator")
        receiver = bus.create_context("worker")
        receiver.close()
        assert receiver.closed
        assert "worker" not in bus
        with pytest.raises(ContextUnavailableError):
            sender.post("x", target="worker")


class TestCorrelatedRequest:
    """Tests for correlated_request."""

    @pytest.mark.asyncio
    async def test_reply_returned(self, bus):
        """Test that the matching reply is returned and the listener removed."""
        coordinator = bus.create_context("coordinator")
        worker = bus.create_context("worker")
        worker.on("ping", lambda message: worker.send(message.reply("pong", {"n": message.payload["n"] + 1})))

        reply = await correlated_request(
            coordinator, Message(type="ping", payload={"n": 1}, target="worker"), "pong", timeout=1.0
        )
        assert reply.payload == {"n": 2}
        assert reply.request_id
        assert coordinator.listener_count == 0

    @pytest.mark.asyncio
    async def test_other_request_ids_ignored(self, bus):
        """Test that replies to other requests are not picked up."""
        coordinator = bus.create_context("coordinator")
        worker = bus.create_context("worker")

        def handler(message):
            worker.send(Message(type="pong", payload={"n": "stray"}, request_id="other", target="coordinator"))
            worker.send(message.reply("pong", {"n": "mine"}))

        worker.on("ping", handler)
        reply = await correlated_request(coordinator, Message(type="ping", target="worker"), "pong", timeout=1.0)
        assert reply.payload == {"n": "mine"}

    @pytest.mark.asyncio
    async def test_error_reply_raises(self, bus):
        """Test that an error reply becomes RemoteError with its message."""
        coordinator = bus.create_context("coordinator")
        worker = bus.create_context("worker")
        worker.on("ping", lambda message: worker.send(message.reply("failed", {"error": "bad input"})))

        with pytest.raises(RemoteError, match="bad input"):
            await correlated_request(
                coordinator, Message(type="ping", target="worker"), "pong", error_type="failed", timeout=1.0
            )
        assert coordinator.listener_count == 0

    @pytest.mark.asyncio
    async def test_timeout(self, bus):
        """Test that a missing reply times out and cleans up its listener."""
        coordinator = bus.create_context("coordinator")
        bus.create_context("worker")

        with pytest.raises(RequestTimeoutError) as excinfo:
            await correlated_request(coordinator, Message(type="ping", target="worker"), "pong", timeout=0.02)
        assert excinfo.value.message_type == "ping"
        assert coordinator.listener_count == 0

    @pytest.mark.asyncio
    async def test_late_reply_dropped(self, bus):
        """Test that a reply arriving after the timeout finds no listener and is dropped."""
        coordinator = bus.create_context("coordinator")
        worker = bus.create_context("worker")

        async def slow(message):
            await asyncio.sleep(0.05)
            worker.send(message.reply("pong"))

        worker.on("ping", slow)
        with pytest.raises(RequestTimeoutError):
            await correlated_request(coordinator, Message(type="ping", target="worker"), "pong", timeout=0.01)
        await worker.drain()
        await settle()
        assert coordinator.listener_count == 0
        assert not coordinator.closed

    @pytest.mark.asyncio
    async def test_missing_target(self, bus):
        """Test that a missing target fails immediately."""
        coordinator = bus.create_context("coordinator")
        with pytest.raises(ContextUnavailableError):
            await correlated_request(coordinator, Message(type="ping", target="worker"), "pong", timeout=1.0)
        assert coordinator.listener_count == 0


class TestCapabilities:
    """Tests for Capabilities."""

    def test_inline_detection(self):
        """Test the descriptor of a DOM-capable coordinator."""
        capabilities = Capabilities.detect(download_service=object())
        assert capabilities.dom_access
        assert capabilities.downloads_api
        assert capabilities.select_topology() == TopologyName.INLINE

    def test_worker_detection(self):
        """Test the descriptor of a coordinator without DOM access."""
        capabilities = Capabilities.detect(topology=TopologyName.WORKER, download_service=object())
        assert not capabilities.dom_access
        assert not capabilities.object_urls
        assert capabilities.select_topology() == TopologyName.WORKER

    def test_content_link_forced_without_downloads(self):
        """Test that missing download support switches the delivery mode."""
        capabilities = Capabilities.detect()
        options = capabilities.effective_options(ConversionOptions())
        assert options.download_mode == DownloadMode.CONTENT_LINK
