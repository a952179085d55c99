import asyncio

import orjson
import pytest

from clusterlog.cluster import (
    FORWARD_KIND,
    ClusterForwarder,
    ForwarderState,
    MemoryChannel,
    decode_message,
    detect_role,
    encode_message,
)
from clusterlog.config import ClusterRoleSetting
from clusterlog.exceptions import ChannelError
from clusterlog.router import LogRouter
from clusterlog.types import ClusterRole, LogLevel, LogMessage, NotifyOptions, SinkKind


async def wait_for_messages(sink, count, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(sink.events) < count and loop.time() < deadline:
        await asyncio.sleep(0.01)


class TestDetectRole:
    def test_not_clustered(self):
        assert detect_role(False, ClusterRoleSetting.WORKER) is ClusterRole.NONE

    def test_explicit_roles(self):
        assert detect_role(True, ClusterRoleSetting.MASTER) is ClusterRole.MASTER
        assert detect_role(True, ClusterRoleSetting.WORKER) is ClusterRole.WORKER

    def test_auto_without_parent_process_is_master(self):
        assert detect_role(True) is ClusterRole.MASTER


class TestWireFormat:
    def test_encode(self):
        payload = orjson.loads(
            encode_message(LogMessage(LogLevel.DEBUG, "d", debug_rank=2), NotifyOptions(only_file=True))
        )
        assert payload == {
            "kind": FORWARD_KIND,
            "level": "debug",
            "text": "d",
            "options": {"onlyFile": True},
            "debugRank": 2,
        }

    def test_decode(self):
        message, options = decode_message(
            b'{"kind": "log-forward", "level": "warn", "text": "w", "options": {"noSysLog": true}}'
        )
        assert message == LogMessage(LogLevel.WARN, "w")
        assert options == NotifyOptions(no_sys_log=True)

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"[]",
            b'{"kind": "other", "level": "error", "text": "x"}',
            b'{"kind": "log-forward", "text": "x"}',
            b'{"kind": "log-forward", "level": "fatal", "text": "x"}',
            b'{"kind": "log-forward", "level": "error", "text": 3}',
            b'{"kind": "log-forward", "level": "debug", "text": "x", "debugRank": "1"}',
            b'{"kind": "log-forward", "level": "error", "text": "x", "options": {"noPager": true}}',
            b'{"kind": "log-forward", "level": "error", "text": "x", "options": ["noFile"]}',
        ],
    )
    def test_decode_rejects_malformed(self, payload):
        with pytest.raises(ValueError):
            decode_message(payload)


class TestMemoryChannel:
    @pytest.mark.asyncio
    async def test_send_and_receive(self):
        channel = MemoryChannel()
        channel.open(ClusterRole.WORKER)
        channel.send(b"payload")
        assert await channel.receive() == b"payload"

    def test_send_after_close_fails(self):
        channel = MemoryChannel()
        channel.close()
        with pytest.raises(ChannelError):
            channel.send(b"payload")


class TestWorkerForwarder:
    def test_channel_required(self):
        with pytest.raises(ValueError):
            ClusterForwarder(ClusterRole.WORKER)

    def test_send_before_start_is_dropped(self):
        forwarder = ClusterForwarder(ClusterRole.WORKER, MemoryChannel())
        forwarder.send(LogMessage(LogLevel.ERROR, "x"), NotifyOptions())
        assert forwarder.dropped == 1

    @pytest.mark.asyncio
    async def test_send_posts_encoded_message(self):
        channel = MemoryChannel()
        forwarder = ClusterForwarder(ClusterRole.WORKER, channel)
        forwarder.start()
        forwarder.send(LogMessage(LogLevel.ERROR, "x"), NotifyOptions(no_file=True))

        message, options = decode_message(await channel.receive())
        assert message.text == "x"
        assert options == NotifyOptions(no_file=True)
        assert forwarder.dropped == 0

    def test_full_channel_drops_without_raising(self):
        forwarder = ClusterForwarder(ClusterRole.WORKER, MemoryChannel(maxsize=1))
        forwarder.start()
        forwarder.send(LogMessage(LogLevel.ERROR, "first"), NotifyOptions())
        forwarder.send(LogMessage(LogLevel.ERROR, "second"), NotifyOptions())
        assert forwarder.dropped == 1

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        forwarder = ClusterForwarder(ClusterRole.WORKER, MemoryChannel())
        forwarder.start()
        await forwarder.stop()
        await forwarder.stop()
        assert forwarder.state is ForwarderState.STOPPED
        forwarder.send(LogMessage(LogLevel.ERROR, "late"), NotifyOptions())
        assert forwarder.dropped == 1

    def test_close_now_closes_the_channel(self):
        channel = MemoryChannel()
        forwarder = ClusterForwarder(ClusterRole.WORKER, channel)
        forwarder.start()
        forwarder.close_now()
        forwarder.close_now()

        assert forwarder.state is ForwarderState.STOPPED
        with pytest.raises(ChannelError):
            channel.send(b"payload")


class TestMasterForwarder:
    """The master listener feeds forwarded messages into its own router."""

    @pytest.mark.asyncio
    async def test_forwarded_message_reaches_sinks(self, registry, sinks):
        channel = MemoryChannel()
        master = ClusterForwarder(ClusterRole.MASTER, channel)
        master.start(LogRouter(registry=registry, role=ClusterRole.MASTER))

        channel.send(encode_message(LogMessage(LogLevel.ERROR, "from worker"), NotifyOptions(no_sys_log=True)))
        await wait_for_messages(sinks[SinkKind.FILE], 1)
        await master.stop()

        assert sinks[SinkKind.CONSOLE].messages == ["from worker"]
        assert sinks[SinkKind.FILE].messages == ["from worker"]
        assert sinks[SinkKind.SYSLOG].events == []

    @pytest.mark.asyncio
    async def test_malformed_message_is_reported(self, registry, sinks):
        channel = MemoryChannel()
        master = ClusterForwarder(ClusterRole.MASTER, channel)
        master.start(LogRouter(registry=registry, role=ClusterRole.MASTER))

        channel.send(b"garbage")
        channel.send(encode_message(LogMessage(LogLevel.WARN, "after"), NotifyOptions()))
        await wait_for_messages(sinks[SinkKind.FILE], 2)
        await master.stop()

        messages = sinks[SinkKind.FILE].messages
        assert messages[0].startswith("Discarded malformed forwarded log message [")
        assert messages[1] == "after"

    @pytest.mark.asyncio
    async def test_router_required(self):
        with pytest.raises(ValueError):
            ClusterForwarder(ClusterRole.MASTER, MemoryChannel()).start()

    @pytest.mark.asyncio
    async def test_master_send_is_not_forwarded(self):
        channel = MemoryChannel()
        master = ClusterForwarder(ClusterRole.MASTER, channel)
        master.start(LogRouter(role=ClusterRole.MASTER))
        master.send(LogMessage(LogLevel.ERROR, "x"), NotifyOptions())
        await master.stop()
        assert master.dropped == 1
