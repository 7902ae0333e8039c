"""Tests for the action dispatcher."""

import pytest

from rulechain.rule_engine.action_dispatcher import ActionDispatcher
from rulechain.rule_engine.commands import (
    DeviceCommandInterface,
    InMemoryDeviceCommander,
)
from rulechain.rule_engine.errors import ErrorCode
from rulechain.rule_engine.models import ActionSpec, ActionStatus
from rulechain.services.timeout_metrics import TimeoutMetrics


class ReplyingCommander:
    """Command interface that answers every command with a fixed reply."""

    def __init__(self, reply):
        self.reply = reply

    async def send_command(self, device_id, command):
        return self.reply


@pytest.fixture
def metrics():
    return TimeoutMetrics()


@pytest.fixture
def commander():
    return InMemoryDeviceCommander(response={"applied": True})


@pytest.mark.asyncio
class TestActionDispatcher:
    """Test ActionDispatcher.perform."""

    async def test_success(self, commander, metrics):
        """Test a command that the device acknowledges."""
        dispatcher = ActionDispatcher(commander, metrics=metrics)
        spec = ActionSpec(command={"method": "fanOn"}, device_id="fan-1")

        result = await dispatcher.perform(spec, {"temperature": 40})

        assert result.status is ActionStatus.SUCCESS
        assert result.success is True
        assert result.command_echo == {"method": "fanOn"}
        assert result.device_response == {"applied": True}
        assert result.record_snapshot == {"temperature": 40}
        assert result.error is None
        assert commander.sent[0].device_id == "fan-1"
        assert commander.sent[0].command == {"method": "fanOn"}

    async def test_command_forwarded_verbatim(self, commander):
        command = {"method": "set", "params": {"level": [1, 2, {"x": None}]}}
        dispatcher = ActionDispatcher(commander)
        await dispatcher.perform(ActionSpec(command=command, device_id="d"), {})
        assert commander.sent[0].command is command

    async def test_snapshot_is_a_copy(self, commander):
        record = {"v": 1}
        dispatcher = ActionDispatcher(commander)
        result = await dispatcher.perform(ActionSpec(command="x"), record)
        assert result.record_snapshot == record
        assert result.record_snapshot is not record

    async def test_not_acknowledged(self, commander):
        """Test that a negative ack becomes an error result."""
        commander.script("fan-1", ack=False, response={"reason": "busy"})
        dispatcher = ActionDispatcher(commander)

        result = await dispatcher.perform(ActionSpec(command="on", device_id="fan-1"), {})

        assert result.status is ActionStatus.ERROR
        assert result.error == "Command not acknowledged"
        assert result.device_response == {"reason": "busy"}

    async def test_mapping_reply(self):
        """Test that a plain mapping reply is read like an ack."""
        dispatcher = ActionDispatcher(ReplyingCommander({"ack": True, "deviceResponse": "ok"}))

        result = await dispatcher.perform(ActionSpec(command="on", device_id="fan-1"), {})

        assert result.status is ActionStatus.SUCCESS
        assert result.device_response == "ok"

    async def test_mapping_reply_not_acknowledged(self):
        dispatcher = ActionDispatcher(ReplyingCommander({"ack": False}))
        result = await dispatcher.perform(ActionSpec(command="on", device_id="fan-1"), {})
        assert result.status is ActionStatus.ERROR
        assert result.error == "Command not acknowledged"

    @pytest.mark.parametrize("reply", [None, "ok", {"deviceResponse": "ok"}])
    async def test_malformed_reply(self, reply):
        """Test that a reply without an ack flag becomes an error result."""
        dispatcher = ActionDispatcher(ReplyingCommander(reply))

        result = await dispatcher.perform(ActionSpec(command="on", device_id="fan-1"), {})

        assert result.status is ActionStatus.ERROR
        assert result.error == "Malformed reply"
        assert result.device_response == reply

    async def test_exception_is_captured(self, commander):
        """Test that collaborator exceptions never escape."""
        commander.script("fan-1", error=ConnectionError("broker unreachable"))
        dispatcher = ActionDispatcher(commander)

        result = await dispatcher.perform(ActionSpec(command="on", device_id="fan-1"), {})

        assert result.status is ActionStatus.ERROR
        assert result.error == "ConnectionError: broker unreachable"

    async def test_timeout(self, commander, metrics):
        """Test that a slow device times out and is counted."""
        commander.script("slow", delay=1.0)
        dispatcher = ActionDispatcher(commander, metrics=metrics)

        result = await dispatcher.perform(
            ActionSpec(command="on", device_id="slow"), {}, timeout=0.05
        )

        assert result.status is ActionStatus.ERROR
        assert result.error_code == ErrorCode.EXTERNAL_ACTION_TIMEOUT.value
        assert metrics.get_counter(ErrorCode.EXTERNAL_ACTION_TIMEOUT) == 1

    async def test_default_timeout(self, commander, metrics):
        commander.script("slow", delay=1.0)
        dispatcher = ActionDispatcher(commander, default_timeout=0.05, metrics=metrics)

        result = await dispatcher.perform(ActionSpec(command="on", device_id="slow"), {})

        assert result.error_code == ErrorCode.EXTERNAL_ACTION_TIMEOUT.value

    async def test_no_commander_is_skipped(self):
        """Test that actions are skipped without a command interface."""
        dispatcher = ActionDispatcher()
        result = await dispatcher.perform(ActionSpec(command="on"), {"v": 1})
        assert result.status is ActionStatus.SKIPPED
        assert result.command_echo == "on"

    async def test_to_dict(self, commander):
        dispatcher = ActionDispatcher(commander)
        result = await dispatcher.perform(ActionSpec(command="on", device_id="d"), {})
        data = result.to_dict()
        assert data["status"] == "success"
        assert data["commandEcho"] == "on"
        assert "timestamp" in data


class TestInMemoryDeviceCommander:
    """Test the in-memory command interface."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryDeviceCommander(), DeviceCommandInterface)
