"""Device command interface consumed by action nodes."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass
class CommandAck:
    """Reply from the transport that delivered a command.

    Attributes:
        ack: Whether the device (or its gateway) accepted the command
        device_response: Transport-specific response payload
    """

    ack: bool
    device_response: Any = None


@runtime_checkable
class DeviceCommandInterface(Protocol):
    """Delivers action commands to physical or virtual devices.

    Implementations live in the transport layer (MQTT, CoAP, HTTP) and own
    all validation of device identifiers and framing. The engine hands the
    command payload over verbatim.
    """

    async def send_command(self, device_id: str | None, command: Any) -> CommandAck:
        ...


@dataclass
class _Script:
    ack: bool = True
    response: Any = None
    error: BaseException | None = None
    delay: float = 0.0


@dataclass
class SentCommand:
    device_id: str | None
    command: Any


class InMemoryDeviceCommander:
    """Device command interface that records commands instead of sending them.

    Used for local runs and tests. Replies can be scripted per device id:
    acknowledged, rejected, raising, or delayed past a deadline.
    """

    def __init__(self, ack: bool = True, response: Any = None, delay: float = 0.0):
        self._default = _Script(ack=ack, response=response, delay=delay)
        self._scripts: dict[str | None, _Script] = {}
        self.sent: list[SentCommand] = []

    def script(
        self,
        device_id: str | None,
        *,
        ack: bool = True,
        response: Any = None,
        error: BaseException | None = None,
        delay: float = 0.0,
    ) -> None:
        """Script the reply for commands sent to ``device_id``."""
        self._scripts[device_id] = _Script(
            ack=ack, response=response, error=error, delay=delay
        )

    async def send_command(self, device_id: str | None, command: Any) -> CommandAck:
        script = self._scripts.get(device_id, self._default)
        self.sent.append(SentCommand(device_id=device_id, command=command))
        logger.debug(f"Command for device {device_id}: {command!r}")

        if script.delay:
            await asyncio.sleep(script.delay)
        if script.error is not None:
            raise script.error

        return CommandAck(ack=script.ack, device_response=script.response)
