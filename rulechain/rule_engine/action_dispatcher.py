"""Action dispatcher for action nodes."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping

from rulechain.rule_engine.commands import CommandAck, DeviceCommandInterface
from rulechain.rule_engine.errors import ErrorCode
from rulechain.rule_engine.models import ActionResult, ActionSpec, ActionStatus

if TYPE_CHECKING:
    from rulechain.services.timeout_metrics import TimeoutMetrics

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """Thin adapter between action nodes and the device command interface.

    ``perform`` always returns an ActionResult: rejections, exceptions and
    timeouts from the collaborator are captured as ``status="error"`` so a
    single broken device never aborts the rest of a chain.
    """

    def __init__(
        self,
        commander: DeviceCommandInterface | None = None,
        default_timeout: float | None = None,
        metrics: "TimeoutMetrics | None" = None,
    ):
        """Initialize the dispatcher.

        Args:
            commander: Device command interface; without one, actions are
                recorded as skipped
            default_timeout: Seconds to wait for the collaborator when the
                caller supplies no timeout (None or <= 0 waits forever)
            metrics: Timeout metrics sink (defaults to the process-wide one)
        """
        self.commander = commander
        self.default_timeout = default_timeout
        if metrics is None:
            from rulechain.services.timeout_metrics import timeout_metrics as metrics
        self.metrics = metrics

    async def perform(
        self,
        spec: ActionSpec,
        record: Mapping[str, Any],
        timeout: float | None = None,
    ) -> ActionResult:
        """Send an action's command and capture the outcome.

        Args:
            spec: Action spec from the node config
            record: Current event record (snapshotted into the result)
            timeout: Seconds to wait for the collaborator

        Returns:
            ActionResult describing what happened
        """
        snapshot = dict(record)

        if self.commander is None:
            logger.warning(
                f"No device command interface configured, skipping command "
                f"for device {spec.device_id}"
            )
            return self._result(ActionStatus.SKIPPED, spec, snapshot)

        timeout = timeout if timeout is not None else self.default_timeout
        started = time.monotonic()

        try:
            send = self.commander.send_command(spec.device_id, spec.command)
            if timeout is not None and timeout > 0:
                reply = await asyncio.wait_for(send, timeout=timeout)
            else:
                reply = await send
            ack = read_reply(reply)
        except asyncio.TimeoutError:
            duration_ms = (time.monotonic() - started) * 1000
            self.metrics.record_timeout(ErrorCode.EXTERNAL_ACTION_TIMEOUT, duration_ms)
            logger.warning(
                f"Command for device {spec.device_id} timed out after {timeout}s"
            )
            return self._result(
                ActionStatus.ERROR,
                spec,
                snapshot,
                error=f"Timeout after {timeout}s",
                error_code=ErrorCode.EXTERNAL_ACTION_TIMEOUT.value,
            )
        except Exception as e:
            logger.warning(f"Command for device {spec.device_id} failed: {e}")
            return self._result(
                ActionStatus.ERROR, spec, snapshot, error=f"{type(e).__name__}: {e}"
            )

        if ack is None:
            logger.warning(
                f"Command for device {spec.device_id} returned a malformed reply: {reply!r}"
            )
            return self._result(
                ActionStatus.ERROR,
                spec,
                snapshot,
                device_response=reply,
                error="Malformed reply",
            )

        if not ack.ack:
            logger.warning(f"Command for device {spec.device_id} was not acknowledged")
            return self._result(
                ActionStatus.ERROR,
                spec,
                snapshot,
                device_response=ack.device_response,
                error="Command not acknowledged",
            )

        return self._result(
            ActionStatus.SUCCESS, spec, snapshot, device_response=ack.device_response
        )

    def _result(
        self,
        status: ActionStatus,
        spec: ActionSpec,
        snapshot: dict[str, Any],
        **details: Any,
    ) -> ActionResult:
        return ActionResult(
            status=status,
            command_echo=spec.command,
            timestamp=datetime.now(timezone.utc),
            record_snapshot=snapshot,
            **details,
        )


def read_reply(reply: Any) -> CommandAck | None:
    """Normalize a command interface reply into a CommandAck.

    Accepts a CommandAck, any object with a boolean ``ack`` attribute, or
    a ``{"ack", "deviceResponse"}`` mapping. Returns None for anything
    else.
    """
    if isinstance(reply, CommandAck):
        return reply
    if isinstance(reply, Mapping):
        ack = reply.get("ack")
        response = reply.get("deviceResponse", reply.get("device_response"))
    else:
        ack = getattr(reply, "ack", None)
        response = getattr(reply, "device_response", None)
    if not isinstance(ack, bool):
        return None
    return CommandAck(ack=ack, device_response=response)
