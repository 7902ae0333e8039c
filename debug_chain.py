"""Run a chain document against an event and print the trace.

Usage: python debug_chain.py chain.json event.json
"""

import asyncio
import json
import logging
import sys

from rulechain.core.config import settings
from rulechain.rule_engine import (
    ActionDispatcher,
    ChainExecutor,
    InMemoryDeviceCommander,
    RuleEngineConfig,
)
from rulechain.schemas import ChainDocument

logging.basicConfig(level=settings.LOG_LEVEL)


async def main(chain_path: str, event_path: str):
    with open(chain_path) as f:
        document = ChainDocument.model_validate(json.load(f))
    with open(event_path) as f:
        event = json.load(f)

    chain, nodes = document.to_engine()
    commander = InMemoryDeviceCommander()
    executor = ChainExecutor(
        dispatcher=ActionDispatcher(commander),
        config=RuleEngineConfig.from_settings(),
    )
    result = await executor.execute(chain, nodes, event)

    print(json.dumps(result.to_dict(), indent=2, default=str))
    for sent in commander.sent:
        print(f"sent to {sent.device_id}: {json.dumps(sent.command, default=str)}")


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2]))
