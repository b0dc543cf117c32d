#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Secondary Output Actuator
Version: 1.0.0

Assigns a source to the secondary output through the video matrix, or resets
it to native behavior. This is the only writer of RoutingState, and it only
writes after the codec confirms the command, so a failed command is simply
retried by the next reconciliation.
"""

import logging
from typing import Dict, Any

from smc_state import RoutingState

DEFAULT_OUTPUT_ID = 2

class OutputActuator:
    """Idempotent matrix assign/reset for one output."""

    def __init__(self, config: Dict[str, Any], xapi, logger: logging.Logger):
        self.xapi = xapi
        self.logger = logger
        self.output_id = int(config.get('routing', {}).get('output_id', DEFAULT_OUTPUT_ID))
        self.state = RoutingState()

    async def assign(self, source_id: int) -> bool:
        """Bind the output to source_id in replace mode."""
        try:
            await self.xapi.command(['Video', 'Matrix', 'Assign'], {
                "Output": self.output_id,
                "Mode": "Replace",
                "SourceId": source_id
            })
        except Exception as e:
            self.logger.error(f"Matrix assign of source {source_id} to output {self.output_id} failed: {e}")
            return False

        self.state.engaged = True
        self.state.current_source_id = source_id
        self.logger.info(f"Matrix ASSIGN: Output {self.output_id} <- Source {source_id}")
        return True

    async def release(self, force: bool = False) -> bool:
        """Return the output to native behavior.

        Without force this is a no-op when nothing is engaged. force is used
        at startup, where a previous process may have left a mapping behind.
        """
        if not self.state.engaged and not force:
            return True

        try:
            await self.xapi.command(['Video', 'Matrix', 'Reset'], {"Output": self.output_id})
        except Exception as e:
            self.logger.error(f"Matrix reset of output {self.output_id} failed: {e}")
            return False

        self.state.reset()
        self.logger.info(f"Matrix RESET: Output {self.output_id}")
        return True
