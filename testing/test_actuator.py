"""Tests for the secondary output actuator."""

import pytest

from smc_actuator import OutputActuator
from smc_main import merge_config
from smc_state import RoutingState

ASSIGN = "Video/Matrix/Assign"
RESET = "Video/Matrix/Reset"

class TestOutputActuator:

    @pytest.mark.asyncio
    async def test_assign_sets_state(self, config, xapi, logger):
        actuator = OutputActuator(config, xapi, logger)

        assert await actuator.assign(3) is True
        assert actuator.state == RoutingState(engaged=True, current_source_id=3)
        assert xapi.commands == [(ASSIGN, {"Output": 2, "Mode": "Replace", "SourceId": 3})]

    @pytest.mark.asyncio
    async def test_configured_output(self, config, xapi, logger):
        actuator = OutputActuator(merge_config(config, {"routing": {"output_id": 3}}), xapi, logger)

        await actuator.assign(2)
        await actuator.release()
        assert xapi.commands_named(ASSIGN)[0]["Output"] == 3
        assert xapi.commands_named(RESET) == [{"Output": 3}]

    @pytest.mark.asyncio
    async def test_assign_failure_leaves_state(self, config, xapi, logger):
        xapi.failing_commands.add(ASSIGN)
        actuator = OutputActuator(config, xapi, logger)

        assert await actuator.assign(3) is False
        assert actuator.state == RoutingState()

    @pytest.mark.asyncio
    async def test_release_when_idle_is_noop(self, config, xapi, logger):
        actuator = OutputActuator(config, xapi, logger)

        assert await actuator.release() is True
        assert xapi.commands == []

    @pytest.mark.asyncio
    async def test_forced_release_when_idle(self, config, xapi, logger):
        actuator = OutputActuator(config, xapi, logger)

        assert await actuator.release(force=True) is True
        assert xapi.commands == [(RESET, {"Output": 2})]
        assert actuator.state == RoutingState()

    @pytest.mark.asyncio
    async def test_assign_release_cycle_restores_native(self, config, xapi, logger):
        actuator = OutputActuator(config, xapi, logger)

        await actuator.assign(2)
        await actuator.release()
        assert actuator.state == RoutingState(engaged=False, current_source_id=None)

        await actuator.assign(3)
        await actuator.release()
        assert actuator.state == RoutingState(engaged=False, current_source_id=None)
        assert len(xapi.commands_named(RESET)) == 2

    @pytest.mark.asyncio
    async def test_release_failure_keeps_engaged(self, config, xapi, logger):
        actuator = OutputActuator(config, xapi, logger)
        await actuator.assign(2)
        xapi.failing_commands.add(RESET)

        assert await actuator.release() is False
        assert actuator.state == RoutingState(engaged=True, current_source_id=2)
