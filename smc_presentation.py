#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Presentation Inspector
Version: 1.0.0

Reads the codec's local presentation instances. Only LocalRemote counts as
sharing; a LocalOnly preview is never mirrored.
"""

import logging
from typing import List

from smc_payload import as_list, first_present, normalize_ids
from smc_state import PresentationShareState, SendingMode
from smc_xapi_client import XapiError

# Firmware versions disagree on the key name
SOURCE_FIELDS = ('Source', 'SourceId')

class PresentationInspector:
    """Fresh, uncached reads of local presentation state."""

    def __init__(self, xapi, logger: logging.Logger):
        self.xapi = xapi
        self.logger = logger

    async def inspect(self) -> PresentationShareState:
        try:
            reply = await self.xapi.get(['Status', 'Conference', 'Presentation', 'LocalInstance'])
        except XapiError as e:
            if not e.no_match:
                raise
            # No local instance exists while nothing is being presented
            reply = []
        instances = [i for i in as_list(reply) if isinstance(i, dict)]

        modes = [SendingMode.parse(i.get('SendingMode')) for i in instances]
        if SendingMode.LOCAL_REMOTE in modes:
            mode = SendingMode.LOCAL_REMOTE
        elif SendingMode.LOCAL_ONLY in modes:
            mode = SendingMode.LOCAL_ONLY
        else:
            mode = SendingMode.NONE

        ids = set()
        for instance in instances:
            ids.update(normalize_ids(first_present(instance, SOURCE_FIELDS)))

        return PresentationShareState(sending_mode=mode, active_source_ids=sorted(ids))

    async def is_sharing_to_remote(self) -> bool:
        """True only while a local instance is being sent to the far end."""
        try:
            state = await self.inspect()
        except Exception as e:
            self.logger.error(f"Presentation mode query failed: {e}")
            return False
        return state.sending_mode == SendingMode.LOCAL_REMOTE

    async def get_active_source_ids(self) -> List[int]:
        try:
            state = await self.inspect()
        except Exception as e:
            self.logger.error(f"Presentation source query failed: {e}")
            return []
        return state.active_source_ids
