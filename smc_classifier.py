#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Meeting Classifier
Version: 1.0.0

Decides whether any active call is a meeting of the watched type, by matching
the call's identifying URI against a fixed path prefix.
"""

import re
import logging
from typing import Dict, Any

from smc_payload import as_list
from smc_state import ReconcilerContext
from smc_xapi_client import XapiError

DEFAULT_MEETING_PREFIX = "meet.google.com/"

# Tried in this order; the first non-empty field identifies the call
CALL_ID_FIELDS = ('CallbackURI', 'CallbackNumber', 'RemoteURI', 'DisplayName')

_SCHEME = re.compile(r'^\w+://')

def looks_like_meeting(candidate: Any, prefix: str = DEFAULT_MEETING_PREFIX) -> bool:
    text = _SCHEME.sub('', str(candidate or '').strip().lower(), count=1)
    return text.startswith(prefix.strip().lower())

def call_identifier(call: Dict[str, Any]) -> str:
    for key in CALL_ID_FIELDS:
        value = call.get(key)
        if value:
            return str(value)
    return ''

class MeetingClassifier:
    """Keeps ReconcilerContext.meeting_active in step with the call list."""

    def __init__(self, config: Dict[str, Any], xapi, context: ReconcilerContext, logger: logging.Logger):
        self.xapi = xapi
        self.context = context
        self.logger = logger
        self.prefix = config.get('meeting', {}).get('uri_prefix', DEFAULT_MEETING_PREFIX)

    async def refresh(self) -> bool:
        """Re-read active calls; any failure classifies as not-a-meeting."""
        try:
            calls = await self._active_calls()
            active = any(
                looks_like_meeting(call_identifier(call), self.prefix)
                for call in calls if isinstance(call, dict)
            )
        except Exception as e:
            self.logger.error(f"Meeting classification failed: {e}")
            active = False

        self.context.meeting_active = active
        self.logger.info(f"Meeting active = {active}")
        return active

    async def _active_calls(self):
        try:
            return as_list(await self.xapi.get(['Status', 'Call']))
        except XapiError as e:
            # Idle codecs answer with no match rather than an empty list
            if e.no_match:
                return []
            raise

    def clear(self):
        """Mark the meeting as ended without querying (call disconnected)."""
        self.context.meeting_active = False
