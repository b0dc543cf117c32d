#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Wired Source Discovery
Version: 1.0.0

Builds the set of input source ids eligible for mirroring from the codec's
input connector list:
- USB-C: type contains "USBC-DP" / "USBC" / "USB-C" / "USB C" / "USB TYPE-C"
- HDMI : type contains "HDMI"

The connector index doubles as the presentation SourceId on these codecs.
Falls back to a fixed pair of ids when nothing wired is found.
"""

import logging
from typing import Dict, List, Optional, Any, Iterable

from smc_payload import as_list, parse_int
from smc_state import ReconcilerContext

DEFAULT_USBC_PATTERNS = ['USBC-DP', 'USBC', 'USB-C', 'USB C', 'USB TYPE-C']
DEFAULT_HDMI_PATTERNS = ['HDMI']
DEFAULT_FALLBACK_SOURCE_IDS = [2, 3]

CONNECTOR_ID_FIELDS = ('id', 'ConnectorId', 'Connector', 'Number', 'Instance')

def normalize_type(label: Any) -> str:
    return str(label or '').strip().upper()

def connector_id(connector: Dict[str, Any]) -> Optional[int]:
    """First id field that parses as an integer."""
    for key in CONNECTOR_ID_FIELDS:
        number = parse_int(connector.get(key))
        if number is not None:
            return number
    return None

def is_wired_connector(label: Any,
                       usbc_patterns: Iterable[str] = DEFAULT_USBC_PATTERNS,
                       hdmi_patterns: Iterable[str] = DEFAULT_HDMI_PATTERNS) -> bool:
    """True when a connector type label names a USB-C or HDMI input."""
    text = normalize_type(label)
    if not text:
        return False
    return (any(normalize_type(p) in text for p in usbc_patterns)
            or any(normalize_type(p) in text for p in hdmi_patterns))

class SourceDiscovery:
    """Populates ReconcilerContext.allowed_sources."""

    def __init__(self, config: Dict[str, Any], xapi, context: ReconcilerContext, logger: logging.Logger):
        self.xapi = xapi
        self.context = context
        self.logger = logger

        discovery = config.get('discovery', {})
        self.enabled = discovery.get('enabled', True)
        self.static_source_ids = sorted(set(discovery.get('static_source_ids', [])))
        self.fallback_source_ids = sorted(set(discovery.get('fallback_source_ids', DEFAULT_FALLBACK_SOURCE_IDS)))
        self.usbc_patterns = discovery.get('usbc_patterns', DEFAULT_USBC_PATTERNS)
        self.hdmi_patterns = discovery.get('hdmi_patterns', DEFAULT_HDMI_PATTERNS)

    async def refresh_allowed_sources(self) -> List[int]:
        """Rebuild the allowed set; safe to call at any time."""
        if not self.enabled:
            if self.static_source_ids:
                self.context.allowed_sources = list(self.static_source_ids)
            else:
                self.logger.warning(f"No static source ids configured; falling back to {self.fallback_source_ids}")
                self.context.allowed_sources = list(self.fallback_source_ids)
            return self.context.allowed_sources

        try:
            connectors = as_list(await self.xapi.get(['Status', 'Video', 'Input', 'Connector']))
        except Exception as e:
            if not self.context.allowed_sources:
                self.context.allowed_sources = list(self.fallback_source_ids)
            self.logger.error(f"Connector discovery failed; using {self.context.allowed_sources}: {e}")
            return self.context.allowed_sources

        found = set()
        for connector in connectors:
            if not isinstance(connector, dict):
                continue
            number = connector_id(connector)
            if number is None:
                continue
            label = normalize_type(connector.get('Type'))
            if is_wired_connector(label, self.usbc_patterns, self.hdmi_patterns):
                found.add(number)
                self.logger.debug(f"Discovered wired connector {number} type={label}")

        if found:
            self.context.allowed_sources = sorted(found)
            self.logger.info(f"Allowed source ids = {self.context.allowed_sources}")
        else:
            self.context.allowed_sources = list(self.fallback_source_ids)
            self.logger.warning(f"No wired connectors detected from Type; falling back to {self.fallback_source_ids}")

        return self.context.allowed_sources
