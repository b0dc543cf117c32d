"""Shared pytest fixtures for the SMC test suite."""

import sys
import logging
from pathlib import Path

import pytest

# Flat module layout: make the project root importable
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from smc_actuator import OutputActuator
from smc_classifier import MeetingClassifier
from smc_discovery import SourceDiscovery
from smc_main import DEFAULT_CONFIG, merge_config
from smc_presentation import PresentationInspector
from smc_reconciler import ReconciliationEngine
from smc_state import ReconcilerContext
from smc_xapi_client import NO_MATCH_MESSAGE, XapiError

CALL_PATH = ('Status', 'Call')
LOCAL_INSTANCE_PATH = ('Status', 'Conference', 'Presentation', 'LocalInstance')
CONNECTOR_PATH = ('Status', 'Video', 'Input', 'Connector')

MEET_CALL = {"id": 1, "CallbackURI": "https://meet.google.com/abc-defg-hij", "DisplayName": "Weekly sync"}
OTHER_CALL = {"id": 2, "CallbackURI": "sip:room@example.com", "DisplayName": "Room"}

DEFAULT_CONNECTORS = [
    {"id": "1", "Type": "Camera"},
    {"id": "2", "Type": "HDMI"},
    {"id": "3", "Type": "USBC-DP"},
]

class FakeXapi:
    """In-memory stand-in for XapiClient."""

    def __init__(self):
        self.status = {}
        self.failing_paths = set()
        self.missing_paths = set()
        self.failing_commands = set()
        self.commands = []
        self.queries = []

    def set_status(self, path, value):
        self.status[tuple(path)] = value

    def set_presentation(self, mode, *sources):
        if mode is None:
            self.set_status(LOCAL_INSTANCE_PATH, [])
        else:
            self.set_status(LOCAL_INSTANCE_PATH, [{"id": 1, "SendingMode": mode, "Source": list(sources)}])

    async def get(self, path):
        key = tuple(path)
        self.queries.append(key)
        if key in self.missing_paths:
            raise XapiError(NO_MATCH_MESSAGE, code=3)
        if key in self.failing_paths:
            raise XapiError(f"{'/'.join(key)} query failed")
        return self.status.get(key)

    async def command(self, path, params=None):
        name = "/".join(path)
        self.commands.append((name, dict(params or {})))
        if name in self.failing_commands:
            raise XapiError(f"{name} failed")
        return {"status": "OK"}

    def commands_named(self, suffix):
        return [params for name, params in self.commands if name.endswith(suffix)]

@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("smc-test")

@pytest.fixture
def config():
    return merge_config(DEFAULT_CONFIG, {"routing": {"debounce_seconds": 0.01}})

@pytest.fixture
def xapi() -> FakeXapi:
    fake = FakeXapi()
    fake.set_status(CALL_PATH, [])
    fake.set_presentation(None)
    fake.set_status(CONNECTOR_PATH, list(DEFAULT_CONNECTORS))
    return fake

@pytest.fixture
def context() -> ReconcilerContext:
    return ReconcilerContext()

def build_engine(config, xapi, context, logger) -> ReconciliationEngine:
    classifier = MeetingClassifier(config, xapi, context, logger)
    discovery = SourceDiscovery(config, xapi, context, logger)
    inspector = PresentationInspector(xapi, logger)
    actuator = OutputActuator(config, xapi, logger)
    return ReconciliationEngine(config, context, classifier, discovery, inspector, actuator, logger)

@pytest.fixture
def engine(config, xapi, context, logger) -> ReconciliationEngine:
    return build_engine(config, xapi, context, logger)
