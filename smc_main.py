#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) Main Application
Version: 1.0.0

Mirrors the wired input being shared to a Google Meet call onto the codec's
second output, and hands the output back to native behavior when sharing
stops, the call ends, or the shared source is not a wired input.

- JSON configuration merged over defaults (/etc/smc/config.json)
- Codec xAPI connection with backoff and automatic recovery
- Codec feedback republished on an event bus
- Debounced, single-flight routing reconciliation
- Periodic health logging and graceful shutdown on SIGINT/SIGTERM
"""

import os
import sys
import copy
import json
import time
import signal
import asyncio
import logging
import functools
from pathlib import Path
from typing import Dict, Optional, Any
from enum import Enum

from smc_actuator import OutputActuator
from smc_classifier import MeetingClassifier
from smc_discovery import SourceDiscovery
from smc_events import EventBus, FEEDBACK_PATHS
from smc_presentation import PresentationInspector
from smc_reconciler import ReconciliationEngine
from smc_state import ReconcilerContext
from smc_xapi_client import XapiClient

CONFIG_DIR = Path("/etc/smc")
CONFIG_FILE_NAME = "config.json"
LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"

DEFAULT_CONFIG = {
    "meta": {
        "version": "1.0.0",
        "description": "SMC Configuration - Share Mirror Controller"
    },
    "system": {
        "debug_mode": False,
        "log_level": "INFO",
        "log_dir": "/var/log/smc",
        "health_interval": 60
    },
    "codec": {
        "host": "127.0.0.1",
        "port": 443,
        "username": "admin",
        "password": "",
        "use_tls": True,
        "verify_tls": False,
        "request_timeout": 10,
        "reconnect_attempts": 5,
        "retry_delay": 2.0,
        "max_retry_delay": 30.0
    },
    "meeting": {
        "uri_prefix": "meet.google.com/"
    },
    "routing": {
        "output_id": 2,
        "debounce_seconds": 0.08
    },
    "discovery": {
        "enabled": True,
        "static_source_ids": [],
        "fallback_source_ids": [2, 3],
        "watch_connectors": False,
        "usbc_patterns": ["USBC-DP", "USBC", "USB-C", "USB C", "USB TYPE-C"],
        "hdmi_patterns": ["HDMI"]
    }
}

class SystemState(Enum):
    """Application operational states."""
    INITIALIZING = "initializing"
    RUNNING = "running"
    RECONNECTING = "reconnecting"
    SHUTTING_DOWN = "shutting_down"
    ERROR = "error"

def merge_config(default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge user config with defaults."""
    result = copy.deepcopy(default)
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = value
    return result

def load_config(config_dir: Path, logger: logging.Logger) -> Dict[str, Any]:
    """Load config.json merged over defaults, writing the defaults when missing."""
    config_file = Path(config_dir) / CONFIG_FILE_NAME

    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                user_config = json.load(f)
            logger.info(f"Loaded configuration from {config_file}")
            return merge_config(DEFAULT_CONFIG, user_config)
        except Exception as e:
            logger.error(f"Failed to load config: {e}. Using defaults.")
            return merge_config(DEFAULT_CONFIG, {})

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, 'w') as f:
            json.dump(DEFAULT_CONFIG, f, indent=4)
        logger.info(f"Created default configuration at {config_file}")
    except Exception as e:
        logger.warning(f"Could not save default configuration: {e}")

    return merge_config(DEFAULT_CONFIG, {})

class ShareMirrorApplication:
    """Wires the codec connection, event bus and reconciler together."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.logger = logging.getLogger("SMC-Main")
        self.file_handler: Optional[logging.Handler] = None
        self.setup_logging()

        self.config_dir = Path(config_dir or os.environ.get('SMC_CONFIG_DIR', CONFIG_DIR))
        self.config = load_config(self.config_dir, self.logger)
        self.apply_logging_config()

        self.system_state = SystemState.INITIALIZING
        self.exit_flag = False

        # Core components
        self.xapi = XapiClient(self.config, logging.getLogger("SMC-xAPI"))
        self.bus = EventBus(logging.getLogger("SMC-Events"))
        self.context = ReconcilerContext()

        engine_logger = logging.getLogger("SMC-Reconciler")
        self.classifier = MeetingClassifier(self.config, self.xapi, self.context, engine_logger)
        self.discovery = SourceDiscovery(self.config, self.xapi, self.context, engine_logger)
        self.inspector = PresentationInspector(self.xapi, engine_logger)
        self.actuator = OutputActuator(self.config, self.xapi, engine_logger)
        self.engine = ReconciliationEngine(
            self.config, self.context, self.classifier, self.discovery,
            self.inspector, self.actuator, engine_logger
        )
        self.engine.attach(self.bus)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def setup_logging(self):
        """Configure console logging; file output follows once config is loaded."""
        logging.basicConfig(
            level=logging.INFO,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stdout)]
        )

        # Keep per-frame websocket chatter out of debug logs
        logging.getLogger('websockets').setLevel(logging.WARNING)

        self.logger.info("="*60)
        self.logger.info("SMC Share Mirror Controller Starting")
        self.logger.info("="*60)

    def apply_logging_config(self):
        """Apply the configured log level and add the log file handler."""
        system = self.config.get('system', {})
        level = logging.DEBUG if system.get('debug_mode') else getattr(logging, str(system.get('log_level', 'INFO')).upper(), logging.INFO)
        root = logging.getLogger()
        root.setLevel(level)

        log_dir = Path(system.get('log_dir', '/var/log/smc'))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            self.file_handler = logging.FileHandler(log_dir / "smc_main.log")
        except OSError as e:
            self.logger.warning(f"File logging disabled ({log_dir}): {e}")
            return

        self.file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(self.file_handler)
        self.logger.info(f"Logging to {log_dir / 'smc_main.log'}")

    def _signal_handler(self, sig, frame):
        """Handle shutdown signals."""
        self.logger.info(f"Received signal {sig} - initiating shutdown")
        self.exit_flag = True
        self.system_state = SystemState.SHUTTING_DOWN

    async def subscribe_feedback(self):
        """Forward codec feedback for every event the reconciler listens to."""
        for event, path in FEEDBACK_PATHS.items():
            if not self.bus.has_subscribers(event):
                continue
            await self.xapi.subscribe(path, functools.partial(self.bus.publish, event))
            self.logger.info(f"Listening for {event.value} ({'/'.join(path)})")

    async def start_session(self):
        """Subscribe feedback and bring the output to a known state."""
        await self.subscribe_feedback()
        await self.engine.initialize()
        self.engine.schedule("Init")

    async def recover_connection(self):
        """Reconnect after the codec socket dropped."""
        self.system_state = SystemState.RECONNECTING
        self.logger.warning("Codec connection lost - reconnecting")
        self.engine.gate.cancel()

        try:
            await self.xapi.close()
            await self.xapi.connect()
            await self.start_session()
            self.system_state = SystemState.RUNNING
            self.logger.info("Codec session restored")
        except Exception as e:
            self.logger.error(f"Reconnection failed: {e}")
            await asyncio.sleep(float(self.config['codec'].get('max_retry_delay', 30.0)))

    def log_system_health(self):
        """Log reconciler status."""
        status = self.engine.get_status()
        metrics = status['metrics']
        self.logger.info(f"System Health - State: {self.system_state.value}")
        self.logger.info(f"  Meeting: {status['meeting_active']}  Allowed sources: {status['allowed_sources']}")
        self.logger.info(f"  Routing: {status['routing']}  Gate: {status['phase']}")
        self.logger.info(
            f"  Runs: {metrics['runs']} skipped: {metrics['skipped']} "
            f"assigns: {metrics['assigns']} releases: {metrics['releases']}"
        )

    async def shutdown(self):
        """Stop scheduling, hand the output back and close the socket."""
        self.logger.info("Shutting down SMC...")
        self.system_state = SystemState.SHUTTING_DOWN
        self.engine.gate.cancel()
        await self.engine.gate.wait_idle()

        if self.xapi.connected:
            await self.actuator.release()
        await self.xapi.close()
        self.logger.info("Codec connection closed")

    async def run(self) -> int:
        """Main application loop."""
        try:
            await self.xapi.connect()
        except ConnectionError as e:
            self.logger.error(f"Failed to connect to codec: {e}")
            return 1

        health_interval = float(self.config['system'].get('health_interval', 60))
        last_health = time.time()

        try:
            await self.start_session()
            self.system_state = SystemState.RUNNING

            while not self.exit_flag:
                if not self.xapi.connected:
                    await self.recover_connection()
                    continue

                if time.time() - last_health >= health_interval:
                    self.log_system_health()
                    last_health = time.time()

                await asyncio.sleep(1)

        except Exception as e:
            self.logger.error(f"Main loop critical error: {e}")
            self.system_state = SystemState.ERROR
            return 1

        finally:
            await self.shutdown()

        return 0

def main():
    """Console entry point."""
    try:
        app = ShareMirrorApplication()
        return asyncio.run(app.run())
    except KeyboardInterrupt:
        logging.info("Application interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Unhandled application error: {e}")
        return 1

if __name__ == "__main__":
    sys.exit(main())
