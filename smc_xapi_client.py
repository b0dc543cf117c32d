#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - Codec xAPI Client
Version: 1.0.0

Asynchronous JSON-RPC 2.0 client for the codec xAPI WebSocket endpoint:
- Basic-auth handshake with retry and exponential backoff
- Request/response correlation by JSON-RPC id with per-request timeout
- Feedback subscriptions dispatched to sync or async callbacks
- Pending requests fail fast when the socket drops
"""

import ssl
import json
import base64
import asyncio
import logging
from typing import Dict, List, Optional, Any, Callable

import websockets

# Codec reply to xGet on a path with no instances (no call, no share)
NO_MATCH_MESSAGE = "No match on Path argument"

class XapiError(Exception):
    """Raised for xAPI error responses, timeouts and connection problems."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code

    @property
    def no_match(self) -> bool:
        return NO_MATCH_MESSAGE.lower() in str(self).lower()

class XapiClient:
    """JSON-RPC over WebSocket connection to a single codec."""

    def __init__(self, config: Dict[str, Any], logger: logging.Logger):
        self.config = config
        self.logger = logger
        codec = config.get('codec', {})
        self.host = codec.get('host', '127.0.0.1')
        self.port = codec.get('port', 443)
        self.use_tls = codec.get('use_tls', True)
        self.verify_tls = codec.get('verify_tls', False)
        self.request_timeout = float(codec.get('request_timeout', 10))

        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._next_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._feedback: Dict[int, Dict[str, Any]] = {}
        self._callback_tasks = set()

    @property
    def url(self) -> str:
        scheme = 'wss' if self.use_tls else 'ws'
        return f"{scheme}://{self.host}:{self.port}/ws"

    @property
    def connected(self) -> bool:
        return self._ws is not None and self._reader_task is not None and not self._reader_task.done()

    def _auth_headers(self) -> Dict[str, str]:
        codec = self.config.get('codec', {})
        username = codec.get('username', '')
        password = codec.get('password', '')
        token = base64.b64encode(f"{username}:{password}".encode()).decode()
        return {"Authorization": f"Basic {token}"}

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.verify_tls:
            # Codecs ship with self-signed certificates
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def connect(self):
        """Open the WebSocket, retrying with exponential backoff."""
        codec = self.config.get('codec', {})
        max_retries = int(codec.get('reconnect_attempts', 5))
        retry_delay = float(codec.get('retry_delay', 2.0))
        max_delay = float(codec.get('max_retry_delay', 30.0))

        options = {}
        if self.use_tls:
            options['ssl'] = self._ssl_context()

        for attempt in range(max_retries):
            try:
                self.logger.info(f"Connecting to codec at {self.url} (attempt {attempt + 1})")

                self._ws = await websockets.connect(
                    self.url,
                    additional_headers=self._auth_headers(),
                    ping_interval=10,
                    ping_timeout=5,
                    close_timeout=10,
                    **options
                )
                self._feedback.clear()
                self._reader_task = asyncio.create_task(self._read_loop())
                self.logger.info("Codec connection established")
                return

            except Exception as e:
                self.logger.error(f"Codec connection attempt {attempt + 1} failed: {e}")
                if attempt < max_retries - 1:
                    await asyncio.sleep(retry_delay)
                    retry_delay = min(retry_delay * 1.5, max_delay)

        raise ConnectionError("Failed to connect to codec after all retry attempts")

    async def close(self):
        """Close the socket and stop the reader."""
        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                self.logger.warning(f"Error closing codec connection: {e}")
        try:
            if self._reader_task is not None:
                await self._reader_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.logger.warning(f"Codec reader stopped with error: {e}")
        finally:
            self._ws = None
            self._reader_task = None

    async def _read_loop(self):
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    self.logger.warning(f"Ignoring non-JSON message from codec: {str(raw)[:100]}")
                    continue
                if not isinstance(message, dict):
                    self.logger.warning(f"Ignoring unexpected message from codec: {str(raw)[:100]}")
                    continue
                try:
                    self._dispatch(message)
                except Exception as e:
                    self.logger.warning(f"Failed to handle codec message: {e}")
        except websockets.ConnectionClosed as e:
            self.logger.warning(f"Codec connection closed: {e}")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(XapiError("Codec connection closed"))
            self._pending.clear()

    def _dispatch(self, message: Dict[str, Any]):
        """Route a response to its waiter or a feedback notification to its callback."""
        if message.get('method') == 'xFeedback/Event':
            params = message.get('params')
            if not isinstance(params, dict):
                self.logger.debug(f"Feedback without params: {message}")
                return
            subscription = self._feedback.get(params.get('Id'))
            if subscription is None:
                self.logger.debug(f"Feedback for unknown subscription: {params.get('Id')}")
                return
            payload = self._extract_feedback(params, subscription['query'])
            self._invoke(subscription['callback'], payload)
            return

        future = self._pending.get(message.get('id'))
        if future is None or future.done():
            return

        if 'error' in message:
            error = message['error'] or {}
            if isinstance(error, dict):
                future.set_exception(XapiError(error.get('message', 'Unknown xAPI error'), error.get('code')))
            else:
                future.set_exception(XapiError(str(error)))
        else:
            future.set_result(message.get('result'))

    @staticmethod
    def _extract_feedback(params: Dict[str, Any], query: List[str]) -> Any:
        """Walk the feedback document down the subscribed path."""
        node: Any = params
        for key in query:
            if isinstance(node, dict) and key in node:
                node = node[key]
            else:
                return node
        return node

    def _invoke(self, callback: Callable, payload: Any):
        try:
            result = callback(payload)
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_tasks.discard)
        except Exception as e:
            self.logger.error(f"Feedback callback failed: {e}")

    async def _request(self, method: str, params: Dict[str, Any]) -> Any:
        if not self.connected:
            raise XapiError("Not connected to codec")

        self._next_id += 1
        request_id = self._next_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        request = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params
        }

        try:
            await self._ws.send(json.dumps(request))
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError:
            raise XapiError(f"{method} timed out after {self.request_timeout}s")
        except websockets.ConnectionClosed as e:
            raise XapiError(f"Codec connection closed during {method}: {e}")
        finally:
            self._pending.pop(request_id, None)

    async def get(self, path: List[str]) -> Any:
        """xGet a status or configuration path, e.g. ['Status', 'Call']."""
        return await self._request("xGet", {"Path": list(path)})

    async def command(self, path: List[str], params: Optional[Dict[str, Any]] = None) -> Any:
        """Run an xCommand, e.g. ['Video', 'Matrix', 'Reset']."""
        return await self._request("xCommand/" + "/".join(path), params or {})

    async def subscribe(self, query: List[str], callback: Callable) -> int:
        """Register for feedback on a path and return the subscription id."""
        result = await self._request("xFeedback/Subscribe", {"Query": list(query), "NotifyCurrentValue": False})
        subscription_id = (result or {}).get('Id')
        if subscription_id is None:
            raise XapiError(f"Subscription to {'/'.join(query)} returned no id")
        self._feedback[subscription_id] = {'query': list(query), 'callback': callback}
        self.logger.debug(f"Subscribed to {'/'.join(query)} (id {subscription_id})")
        return subscription_id
