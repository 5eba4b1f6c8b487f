"""Tibber ingress module - live measurements via GraphQL WebSocket subscription"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import requests
import websockets

from sources.base import (
    ConnectFailed,
    DiscoveryError,
    MeasurementSink,
    ReadFailed,
    SessionTimeout,
)
from sources.dispatcher import MeasurementDispatcher, MessageKind, classify_message

logger = logging.getLogger(__name__)

GQL_HTTP_ENDPOINT = "https://api.tibber.com/v1-beta/gql"
USER_AGENT = "Tibber-Influx-Bridge/0.1.0"

GRAPHQL_TRANSPORT_WS = "graphql-transport-ws"
GRAPHQL_WS = "graphql-ws"
SUBPROTOCOLS = (GRAPHQL_TRANSPORT_WS, GRAPHQL_WS)

# Seconds without a frame before the session is considered dead
READ_TIMEOUT = 10.0

DISCOVERY_QUERY = """
{
  viewer {
    websocketSubscriptionUrl
    homes {
      id
      appNickname
      features {
        realTimeConsumptionEnabled
      }
    }
  }
}
"""


@dataclass(frozen=True)
class HomeInfo:
    """Where and for which home to subscribe, as reported by the HTTP API."""
    websocket_url: str
    home_id: str
    nickname: Optional[str] = None


def discover_home(
    token: str,
    endpoint: str = GQL_HTTP_ENDPOINT,
    user_agent: str = USER_AGENT,
    timeout: float = 10,
) -> HomeInfo:
    """
    HTTP bootstrap.
    Fetch the WebSocket URL and the first home with a real-time meter (Pulse).

    Raises:
        DiscoveryError: request failed, or no URL/home in the response.
    """
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "User-Agent": user_agent
    }

    try:
        response = requests.post(
            endpoint,
            json={"query": DISCOVERY_QUERY},
            headers=headers,
            timeout=timeout
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Tibber API: HTTP bootstrap failed: {e}")
        raise DiscoveryError(f"HTTP bootstrap failed: {e}") from e

    viewer = (data.get("data") or {}).get("viewer") or {}
    websocket_url = viewer.get("websocketSubscriptionUrl")
    homes = viewer.get("homes") or []

    if not websocket_url:
        raise DiscoveryError("No WebSocket URL received")

    # Find the first home with an active Pulse
    for home in homes:
        if (home.get("features") or {}).get("realTimeConsumptionEnabled"):
            nickname = home.get("appNickname")
            logger.info(f"Tibber API: Found home {nickname or 'Home'} ({home['id']})")
            return HomeInfo(websocket_url=websocket_url, home_id=home["id"], nickname=nickname)

    raise DiscoveryError("No home with Pulse found (realTimeConsumptionEnabled=True)")


class TibberSession:
    """
    One WebSocket subscription to Tibber's liveMeasurement feed.

    run() connects, sends the prepared connection_init and subscribe frames,
    then forwards every measurement to the sink until the connection fails.
    It never returns normally: each outcome that ends the session is raised
    as a SessionError subclass and the caller decides when to reconnect.

    Outbound send failures are logged but do not end the session; only
    inbound failures (read error, read timeout) do.
    """

    def __init__(
        self,
        endpoint: str,
        sink: MeasurementSink,
        subprotocol: str = GRAPHQL_TRANSPORT_WS,
        read_timeout: float = READ_TIMEOUT,
        user_agent: str = USER_AGENT,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize a Tibber session.

        Args:
            endpoint: wss:// subscription URL
            sink: Destination for measurement points
            subprotocol: graphql-transport-ws or graphql-ws, must match the server
            read_timeout: Seconds to wait for a frame before giving up
            user_agent: User-Agent header for the upgrade request
            logger: Logger to report to (default: module logger)
        """
        if subprotocol not in SUBPROTOCOLS:
            raise ValueError(f"Unsupported subprotocol: {subprotocol}")

        self.endpoint = endpoint
        self.subprotocol = subprotocol
        self.read_timeout = read_timeout
        self.user_agent = user_agent
        self.logger = logger or logging.getLogger(__name__)
        self.dispatcher = MeasurementDispatcher(sink, logger=self.logger)
        self.frames_received = 0

    async def run(self, connection_message: str, subscription_message: str) -> None:
        """
        Drive the session until it fails.

        Raises:
            ConnectFailed: connection or upgrade handshake failed
            ReadFailed: transport error while streaming
            SessionTimeout: no frame within read_timeout seconds
        """
        self.logger.info(f"Tibber API: Connect WebSocket {self.endpoint}")

        try:
            websocket = await websockets.connect(
                self.endpoint,
                subprotocols=[self.subprotocol],
                user_agent_header=self.user_agent,
                additional_headers={"Cache-Control": "no-cache"},
            )
        except (OSError, TimeoutError, websockets.WebSocketException) as e:
            self.logger.error(f"Tibber API: Error on connect: {e}")
            raise ConnectFailed(str(e)) from e

        try:
            self._log_handshake(websocket)

            # --- STEP A: Connection Init, STEP B: Subscribe ---
            # The server acks asynchronously; the ack is handled in the read loop.
            await self._send(websocket, connection_message, "connection")
            await self._send(websocket, subscription_message, "subscription")
            self.logger.info("Tibber API: Subscription request sent")

            # --- STEP C: Data Loop ---
            while True:
                frame = await self._read(websocket)
                await self.handle_frame(frame)
        finally:
            await websocket.close()

    def _log_handshake(self, websocket) -> None:
        response = websocket.response
        self.logger.info("Tibber API: Connected to the server")
        if response is None:
            return
        self.logger.info(f"Response HTTP code: {response.status_code}")
        self.logger.info("Response contains the following headers:")
        for name in response.headers.keys():
            self.logger.info(f"* {name}")

    async def _send(self, websocket, message: str, what: str) -> None:
        try:
            await websocket.send(message)
        except websockets.WebSocketException as e:
            self.logger.error(f"Tibber API: Failed to request {what}: {e}")

    async def _read(self, websocket) -> str | bytes:
        # wait_for cancels the pending recv(); frames that arrive later stay
        # buffered in the connection and are dropped when it is closed.
        try:
            return await asyncio.wait_for(websocket.recv(), timeout=self.read_timeout)
        except TimeoutError as e:
            self.logger.error(f"Tibber API: No message within {self.read_timeout}s")
            raise SessionTimeout(f"no frame within {self.read_timeout}s") from e
        except (OSError, websockets.WebSocketException) as e:
            self.logger.error(f"Tibber API: Error on read: {e}")
            raise ReadFailed(str(e)) from e

    async def handle_frame(self, frame: str | bytes) -> None:
        """Classify one inbound frame and forward its measurement, if any."""
        self.frames_received += 1
        message = classify_message(frame)

        if message.kind is MessageKind.UNPARSEABLE:
            self.logger.error(f"Tibber API: Failed to parse message: {message.error}")
        elif message.kind is MessageKind.ACK:
            self.logger.info("Tibber API: Subscription request acknowledged")
        elif message.kind is MessageKind.ANOMALY:
            self.logger.warning(f"Tibber API: Anomalous response type: {message.msg_type}")
            self.logger.debug(f"Response: {message.raw}")
        else:
            written = await self.dispatcher.dispatch(message.measurement)
            self.logger.debug(f"Tibber API: Received {frame!r}, wrote {len(written)} points")
