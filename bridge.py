import argparse
import asyncio
import logging
import logging.handlers
import netrc
import os
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv

from sources.base import DiscoveryError, SessionError
from sources.fields import Field, wire_labels
from sources.query import SubscriptionQueryBuilder
from sources.tibber import GRAPHQL_TRANSPORT_WS, READ_TIMEOUT, SUBPROTOCOLS, TibberSession, discover_home
from sinks.influxdb import InfluxSink

ENV_FILE = "tibber-influx-bridge.env"
LOG_FILE_NAME = "tibber-influx-bridge.log"
TOKEN_MACHINE = "api.tibber.com"

DEFAULT_FIELDS = [Field.POWER, Field.ACCUMULATED_CONSUMPTION_LAST_HOUR]

LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Everything resolved from the environment before the first session."""
    token: str
    influxdb_addr: str
    influxdb_db_name: str
    influxdb_token: str = ""
    influxdb_org: str = "-"
    api_endpoint: str | None = None
    home_id: str | None = None
    subprotocol: str = GRAPHQL_TRANSPORT_WS


def setup_logging(level_name: str | None = None, log_dir: str | None = None) -> None:
    """Log to stderr, and to a file rotated at midnight when log_dir is set."""
    level = LOG_LEVELS.get((level_name or "info").lower(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                Path(log_dir) / LOG_FILE_NAME, when="midnight", encoding="utf-8"
            )
        )

    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s - %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers,
        force=True,
    )


def read_token_file(path: str | None = None) -> str | None:
    """
    Fallback credential lookup in a netrc-format file.

    Uses the password of machine api.tibber.com, or of the default entry.
    """
    token_file = path or os.path.join(os.path.expanduser("~"), ".netrc")
    try:
        credentials = netrc.netrc(token_file).authenticators(TOKEN_MACHINE)
    except (OSError, netrc.NetrcParseError) as e:
        logger.error(f"Failed to read credentials from {token_file}: {e}")
        return None

    if credentials is None:
        logger.error(f"No entry for {TOKEN_MACHINE} in {token_file}")
        return None
    return credentials[2] or None


def get_token() -> str:
    token = os.getenv("TIBBER_TOKEN")
    if token:
        return token

    logger.info("TIBBER_TOKEN not set, attempting to read from file")
    token = read_token_file(os.getenv("TOKEN_FILE"))
    if not token:
        logger.error("TIBBER_TOKEN not set and fallback failed")
        sys.exit(1)
    return token


def get_settings() -> Settings:
    """Resolve configuration with hard fail on misconfiguration"""
    influxdb_addr = os.getenv("INFLUXDB_ADDR")
    if not influxdb_addr:
        logger.error(f"InfluxDB: INFLUXDB_ADDR not configured in {ENV_FILE}")
        sys.exit(1)
    influxdb_db_name = os.getenv("INFLUXDB_DB_NAME")
    if not influxdb_db_name:
        logger.error(f"InfluxDB: INFLUXDB_DB_NAME not configured in {ENV_FILE}")
        sys.exit(1)

    subprotocol = os.getenv("TIBBER_SUBPROTOCOL", GRAPHQL_TRANSPORT_WS)
    if subprotocol not in SUBPROTOCOLS:
        logger.error(f"Unknown TIBBER_SUBPROTOCOL: {subprotocol}")
        sys.exit(1)

    settings = Settings(
        token=get_token(),
        influxdb_addr=influxdb_addr,
        influxdb_db_name=influxdb_db_name,
        influxdb_token=os.getenv("INFLUXDB_TOKEN", ""),
        influxdb_org=os.getenv("INFLUXDB_ORG", "-"),
        api_endpoint=os.getenv("TIBBER_API_ENDPOINT") or None,
        home_id=os.getenv("HOME_ID") or None,
        subprotocol=subprotocol,
    )
    logger.info(f"INFLUXDB_ADDR: {settings.influxdb_addr}")
    logger.info(f"INFLUXDB_DB_NAME: {settings.influxdb_db_name}")
    return settings


def resolve_target(settings: Settings) -> tuple[str, str]:
    """Return (endpoint, home_id), asking the HTTP API for whatever is missing."""
    if settings.api_endpoint and settings.home_id:
        return settings.api_endpoint, settings.home_id

    try:
        home = discover_home(settings.token)
    except DiscoveryError as e:
        logger.error(f"Tibber API: {e}")
        sys.exit(1)

    return settings.api_endpoint or home.websocket_url, settings.home_id or home.home_id


class Backoff:
    """
    Exponential reconnect delay: initial, doubled per failure, capped.

    A session that stayed up for at least reset_after seconds starts the
    sequence over.
    """

    def __init__(self, initial: float = 1.0, maximum: float = 60.0, reset_after: float = 60.0):
        self.initial = initial
        self.maximum = maximum
        self.reset_after = reset_after
        self.current = initial

    def next_delay(self, session_duration: float) -> float:
        if session_duration >= self.reset_after:
            self.current = self.initial
        delay = self.current
        self.current = min(self.current * 2, self.maximum)
        return delay


async def run_forever(
    session_factory: Callable[[], TibberSession],
    connection_message: str,
    subscription_message: str,
    backoff: Backoff | None = None,
    max_sessions: int | None = None,
) -> None:
    """
    Run sessions back to back; every session starts a fresh subscription.

    Errors other than SessionError are logged and treated the same way.
    Only cancellation (or max_sessions, for tests) ends the loop.
    """
    backoff = backoff or Backoff()
    sessions = 0
    while max_sessions is None or sessions < max_sessions:
        sessions += 1
        session = session_factory()
        started = time.monotonic()
        try:
            await session.run(connection_message, subscription_message)
        except SessionError as e:
            delay = backoff.next_delay(time.monotonic() - started)
            logger.warning(
                f"Session ended after {session.frames_received} frames "
                f"({type(e).__name__}: {e}). Reconnecting in {delay:.0f}s..."
            )
        except Exception as e:
            delay = backoff.next_delay(time.monotonic() - started)
            logger.exception(f"Stream error: {e}. Reconnecting in {delay:.0f}s...")
        else:
            continue
        await asyncio.sleep(delay)


async def main(fields: list[Field], read_timeout: float = READ_TIMEOUT) -> None:
    settings = get_settings()
    endpoint, home_id = resolve_target(settings)
    logger.info(f"TIBBER_API_ENDPOINT: {endpoint}")
    logger.info(f"HOME_ID: {home_id}")

    request = SubscriptionQueryBuilder(settings.token, home_id).with_fields(*fields).build()
    logger.info(f"Subscribing to: {', '.join(str(field) for field in request.fields)}")

    sink = InfluxSink(
        url=settings.influxdb_addr,
        database=settings.influxdb_db_name,
        token=settings.influxdb_token,
        org=settings.influxdb_org,
    )

    def new_session() -> TibberSession:
        return TibberSession(
            endpoint,
            sink,
            subprotocol=settings.subprotocol,
            read_timeout=read_timeout,
        )

    task = asyncio.create_task(
        run_forever(new_session, request.connection(), request.subscription())
    )
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGTERM, task.cancel)

    try:
        await task
    except asyncio.CancelledError:
        logger.info("Shutting down.")
    finally:
        loop.remove_signal_handler(signal.SIGTERM)
        sink.close()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tibber live measurements to InfluxDB")
    parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        choices=wire_labels(),
        metavar="LABEL",
        help="Measurement field to subscribe to, repeatable "
             "(default: power, accumulatedConsumptionLastHour)"
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=READ_TIMEOUT,
        help=f"Seconds without data before reconnecting (default: {READ_TIMEOUT:.0f})"
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    # Load configuration from single .env file
    load_dotenv(ENV_FILE)
    setup_logging(os.getenv("LOG_LEVEL"), os.getenv("LOG_DIR"))

    args = parse_args()
    selected = [Field.from_label(label) for label in args.fields] if args.fields else DEFAULT_FIELDS

    try:
        asyncio.run(main(selected, args.read_timeout))
    except KeyboardInterrupt:
        logger.info("Script stopped by user.")
