"""linky daemon -- reads the LinkyPIC telemetry and forwards valid frames.

Finds the device (or uses the configured address), keeps a TCP
connection to it and sends every valid frame to one sink:
Elasticsearch or an MQTT topic.  Shuts down cleanly on SIGINT or
SIGTERM.

Example:
    Run from the command line::

        linky
        linky linky.toml --sink mqtt -v
        linky -l 192.168.1.40 --syslog
"""

import argparse
import ipaddress
import logging
import logging.handlers
import signal
import sys
import threading

from linky.collector import Collector
from linky.config import load_config
from linky.connection import Connection, ReconnectError
from linky.discovery import DiscoveryError, discover
from linky.elastic_sink import ElasticSink
from linky.mqtt_sink import MqttSink
from linky.paths import resolve_config

log = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_SYSLOG_FORMAT = "linky[%(process)d]: %(levelname)s %(name)s: %(message)s"
_SYSLOG_SOCKET = "/dev/log"

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def setup_logging(verbose: bool, syslog: bool) -> None:
    """Configure the root logger for the console or the local syslog."""
    level = logging.DEBUG if verbose else logging.INFO
    if syslog:
        handler = logging.handlers.SysLogHandler(
            address=_SYSLOG_SOCKET,
            facility=logging.handlers.SysLogHandler.LOG_DAEMON,
        )
        handler.setFormatter(logging.Formatter(_SYSLOG_FORMAT))
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(format=_LOG_FORMAT, level=level)


def open_sink(cfg: dict):
    """Create the sink selected by ``cfg["sink"]``."""
    if cfg["sink"] == "mqtt":
        return MqttSink(cfg["url"], cfg["destination"])
    return ElasticSink(cfg["url"], cfg["destination"])


def run_collector(connection, sink, shutdown: threading.Event) -> int:
    """Forward frames until *shutdown* is set.

    Returns the number of frames handed to the sink.

    Raises:
        ReconnectError: If the device cannot be reached any more.

    Example:
        >>> run_collector(connection, sink, ev)
        42
    """
    collector = Collector(connection, sink)
    try:
        return collector.run(shutdown)
    finally:
        collector.close()
        log.info(
            "%d frames forwarded, %d stored, %d failed, %d dropped",
            collector.forwarded, collector.sent, collector.failed,
            collector.dropped,
        )


def _parse_address(text: str) -> str:
    """argparse type for ``--address``: a dotted IPv4 address."""
    try:
        return str(ipaddress.IPv4Address(text))
    except ValueError:
        raise argparse.ArgumentTypeError("not an IPv4 address: %s" % text) from None


def main() -> None:
    """CLI entry point -- parse args, load config, run the daemon."""
    _shutdown.clear()

    parser = argparse.ArgumentParser(description="LinkyPIC TIC collector")
    parser.add_argument(
        "config", nargs="?", help="TOML config file (default: built-in defaults)",
    )
    parser.add_argument(
        "--sink", choices=("elastic", "mqtt"), default="elastic",
        help="where to send valid frames (default: elastic)",
    )
    parser.add_argument(
        "-l", "--address", type=_parse_address,
        help="LinkyPIC IPv4 address (default: broadcast discovery)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    parser.add_argument(
        "--syslog", action="store_true", help="log to syslog instead of stderr",
    )
    args = parser.parse_args()

    setup_logging(args.verbose, args.syslog)

    config_path = resolve_config(args.config) if args.config else None
    cfg = load_config(config_path, args.sink)
    if args.address:
        cfg["address"] = args.address

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        address = cfg["address"] or str(discover(cfg["discovery_port"]))
    except DiscoveryError as exc:
        log.critical("%s", exc, exc_info=exc)
        sys.exit(1)

    log.info(
        "starting: device=%s:%d sink=%s url=%s destination=%s",
        address, cfg["port"], cfg["sink"], cfg["url"], cfg["destination"],
    )
    sink = open_sink(cfg)
    connection = Connection(address, cfg["port"])
    try:
        run_collector(connection, sink, _shutdown)
    except ReconnectError as exc:
        log.critical("%s", exc, exc_info=exc)
        sys.exit(1)
    finally:
        connection.close()
        sink.close()
        log.info("shutting down")


if __name__ == "__main__":
    main()
