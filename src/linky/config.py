"""Project-wide configuration constants and config-file loading.

Central place for the protocol constants and timeouts shared across
modules.  Import individual names where needed.

Example:
    >>> from linky.config import load_config, READ_TIMEOUT_S
    >>> cfg = load_config("linky.toml", "elastic")
    >>> cfg["destination"]
    'linky'
"""

import tomllib

# -- Device protocol ---------------------------------------------------------

DISCOVERY_PORT = 51
DISCOVERY_PROBE = b"LinkyPIC"
# Attempts per local address, each waiting DISCOVERY_TIMEOUT_S for a reply.
DISCOVERY_ATTEMPTS = 5
DISCOVERY_TIMEOUT_S = 1.5

TELEMETRY_PORT = 561
# No data at all for this long means a stuck link.
READ_TIMEOUT_S = 5.0
RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY_S = 2.0

# Consecutive invalid frames tolerated before forcing a reconnect.
INVALID_FRAME_LIMIT = 10

# -- Sinks -------------------------------------------------------------------

SINKS = ("elastic", "mqtt")

# Outstanding sink calls allowed behind a slow sink; further frames are dropped.
SINK_BACKLOG = 8

_SINK_DEFAULTS = {
    "elastic": {"url": "http://localhost:9200", "destination": "linky"},
    "mqtt": {"url": "mqtt://localhost:1883", "destination": "linky"},
}

# Name of the destination key inside each sink section.
_DESTINATION_KEY = {"elastic": "index", "mqtt": "topic"}


def load_config(path: str | None, sink: str) -> dict:
    """Read a TOML config file and validate its keys.

    The *sink* selects which section is read: ``[elastic]`` (``url``,
    ``index``) or ``[mqtt]`` (``url``, ``topic``).  The optional
    ``[device]`` section holds ``address`` (str), ``port`` (int) and
    ``discovery_port`` (int).  Every key is optional; with *path*
    ``None`` the defaults are returned.

    Returns:
        dict: Keys ``address`` (str or None), ``port``,
            ``discovery_port``, ``sink``, ``url`` and ``destination``.

    Raises:
        ValueError: If *sink* is unknown or a key has the wrong type.

    Example:
        >>> load_config(None, "mqtt")["url"]
        'mqtt://localhost:1883'
    """
    if sink not in SINKS:
        raise ValueError("sink must be 'elastic' or 'mqtt', got '%s'" % sink)

    raw: dict[str, object] = {}
    if path is not None:
        with open(path, "rb") as f:
            raw = tomllib.load(f)

    device = _optional_section(raw, "device")
    _optional_str(device, "address", "device")
    _optional_port(device, "port", "device")
    _optional_port(device, "discovery_port", "device")

    section = _optional_section(raw, sink)
    dest_key = _DESTINATION_KEY[sink]
    _optional_str(section, "url", sink)
    _optional_str(section, dest_key, sink)

    defaults = _SINK_DEFAULTS[sink]
    return {
        "address": device.get("address") or None,
        "port": device.get("port", TELEMETRY_PORT),
        "discovery_port": device.get("discovery_port", DISCOVERY_PORT),
        "sink": sink,
        "url": section.get("url", defaults["url"]),
        "destination": section.get(dest_key, defaults["destination"]),
    }


def _optional_section(raw: dict[str, object], name: str) -> dict:
    """Return the [name] table of *raw*, or an empty dict if absent."""
    if name not in raw:
        return {}
    section = raw[name]
    if not isinstance(section, dict):
        raise ValueError("[%s] must be a table" % name)
    return section


def _optional_str(raw: dict[str, object], key: str, section: str) -> None:
    """Validate that *key*, if present in *raw*, is a str."""
    if key in raw and not isinstance(raw[key], str):
        raise ValueError(
            "%s.%s must be str, got %s" % (section, key, type(raw[key]).__name__)
        )


def _optional_port(raw: dict[str, object], key: str, section: str) -> None:
    """Validate that *key*, if present in *raw*, is a port number."""
    if key not in raw:
        return
    value = raw[key]
    # bool is an int subclass; reject it explicitly.
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(
            "%s.%s must be int, got %s" % (section, key, type(value).__name__)
        )
    if not (1 <= value <= 65535):
        raise ValueError("%s.%s must be 1-65535, got %d" % (section, key, value))
