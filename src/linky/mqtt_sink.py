"""MQTT sink: publish each valid frame as JSON on one topic.

The broker URL has the form ``mqtt://[user[:password]@]host[:port]``.
paho's network thread owns the broker connection and reconnects on
its own.  A publish that paho refuses is logged and the frame dropped.

Example:
    >>> from linky.mqtt_sink import MqttSink
    >>> sink = MqttSink("mqtt://localhost:1883", "linky/frames")
    >>> sink.send(frame)
    True
    >>> sink.close()
"""

import json
import logging
from typing import Any
from urllib.parse import unquote, urlparse

from paho.mqtt import client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from linky.frame import Frame

log = logging.getLogger(__name__)

_DEFAULT_PORT = 1883
_KEEPALIVE_S = 60
_QOS = 1
_RECONNECT_MIN_S = 1
_RECONNECT_MAX_S = 120


class MqttSink:
    """Publish frames to an MQTT topic.

    Args:
        url: Broker URL (``mqtt://`` scheme).
        topic: Topic every frame is published to.
        qos: MQTT quality of service for the publications.

    Raises:
        ValueError: If *url* is not an ``mqtt://`` URL.
    """

    def __init__(self, url: str, topic: str, qos: int = _QOS):
        parsed = urlparse(url)
        if parsed.scheme != "mqtt" or not parsed.hostname:
            raise ValueError("broker URL must look like mqtt://host[:port], got '%s'" % url)

        self._host = parsed.hostname
        self._port = parsed.port or _DEFAULT_PORT
        self._topic = topic
        self._qos = qos
        self._connected = False

        self.client = mqtt.Client(callback_api_version=CallbackAPIVersion.VERSION2)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        if parsed.username:
            self.client.username_pw_set(
                unquote(parsed.username), unquote(parsed.password or "")
            )
        self.client.reconnect_delay_set(_RECONNECT_MIN_S, _RECONNECT_MAX_S)
        self.client.connect_async(self._host, self._port, _KEEPALIVE_S)
        self.client.loop_start()

    @property
    def connected(self) -> bool:
        return self._connected

    def _on_connect(self, client: mqtt.Client, userdata: Any,
                    flags: Any, reason_code: Any, properties: Any) -> None:
        """Track broker connection success."""
        if reason_code.is_failure:
            log.warning("MQTT connection refused: %s", reason_code)
            return
        self._connected = True
        log.info("MQTT connected to %s:%d", self._host, self._port)

    def _on_disconnect(self, client: mqtt.Client, userdata: Any,
                       flags: Any, reason_code: Any, properties: Any) -> None:
        """Track broker disconnection; paho reconnects by itself."""
        self._connected = False
        log.warning("MQTT disconnected: %s", reason_code)

    def send(self, frame: Frame) -> bool:
        """Publish *frame*; True if paho accepted the message."""
        if not self._connected:
            # paho would queue the message in memory until the broker returns
            log.warning("MQTT broker not connected, frame for %s dropped", self._topic)
            return False
        payload = json.dumps(frame.to_document())
        info = self.client.publish(self._topic, payload=payload, qos=self._qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            log.warning(
                "MQTT publish to %s failed: %s", self._topic, mqtt.error_string(info.rc)
            )
            return False
        log.debug("published %d bytes to %s", len(payload), self._topic)
        return True

    def close(self) -> None:
        """Disconnect from the broker and stop the network thread."""
        self.client.disconnect()
        self.client.loop_stop()

    def __enter__(self) -> "MqttSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
