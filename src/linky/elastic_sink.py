"""Elasticsearch sink: one document per valid frame.

Documents are posted to the ``_doc`` endpoint of the configured index
through the plain REST API.

Example:
    >>> from linky.elastic_sink import ElasticSink
    >>> with ElasticSink("http://localhost:9200", "linky") as sink:
    ...     sink.send(frame)
    True
"""

import logging

import requests

from linky.frame import Frame

log = logging.getLogger(__name__)

_TIMEOUT_S = 10


class ElasticSink:
    """Index frames as documents in an Elasticsearch index.

    Args:
        url: Base URL of the cluster (e.g. ``"http://localhost:9200"``).
        index: Index name.
        timeout_s: HTTP timeout per request.
    """

    def __init__(self, url: str, index: str, timeout_s: float = _TIMEOUT_S):
        self._endpoint = "%s/%s/_doc" % (url.rstrip("/"), index)
        self._timeout_s = timeout_s
        self._session = requests.Session()

    def send(self, frame: Frame) -> bool:
        """Index *frame*; True only if the cluster reports it created."""
        try:
            response = self._session.post(
                self._endpoint, json=frame.to_document(), timeout=self._timeout_s
            )
        except requests.RequestException as exc:
            log.warning("indexing to %s failed: %s", self._endpoint, exc)
            return False

        try:
            body = response.json()
        except ValueError:
            body = None
        result = body.get("result") if isinstance(body, dict) else None

        if result != "created":
            log.warning(
                "document not created (HTTP %d): %s",
                response.status_code, response.text,
            )
            return False

        log.debug("indexed frame captured at %s", frame.captured_at.isoformat())
        return True

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self) -> "ElasticSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
