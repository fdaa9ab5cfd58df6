"""
Health checks backed by Valkey connections
"""
import logging
import valkey
from contextlib import contextmanager
from ..interfaces import HealthCheck

logger = logging.getLogger(__name__)


@contextmanager
def valkey_client(host: str, port: int, timeout: float, decode_responses: bool = True):
    client = None
    try:
        client = valkey.Valkey(
            host=host,
            port=port,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=decode_responses
        )
        yield client
    finally:
        if client is not None:
            try:
                client.close()
            except valkey.ValkeyError as e:
                logger.debug(f"Error closing connection to {host}:{port}: {e}")


def valkey_health_check(host: str, port: int, timeout: float = 2.0) -> HealthCheck:
    """Health check that passes when the Valkey server answers PING"""

    def check() -> None:
        with valkey_client(host, port, timeout) as client:
            if not client.ping():
                raise ConnectionError(f"Valkey at {host}:{port} did not answer PING")

    check.__name__ = f"valkey_ping_{host}_{port}"
    return check


def valkey_key_health_check(host: str, port: int, key: str, expected: str, timeout: float = 2.0) -> HealthCheck:
    """Health check that passes when a key holds an expected value, e.g. a service heartbeat"""

    def check() -> None:
        with valkey_client(host, port, timeout) as client:
            value = client.get(key)
            if value != expected:
                raise ValueError(f"Key {key} on {host}:{port} is {value!r}, expected {expected!r}")

    check.__name__ = f"valkey_key_{key}"
    return check
