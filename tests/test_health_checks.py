"""
Tests for Valkey backed health checks
"""
import pytest
import valkey
from unittest.mock import MagicMock, patch
from chaos_orchestrator.utils.health_checks import valkey_client, valkey_health_check, valkey_key_health_check


@patch('chaos_orchestrator.utils.health_checks.valkey.Valkey')
def test_ping_passes(mock_valkey_class):
    client = MagicMock()
    client.ping.return_value = True
    mock_valkey_class.return_value = client

    check = valkey_health_check("cache", 6379, timeout=0.5)
    check()

    assert check.__name__ == "valkey_ping_cache_6379"
    assert mock_valkey_class.call_args.kwargs['socket_timeout'] == 0.5
    client.close.assert_called_once()


@patch('chaos_orchestrator.utils.health_checks.valkey.Valkey')
def test_ping_fails(mock_valkey_class):
    client = MagicMock()
    client.ping.return_value = False
    mock_valkey_class.return_value = client

    with pytest.raises(ConnectionError, match="did not answer PING"):
        valkey_health_check("cache", 6379)()
    client.close.assert_called_once()


@patch('chaos_orchestrator.utils.health_checks.valkey.Valkey')
def test_key_check(mock_valkey_class):
    client = MagicMock()
    client.get.return_value = "up"
    mock_valkey_class.return_value = client

    valkey_key_health_check("cache", 6379, "heartbeat:checkout", "up")()

    client.get.return_value = "down"
    with pytest.raises(ValueError, match="heartbeat:checkout"):
        valkey_key_health_check("cache", 6379, "heartbeat:checkout", "up")()


@patch('chaos_orchestrator.utils.health_checks.valkey.Valkey')
def test_close_errors_ignored(mock_valkey_class):
    client = MagicMock()
    client.close.side_effect = valkey.ValkeyError("already closed")
    mock_valkey_class.return_value = client

    with valkey_client("cache", 6379, 1.0) as c:
        assert c is client
