"""
Unit tests for the MQTT client wrapper (no broker required)
"""

from unittest.mock import Mock

import paho.mqtt.client as mqtt

from common.bridge_core.mqtt.client import MqttClient


def make_connected_client():
    client = MqttClient(client_id="test")
    client.client = Mock()
    client.client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_SUCCESS)
    client.client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
    client.connected = True
    return client


def test_subscribe_before_connect_is_deferred():
    client = MqttClient(client_id="test")
    callback = Mock()

    assert client.subscribe("sensors/#", callback, qos=0)
    assert client.subscriptions == {"sensors/#": 0}
    assert client.callbacks["sensors/#"] == [callback]


def test_restore_subscriptions_on_connect():
    client = make_connected_client()
    client.subscriptions = {"a/#": 1, "b": 0}

    client._on_connect(client.client, None, None, Mock(is_failure=False), None)

    client.client.subscribe.assert_any_call("a/#", 1)
    client.client.subscribe.assert_any_call("b", 0)


def test_dispatch_matches_wildcards_once():
    client = MqttClient(client_id="test")
    plus = Mock()
    hash_ = Mock()
    other = Mock()
    client.subscribe("sensors/+", plus)
    client.subscribe("sensors/#", hash_)
    client.subscribe("actuators/#", other)

    client.dispatch("sensors/s1", b"{}")

    plus.assert_called_once_with("sensors/s1", b"{}")
    hash_.assert_called_once_with("sensors/s1", b"{}")
    other.assert_not_called()


def test_callback_errors_are_isolated():
    client = MqttClient(client_id="test")
    failing = Mock(side_effect=RuntimeError("boom"))
    working = Mock()
    client.subscribe("t/#", failing)
    client.subscribe("t/+", working)

    client.dispatch("t/x", b"1")

    working.assert_called_once()


def test_publish_requires_connection():
    client = MqttClient(client_id="test")

    assert client.publish("t", b"x") is False


def test_publish_bytes_and_dict():
    client = make_connected_client()

    assert client.publish("t", b"raw", qos=0, retain=True)
    client.client.publish.assert_called_with("t", b"raw", qos=0, retain=True)

    assert client.publish("t", {"a": 1})
    client.client.publish.assert_called_with("t", '{"a": 1}', qos=1, retain=False)
    assert client.get_stats()["messages_sent"] == 2


def test_unexpected_disconnect_marks_disconnected():
    client = make_connected_client()

    client._on_disconnect(client.client, None, None, Mock(is_failure=True), None)

    assert not client.is_connected()
