"""
Unit tests for the configuration manager and settings models
"""

import json

import pytest

from common.bridge_core.config import (
    BridgeSettings,
    ConfigManager,
    OperationMode,
    ReactionSettings,
    SourceSettings,
    build_settings,
    load_settings,
)
from common.bridge_core.errors import ConfigurationError

CONFIG_YAML = """
mqtt:
  broker: broker.local
  port: 1884
source:
  id: sensors
  topic: sensors/#
  mode: INSERT
reaction:
  id: alerts
  topic_template: devices/{{device_id}}/alert
  payload_template: '{"command":"shutdown","reason":"{{temp}}"}'
  queries: [hot, hot, cold]
logging:
  level: debug
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "bridge.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return str(path)


class TestConfigManager:
    def test_defaults_without_file(self, monkeypatch):
        monkeypatch.setattr(ConfigManager, "DEFAULT_LOCATIONS", ())
        manager = ConfigManager(environ={})

        assert manager.config_path is None
        assert manager.get("mqtt.port") == 1883
        assert manager.get("logging.level") == "INFO"
        assert manager.get("missing.key", "fallback") == "fallback"

    def test_yaml_file_overrides_defaults(self, config_file):
        manager = ConfigManager(config_file, environ={})

        assert manager.get("mqtt.broker") == "broker.local"
        assert manager.get("mqtt.port") == 1884
        assert manager.get("mqtt.keepalive") == 60
        assert manager.get(["source", "topic"]) == "sensors/#"

    def test_json_file(self, tmp_path):
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"source": {"id": "s", "topic": "t"}}), encoding="utf-8")

        manager = ConfigManager(str(path), environ={})

        assert manager.get("source.id") == "s"

    def test_environment_overrides_file(self, config_file):
        environ = {
            "MQTT_BRIDGE_MQTT__PORT": "1999",
            "MQTT_BRIDGE_SOURCE__ID_FIELD": "device",
            "MQTT_BRIDGE_REACTION__RETAIN": "yes",
            "UNRELATED": "x",
        }

        manager = ConfigManager(config_file, environ=environ)

        assert manager.get("mqtt.port") == 1999
        assert manager.get("source.id_field") == "device"
        assert manager.get("reaction.retain") is True

    def test_missing_file_is_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(str(tmp_path / "nope.yaml"), environ={})

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "bridge.ini"
        path.write_text("[mqtt]", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager(str(path), environ={})

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "bridge.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager(str(path), environ={})

    def test_set_and_to_dict_copy(self, config_file):
        manager = ConfigManager(config_file, environ={})
        manager.set("source.node_label", "Sensor")

        snapshot = manager.to_dict()
        snapshot["source"]["node_label"] = "changed"

        assert manager.get("source.node_label") == "Sensor"


class TestSettings:
    def test_load_settings_from_file(self, config_file):
        settings = load_settings(config_file)

        assert settings.mqtt.broker == "broker.local"
        assert settings.source.mode is OperationMode.INSERT
        assert settings.source.client_id == "bridge-source-sensors"
        assert settings.reaction.queries == ["hot", "cold"]
        assert settings.reaction.client_id == "bridge-reaction-alerts"
        assert settings.logging.level == "DEBUG"

    def test_source_defaults(self):
        source = SourceSettings(id="s", topic="t")

        assert source.node_label == "MqttMessage"
        assert source.id_field == "id"
        assert source.mode is OperationMode.UPSERT
        assert source.include_id_property is False

    @pytest.mark.parametrize(
        "overrides",
        [
            {"id": ""},
            {"topic": "  "},
            {"id_field": "a.b"},
            {"id_field": ""},
            {"node_label": ""},
            {"mode": "merge"},
        ],
    )
    def test_invalid_source_settings(self, overrides):
        values = {"source": {"id": "s", "topic": "t", **overrides}}

        with pytest.raises(ConfigurationError):
            build_settings(values)

    def test_batched_reaction_may_use_batch_fields(self):
        reaction = ReactionSettings(id="r", topic_template="results/{{query_id}}/{{sequence}}")

        assert reaction.payload_template is None

    @pytest.mark.parametrize(
        "reaction",
        [
            {"id": "r", "topic_template": ""},
            {"id": "r", "topic_template": "devices/{{device_id}}"},
            {"id": "r", "topic_template": "a/{{", "payload_template": "x"},
            {"id": "r", "topic_template": "a", "payload_template": "{{ bad"},
            {"id": "", "topic_template": "a"},
        ],
    )
    def test_invalid_reaction_settings(self, reaction):
        with pytest.raises(ConfigurationError):
            build_settings({"reaction": reaction})

    def test_invalid_mqtt_settings(self):
        with pytest.raises(ConfigurationError):
            build_settings({"mqtt": {"port": 70000}})

    def test_invalid_log_level(self):
        with pytest.raises(ConfigurationError):
            build_settings({"logging": {"level": "LOUD"}})

    def test_require_sections(self):
        settings = BridgeSettings()

        with pytest.raises(ConfigurationError):
            settings.require_source()
        with pytest.raises(ConfigurationError):
            settings.require_reaction()


class TestNumericValues:
    def test_numeric_env_password(self, config_file):
        manager = ConfigManager(config_file, environ={"MQTT_BRIDGE_MQTT__PASSWORD": "123456"})

        settings = build_settings(manager.to_dict())

        assert settings.mqtt.password == "123456"

    def test_numeric_yaml_ids(self, tmp_path):
        path = tmp_path / "bridge.yaml"
        path.write_text(
            "source:\n  id: 42\n  topic: sensors/#\n"
            "reaction:\n  id: 7\n  topic_template: out\n  queries: [1, hot]\n",
            encoding="utf-8",
        )

        settings = load_settings(str(path))

        assert settings.source.id == "42"
        assert settings.source.client_id == "bridge-source-42"
        assert settings.reaction.id == "7"
        assert settings.reaction.queries == ["1", "hot"]
