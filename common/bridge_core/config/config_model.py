"""
Central settings classes for the MQTT graph bridge.

Uses Pydantic for validation. Values are collected by the ConfigManager
(defaults, YAML/JSON file, environment) and validated here, so every
configuration error surfaces before the first message is processed.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigurationError
from ..template import Template
from .manager import ConfigManager

# Fields available to a topic template when no payload template is configured
BATCH_CONTEXT_FIELDS = ("query_id", "sequence")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class OperationMode(Enum):
	"""How a source instance turns messages into change operations."""
	UPSERT = "upsert"  # Create for unseen ids, Update afterwards
	INSERT = "insert"  # always Create
	UPDATE = "update"  # always Update, registry untouched


def compile_reaction_templates(
	topic_template: str, payload_template: Optional[str] = None
) -> Tuple[Template, Optional[Template]]:
	"""
	Compiles and cross-checks the templates of a reaction.

	Args:
		topic_template: Topic template (required)
		payload_template: Optional payload template

	Returns:
		Tuple of compiled topic and payload template

	Raises:
		ConfigurationError: Empty or malformed template, or a batched-mode
			topic template that references item fields
	"""
	if not topic_template or not topic_template.strip():
		raise ConfigurationError("topic_template is required")

	topic = Template(topic_template)
	payload = Template(payload_template) if payload_template is not None else None

	if payload is None:
		unknown = [f for f in topic.fields if f not in BATCH_CONTEXT_FIELDS]
		if unknown:
			raise ConfigurationError(
				f"topic template references item fields {unknown} but no payload template "
				f"is configured; batched mode only provides {list(BATCH_CONTEXT_FIELDS)}"
			)
	return topic, payload


def _require_text(value: str, name: str) -> str:
	if not value or not value.strip():
		raise ValueError(f"{name} must not be empty")
	return value


class MQTTSettings(BaseModel):
	# YAML and env values arrive typed; 123456 is a valid password
	model_config = ConfigDict(coerce_numbers_to_str=True)

	broker: str = "localhost"
	port: int = Field(1883, ge=1, le=65535)
	username: Optional[str] = None
	password: Optional[str] = None
	keepalive: int = Field(60, gt=0)
	qos: int = Field(1, ge=0, le=2)


class SourceSettings(BaseModel):
	model_config = ConfigDict(coerce_numbers_to_str=True)

	id: str
	topic: str
	client_id: Optional[str] = None
	node_label: str = "MqttMessage"
	id_field: str = "id"
	mode: OperationMode = OperationMode.UPSERT
	include_id_property: bool = False

	@field_validator("id", "topic", "node_label")
	@classmethod
	def validate_not_empty(cls, v, info):
		return _require_text(v, info.field_name)

	@field_validator("id_field")
	@classmethod
	def validate_id_field(cls, v):
		_require_text(v, "id_field")
		if "." in v:
			raise ValueError(f"id_field must be a top-level key without dots: {v!r}")
		return v

	@field_validator("mode", mode="before")
	@classmethod
	def normalize_mode(cls, v):
		if isinstance(v, str):
			return v.strip().lower()
		return v

	@model_validator(mode="after")
	def default_client_id(self):
		if not self.client_id:
			self.client_id = f"bridge-source-{self.id}"
		return self


class ReactionSettings(BaseModel):
	model_config = ConfigDict(coerce_numbers_to_str=True)

	id: str
	topic_template: str
	payload_template: Optional[str] = None
	queries: List[str] = Field(default_factory=list)
	client_id: Optional[str] = None
	retain: bool = False

	@field_validator("id")
	@classmethod
	def validate_id(cls, v):
		return _require_text(v, "id")

	@field_validator("queries")
	@classmethod
	def dedupe_queries(cls, v):
		seen = []
		for name in v:
			if name not in seen:
				seen.append(name)
		return seen

	@model_validator(mode="after")
	def validate_templates(self):
		compile_reaction_templates(self.topic_template, self.payload_template)
		if not self.client_id:
			self.client_id = f"bridge-reaction-{self.id}"
		return self


class LoggingSettings(BaseModel):
	level: str = "INFO"
	file: Optional[str] = None
	format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

	@field_validator("level", mode="before")
	@classmethod
	def validate_level(cls, v):
		level = str(v).upper()
		if level not in LOG_LEVELS:
			raise ValueError(f"Invalid log level: {v}")
		return level


class BridgeSettings(BaseModel):
	mqtt: MQTTSettings = Field(default_factory=MQTTSettings)
	source: Optional[SourceSettings] = None
	reaction: Optional[ReactionSettings] = None
	logging: LoggingSettings = Field(default_factory=LoggingSettings)

	def require_source(self) -> SourceSettings:
		if self.source is None:
			raise ConfigurationError("missing 'source' configuration section")
		return self.source

	def require_reaction(self) -> ReactionSettings:
		if self.reaction is None:
			raise ConfigurationError("missing 'reaction' configuration section")
		return self.reaction


def build_settings(values: Dict[str, Any]) -> BridgeSettings:
	"""
	Validates a raw configuration dictionary.

	Raises:
		ConfigurationError: Validation failed
	"""
	try:
		return BridgeSettings.model_validate(values)
	except ValidationError as e:
		raise ConfigurationError(f"invalid configuration: {e}") from e


def load_settings(config_path: Optional[str] = None) -> BridgeSettings:
	"""
	Loads and validates the bridge configuration.

	Args:
		config_path: Path to a YAML/JSON file; None searches the default locations

	Returns:
		Validated BridgeSettings

	Raises:
		ConfigurationError: Validation failed
	"""
	return build_settings(ConfigManager(config_path).to_dict())
