"""
Ingestion mapper: turns one MQTT message into one graph change operation.

The decision between Create and Update is a pure function of the operation
mode and prior observation of the entity id (decide_operation). The only
side effect of mapping is recording the id in the source's
IdentityRegistry, and that happens after the message has been fully
validated, so a rejected message never touches the registry.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple, Union

from ..config.config_model import SourceSettings
from ..errors import MapError, MissingIdField, ParseError, UnsupportedPropertyShape
from .models import ChangeKind, ChangeOp, CreateOp, OperationMode, PropertyValue, UpdateOp
from .registry import IdentityRegistry

logger = logging.getLogger(__name__)


def _reject_constant(name: str):
    raise ValueError(f"non-finite number literal '{name}' is not valid JSON")


def parse_payload(payload: Union[bytes, str], topic: Optional[str] = None) -> Dict[str, Any]:
    """
    Decodes a payload into a JSON object.

    Args:
        payload: Raw message payload (UTF-8 JSON)
        topic: Topic for error reporting

    Returns:
        Dict with the top-level members

    Raises:
        ParseError: Payload is not UTF-8, not JSON or not an object
    """
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        document = json.loads(text, parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"payload is not valid JSON: {e}", topic) from e

    if not isinstance(document, dict):
        raise ParseError(
            f"payload must be a JSON object, got {type(document).__name__}", topic
        )
    return document


def normalize_entity_id(value: Any) -> Optional[str]:
    """
    Brings an id value into its canonical string form.

    Numerically equal ids collapse to the same string (42, 42.0 -> "42").

    Args:
        value: Raw JSON value of the id field

    Returns:
        Canonical id string, or None if the value is not a usable scalar
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return None


def extract_entity_id(document: Dict[str, Any], id_field: str, topic: Optional[str] = None) -> str:
    """
    Reads and normalizes the configured id field.

    Raises:
        MissingIdField: Field absent, null or not a scalar
    """
    if id_field not in document:
        raise MissingIdField(id_field, topic)

    value = document[id_field]
    if value is None:
        raise MissingIdField(id_field, topic, reason="null")

    entity_id = normalize_entity_id(value)
    if entity_id is None:
        raise MissingIdField(id_field, topic, reason=f"not a scalar ({type(value).__name__})")
    return entity_id


def build_properties(
    document: Dict[str, Any],
    id_field: str,
    include_id: bool = False,
    topic: Optional[str] = None,
) -> Dict[str, PropertyValue]:
    """
    Builds the property map from the top-level scalar members.

    Raises:
        UnsupportedPropertyShape: A member holds a nested object or array
    """
    properties: Dict[str, PropertyValue] = {}
    for key, value in document.items():
        if key == id_field and not include_id:
            continue
        if isinstance(value, dict):
            raise UnsupportedPropertyShape(key, "object", topic)
        if isinstance(value, list):
            raise UnsupportedPropertyShape(key, "array", topic)
        properties[key] = value
    return properties


def decide_operation(mode: OperationMode, already_seen: bool) -> ChangeKind:
    """
    Decides which change operation a message produces.

    Args:
        mode: Operation mode of the source
        already_seen: Whether the entity id was observed before

    Returns:
        ChangeKind.CREATE or ChangeKind.UPDATE
    """
    if mode is OperationMode.INSERT:
        return ChangeKind.CREATE
    if mode is OperationMode.UPDATE:
        return ChangeKind.UPDATE
    return ChangeKind.UPDATE if already_seen else ChangeKind.CREATE


def map_message(
    topic: str,
    payload: Union[bytes, str],
    settings: SourceSettings,
    registry: IdentityRegistry,
) -> ChangeOp:
    """
    Maps one inbound message to a change operation.

    Args:
        topic: Topic the message arrived on
        payload: Raw payload bytes
        settings: Source settings (id_field, node_label, mode)
        registry: Identity registry of the source instance

    Returns:
        CreateOp or UpdateOp

    Raises:
        MapError: ParseError, MissingIdField or UnsupportedPropertyShape
    """
    document = parse_payload(payload, topic)
    entity_id = extract_entity_id(document, settings.id_field, topic)
    properties = build_properties(
        document, settings.id_field, settings.include_id_property, topic
    )

    mode = settings.mode
    if mode is OperationMode.UPSERT:
        already_seen = not registry.check_and_record(entity_id)
    elif mode is OperationMode.INSERT:
        registry.record(entity_id)
        already_seen = False
    else:
        already_seen = True

    kind = decide_operation(mode, already_seen)
    logger.debug(f"{topic}: {kind.value} {settings.node_label}({entity_id})")

    if kind is ChangeKind.CREATE:
        return CreateOp(id=entity_id, label=settings.node_label, properties=properties)
    return UpdateOp(id=entity_id, properties=properties)


class IngestionMapper:
    """
    Mapper bound to one source instance and its identity registry.

    Usage:
        mapper = IngestionMapper(settings)
        change = mapper.map("sensors/s1", b'{"id": "s1", "temp": 21.5}')
    """

    def __init__(self, settings: SourceSettings, registry: Optional[IdentityRegistry] = None):
        self.settings = settings
        self.registry = registry if registry is not None else IdentityRegistry()

    @property
    def mode(self) -> OperationMode:
        return self.settings.mode

    def map(self, topic: str, payload: Union[bytes, str]) -> ChangeOp:
        """Maps a message, see map_message()."""
        return map_message(topic, payload, self.settings, self.registry)

    def try_map(self, topic: str, payload: Union[bytes, str]) -> Tuple[Optional[ChangeOp], Optional[Exception]]:
        """
        Result-style variant of map().

        Returns:
            (change, None) on success, (None, error) for a MapError
        """
        try:
            return self.map(topic, payload), None
        except MapError as e:
            return None, e
