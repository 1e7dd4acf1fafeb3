"""
Result publisher: turns query results into MQTT publish tasks.

Two strategies, selected by whether a payload template is configured:

- templated: one task per result item, topic and payload rendered from the
  item fields plus the injected _changeKind discriminator. An item whose
  templates cannot be rendered is skipped and reported as a diagnostic.
- batched: one task per result, payload is the JSON document
  {"added": [...], "updated": [...], "removed": [...]}; the topic template
  may only reference batch-level fields.
"""

import json
import logging
from typing import Any, Dict, Optional

from ..config.config_model import ReactionSettings, compile_reaction_templates
from ..errors import RenderError
from ..template import TemplateRenderer
from .models import (
    PublishDiagnostic,
    PublishOutcome,
    PublishTask,
    QueryResult,
    ResultChangeKind,
)

logger = logging.getLogger(__name__)

CHANGE_KIND_FIELD = "_changeKind"


def encode_batch(result: QueryResult) -> bytes:
    """
    Serializes a result into the batched payload.

    Key order is fixed (added, updated, removed); empty arrays are kept.

    Raises:
        TypeError: An item holds a value that is not JSON serializable
    """
    document = {kind.value: list(result.items(kind)) for kind in ResultChangeKind}
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class ResultPublisher:
    """
    Renders query results into publish tasks for one reaction.

    Args:
        topic_template: Topic template (required)
        payload_template: Payload template; None selects batched mode
        renderer: Template renderer (default: TemplateRenderer)

    Raises:
        ConfigurationError: Empty/malformed template, or an item-referencing
            topic template in batched mode
    """

    def __init__(
        self,
        topic_template: str,
        payload_template: Optional[str] = None,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.renderer = renderer or TemplateRenderer()
        self.topic_template, self.payload_template = compile_reaction_templates(
            topic_template, payload_template
        )

    @classmethod
    def from_settings(cls, settings: ReactionSettings) -> "ResultPublisher":
        return cls(settings.topic_template, settings.payload_template)

    @property
    def templated(self) -> bool:
        return self.payload_template is not None

    def publish(self, result: QueryResult) -> PublishOutcome:
        """
        Produces the publish tasks for one query result.

        Args:
            result: Query result notification

        Returns:
            PublishOutcome with tasks and skipped-item diagnostics
        """
        if self.templated:
            return self._publish_templated(result)
        return self._publish_batched(result)

    def _publish_templated(self, result: QueryResult) -> PublishOutcome:
        outcome = PublishOutcome()

        for kind in ResultChangeKind:
            for index, item in enumerate(result.items(kind)):
                context: Dict[str, Any] = dict(item)
                context[CHANGE_KIND_FIELD] = kind.value
                try:
                    topic = self.renderer.render(self.topic_template, context)
                    payload = self.renderer.render(self.payload_template, context)
                except RenderError as e:
                    logger.debug(f"Skipping {kind.value}[{index}]: {e}")
                    outcome.diagnostics.append(PublishDiagnostic(e, kind, index))
                    continue
                outcome.tasks.append(PublishTask(topic, payload.encode("utf-8")))

        return outcome

    def _publish_batched(self, result: QueryResult) -> PublishOutcome:
        # Unset batch fields render as empty strings
        context = {"query_id": result.query_id, "sequence": result.sequence}
        topic = self.renderer.render(self.topic_template, context)
        return PublishOutcome(tasks=[PublishTask(topic, encode_batch(result))])
