"""
MQTT reaction service

Receives query results from the continuous query engine, renders them with
a ResultPublisher and publishes the resulting messages. Results may be
submitted from any thread; publishing happens on the event loop.
"""

import asyncio
from dataclasses import replace
import logging
from typing import Any, Dict, Optional

from common.bridge_core.config.config_model import MQTTSettings, ReactionSettings
from common.bridge_core.mqtt.client import MqttClient
from common.bridge_core.mqtt.service import MqttServiceBase
from common.bridge_core.reaction import PublishOutcome, QueryResult, ResultPublisher

logger = logging.getLogger(__name__)


class MqttReactionService(MqttServiceBase):
    """
    Reaction instance: one publisher, one MQTT connection.

    Args:
        settings: Reaction configuration
        mqtt_settings: Broker configuration
        client: Optional pre-built MQTT client
    """

    def __init__(
        self,
        settings: ReactionSettings,
        mqtt_settings: Optional[MQTTSettings] = None,
        client: Optional[MqttClient] = None,
    ):
        super().__init__(
            f"reaction_{settings.id}",
            mqtt_settings,
            client_id=settings.client_id,
            client=client,
        )
        self.settings = settings
        self.publisher = ResultPublisher.from_settings(settings)
        self.sequence = 0

        self._results: Optional[asyncio.Queue] = None

        self.stats = {
            "results_received": 0,
            "results_ignored": 0,
            "messages_published": 0,
            "publish_failures": 0,
            "render_errors": 0,
        }

    async def setup_mqtt_subscriptions(self):
        # Publish-only service
        pass

    async def start_mqtt(self) -> bool:
        self._results = asyncio.Queue()
        started = await super().start_mqtt()
        if started:
            self._tasks.append(asyncio.create_task(self._process_results()))
        return started

    def accepts(self, result: QueryResult) -> bool:
        """True if the result belongs to a subscribed query (all, if none configured)."""
        if not self.settings.queries:
            return True
        return result.query_id in self.settings.queries

    def submit(self, result: QueryResult):
        """
        Queues a result for publishing. Safe to call from any thread.

        Args:
            result: Query result from the query engine
        """
        if self._loop is None or self._results is None:
            raise RuntimeError(f"Reaction {self.settings.id} is not started")
        self._loop.call_soon_threadsafe(self._results.put_nowait, result)

    async def _process_results(self):
        while self._running:
            try:
                result = await asyncio.wait_for(self._results.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            try:
                await self.handle_query_result(result)
            except Exception as e:
                self.logger.error(f"Error handling query result: {e}")
            finally:
                self._results.task_done()

    async def drain(self):
        """Waits until every submitted result has been handled."""
        if self._results is not None and self._running:
            await self._results.join()

    async def handle_query_result(self, result: QueryResult) -> Optional[PublishOutcome]:
        """
        Renders and publishes one query result.

        Args:
            result: Query result from the query engine

        Returns:
            The publish outcome, or None if the result was ignored
        """
        self.stats["results_received"] += 1

        if not self.accepts(result):
            self.stats["results_ignored"] += 1
            self.logger.debug(f"Ignoring result of unsubscribed query {result.query_id}")
            return None

        self.sequence += 1
        result = replace(result, sequence=self.sequence)

        outcome = self.publisher.publish(result)

        for diagnostic in outcome.diagnostics:
            self.stats["render_errors"] += 1
            self.logger.warning(f"Reaction {self.settings.id}: {diagnostic}")

        for task in outcome.tasks:
            published = await self.publish(task.topic, task.payload, retain=self.settings.retain)
            if published:
                self.stats["messages_published"] += 1
            else:
                self.stats["publish_failures"] += 1

        self.logger.debug(
            f"Query {result.query_id} #{result.sequence}: "
            f"{len(outcome.tasks)} published, {len(outcome.diagnostics)} skipped"
        )
        return outcome

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(self.stats)
        status["sequence"] = self.sequence
        status["templated"] = self.publisher.templated
        return status
