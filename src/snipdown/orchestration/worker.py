"""The DOM-capable worker context of the three-context topology."""

from __future__ import annotations

import base64
import logging

from ..messaging import message_types as types
from ..messaging.bus import ExecutionContext, Message
from ..models.options import ConversionOptions
from .platform import ObjectUrlRegistry
from .processor import ClipProcessor
from .tabs import PageSnapshot

logger = logging.getLogger(__name__)


class WorkerService:
    """
    Converts captured pages on behalf of the coordinator.

    Every request carries a correlation id that the reply echoes. Failures
    are answered with an error message instead of being raised, so the
    requester never waits for its timeout on a known failure.

    Handles:
        process-content: snapshot + options -> markdown-result | process-error
        extract-content: snapshot + options -> article-result | process-error
        create-object-url: data + mime type -> object-url-created | object-url-error
        cleanup-object-url: revoke an object URL this context created
    """

    def __init__(self, context: ExecutionContext, processor: ClipProcessor, object_urls: ObjectUrlRegistry) -> None:
        self.context = context
        self._processor = processor
        self._object_urls = object_urls
        context.on(types.PROCESS_CONTENT, self.handle_process_content)
        context.on(types.EXTRACT_CONTENT, self.handle_extract_content)
        context.on(types.CREATE_OBJECT_URL, self.handle_create_object_url)
        context.on(types.CLEANUP_OBJECT_URL, self.handle_cleanup_object_url)

    @staticmethod
    def _read_request(message: Message) -> tuple[PageSnapshot, ConversionOptions, bool]:
        payload = message.payload
        snapshot = PageSnapshot.from_payload(payload["snapshot"])
        options = ConversionOptions.model_validate(payload.get("options") or {})
        return snapshot, options, bool(payload.get("selection"))

    def _reply(self, message: Message, message_type: str, payload: dict) -> None:
        self.context.send(message.reply(message_type, payload))

    async def handle_process_content(self, message: Message) -> None:
        try:
            snapshot, options, selection = self._read_request(message)
            result = await self._processor.process(snapshot, options, selection)
        except Exception as e:
            logger.error(f"[{self.context.name}] conversion failed (request {message.request_id}): {e}")
            self._reply(message, types.PROCESS_ERROR, {"error": str(e)})
            return
        self._reply(message, types.MARKDOWN_RESULT, {"result": result.to_payload()})

    async def handle_extract_content(self, message: Message) -> None:
        try:
            snapshot, options, selection = self._read_request(message)
            record = await self._processor.extract(snapshot, options, selection)
        except Exception as e:
            logger.error(f"[{self.context.name}] extraction failed (request {message.request_id}): {e}")
            self._reply(message, types.PROCESS_ERROR, {"error": str(e)})
            return
        self._reply(message, types.ARTICLE_RESULT, {"record": record.to_dict()})

    def handle_create_object_url(self, message: Message) -> None:
        try:
            data = base64.b64decode(message.payload["data"])
            url = self._object_urls.create(data, message.payload.get("mime_type", ""), self.context.name)
        except Exception as e:
            self._reply(message, types.OBJECT_URL_ERROR, {"error": str(e)})
            return
        self._reply(message, types.OBJECT_URL_CREATED, {"url": url})

    def handle_cleanup_object_url(self, message: Message) -> None:
        url = message.payload.get("url", "")
        if self._object_urls.revoke(url, self.context.name):
            logger.debug(f"[{self.context.name}] revoked {url}")
