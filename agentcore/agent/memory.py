"""
MemoryManager - conversation window and message persistence.

- prepare_conversation_context: loads the recent messages of a conversation
  (the read is awaited, conversation setup and input saving run in the
  background)
- save_message / create_step_finish_handler: persist messages as they are
  produced
- memory:read_* / memory:write_* timeline events around storage access

Memory is skipped entirely without a storage or without a user id.
"""

import json
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable
from uuid import uuid4

from agentcore.domain.events import EventName
from agentcore.domain.models import Conversation, Message, MessageRole, StepType, StepWithContent, utc_now
from agentcore.providers.storage import (
    ConversationExistsError,
    ConversationStorage,
    InMemoryConversationStorage,
)
from agentcore.runtime.background import BackgroundQueue
from agentcore.runtime.event_factory import TimelineEventFactory
from agentcore.utils.logging import get_logger

if TYPE_CHECKING:
    from agentcore.domain.events import TimelineEvent
    from agentcore.runtime.context import OperationContext
    from agentcore.runtime.event_emitter import AgentEventEmitter

logger = get_logger(__name__)

StepFinishHandler = Callable[[StepWithContent], Awaitable[None]]

_MESSAGE_TYPES = {
    StepType.TOOL_CALL.value: "tool-call",
    StepType.TOOL_RESULT.value: "tool-result",
}


class MemoryManager:
    """Memory access for one agent (the resource)."""

    def __init__(
        self,
        resource_id: str,
        storage: ConversationStorage | None | bool = None,
        background: BackgroundQueue | None = None,
        event_emitter: "AgentEventEmitter | None" = None,
    ):
        self.resource_id = resource_id
        if storage is False:
            self.storage: ConversationStorage | None = None
        elif storage is None or storage is True:
            self.storage = InMemoryConversationStorage()
        else:
            self.storage = storage
        self.background = background or BackgroundQueue(name=f"memory-{resource_id}")
        self.event_emitter = event_emitter

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def prepare_conversation_context(
        self,
        context: "OperationContext",
        input: Any,
        user_id: str | None = None,
        conversation_id: str | None = None,
        context_limit: int = 10,
    ) -> tuple[list[Message], str]:
        """
        Load the conversation window for an operation.

        Returns:
            tuple: (prior messages, conversation id); a new conversation id
            is generated when none is given
        """
        conversation_id = conversation_id or str(uuid4())

        if context_limit == 0 or self.storage is None or not user_id:
            return [], conversation_id

        events = self._events(context)
        read_input = {
            "user_id": user_id,
            "conversation_id": conversation_id,
            "context_limit": context_limit,
        }
        start = events.memory_start(EventName.MEMORY_READ_START, read_input)
        self._publish(context, start)

        messages: list[Message] = []
        try:
            stored = await self.storage.get_messages(
                user_id=user_id, conversation_id=conversation_id, limit=context_limit
            )
            messages = [
                Message(role=m.role, content=m.content, tool_call_id=m.tool_call_id)
                for m in stored
            ]
            self._publish(
                context,
                events.memory_end(
                    EventName.MEMORY_READ_SUCCESS,
                    start,
                    output={
                        "messages_count": len(messages),
                        "context_limit": context_limit,
                        "conversation_id": conversation_id,
                    },
                ),
            )
            context.logger.debug("memory_context_loaded", messages_count=len(messages))
        except Exception as e:
            self._publish(context, events.memory_end(EventName.MEMORY_READ_ERROR, start, error=e))
            context.logger.error("memory_context_load_failed", error=str(e), exc_info=True)

        self._schedule_conversation_setup(context, input, user_id, conversation_id)
        return messages, conversation_id

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def save_message(
        self,
        context: "OperationContext",
        message: Message,
        user_id: str | None,
        conversation_id: str | None,
        message_type: str = "text",
    ) -> None:
        """Persist one message. Failures are logged, never raised."""
        if self.storage is None or not user_id or not conversation_id:
            return
        try:
            await self._write_message(context, message, user_id, conversation_id, message_type)
        except Exception as e:
            context.logger.error("memory_message_save_failed", error=str(e), exc_info=True)

    def create_step_finish_handler(
        self,
        context: "OperationContext",
        user_id: str | None = None,
        conversation_id: str | None = None,
    ) -> StepFinishHandler:
        """
        Handler saving each generation step as a conversation message.

        Saves are queued behind the conversation setup, so the input
        messages of an operation are always stored before its steps.
        """
        if self.storage is None or not user_id or not conversation_id:

            async def noop(step: StepWithContent) -> None:
                return None

            return noop

        async def handle(step: StepWithContent) -> None:
            content = step.content
            if not isinstance(content, str):
                content = json.dumps(content, default=str)
            message_type = _MESSAGE_TYPES.get(step.type, "text")
            tool_call_id = step.tool_call_id
            if tool_call_id is None and message_type != "text":
                tool_call_id = step.id
            message = Message(
                role=step.role or MessageRole.ASSISTANT,
                content=content,
                tool_call_id=tool_call_id,
            )

            async def write() -> None:
                await self._write_message(context, message, user_id, conversation_id, message_type)

            self.background.enqueue(write, operation_id=f"step-{step.id}")

        return handle

    async def flush(self) -> None:
        """Wait for queued background memory work."""
        await self.background.flush()

    def get_memory_state(self) -> dict[str, Any]:
        if self.storage is None:
            return {
                "type": "NoMemory",
                "resource_id": self.resource_id,
                "available": False,
                "status": "idle",
            }
        return {
            "type": type(self.storage).__name__,
            "resource_id": self.resource_id,
            "available": True,
            "status": "idle",
            "pending_operations": self.background.pending,
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _schedule_conversation_setup(
        self,
        context: "OperationContext",
        input: Any,
        user_id: str,
        conversation_id: str,
    ) -> None:
        async def setup() -> None:
            await self._ensure_conversation(user_id, conversation_id)
            for message in _input_messages(input):
                await self._write_message(context, message, user_id, conversation_id, "text")

        self.background.enqueue(
            setup, operation_id=f"conversation-and-input-{conversation_id}-{uuid4().hex[:8]}"
        )

    async def _ensure_conversation(self, user_id: str, conversation_id: str) -> None:
        existing = await self.storage.get_conversation(conversation_id)
        if existing is not None:
            await self.storage.update_conversation(conversation_id, {})
            return
        try:
            await self.storage.create_conversation(
                Conversation(
                    id=conversation_id,
                    resource_id=self.resource_id,
                    user_id=user_id,
                    title=f"New Chat {utc_now().isoformat()}",
                )
            )
            logger.info("conversation_created", conversation_id=conversation_id)
        except ConversationExistsError:
            logger.debug("conversation_already_exists", conversation_id=conversation_id)

    async def _write_message(
        self,
        context: "OperationContext",
        message: Message,
        user_id: str,
        conversation_id: str,
        message_type: str,
    ) -> None:
        events = self._events(context)
        start = events.memory_start(
            EventName.MEMORY_WRITE_START,
            {"type": message_type, "role": message.role, "conversation_id": conversation_id},
        )
        self._publish(context, start)
        try:
            await self.storage.add_message(message, user_id, conversation_id)
        except Exception as e:
            self._publish(context, events.memory_end(EventName.MEMORY_WRITE_ERROR, start, error=e))
            raise
        self._publish(
            context,
            events.memory_end(
                EventName.MEMORY_WRITE_SUCCESS,
                start,
                output={"success": True, "conversation_id": conversation_id},
            ),
        )

    def _events(self, context: "OperationContext") -> TimelineEventFactory:
        return TimelineEventFactory(agent_id=self.resource_id, agent_name="Memory", ctx=context)

    def _publish(self, context: "OperationContext", event: "TimelineEvent") -> None:
        if self.event_emitter is None:
            return
        self.event_emitter.publish_timeline_event_async(
            agent_id=self.resource_id,
            history_id=context.history_entry.id,
            event=event,
            parent_history_entry_id=context.parent_history_entry_id,
        )


def _input_messages(input: Any) -> Iterable[Message]:
    if isinstance(input, str):
        return [Message(role=MessageRole.USER, content=input)]
    if isinstance(input, Message):
        return [input]
    if isinstance(input, list):
        return [m if isinstance(m, Message) else Message.model_validate(m) for m in input]
    return []


__all__ = ["MemoryManager", "StepFinishHandler"]
