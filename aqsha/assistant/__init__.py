"""AI assistant package: context building and conversations."""

from aqsha.assistant.context import ContextBuilder
from aqsha.assistant.conversation import ConversationManager

__all__ = ["ContextBuilder", "ConversationManager"]
