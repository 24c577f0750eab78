"""AI Agents package."""

from aqsha.agents.ai_agents import (
    AIGatewayInterface,
    FinanceAssistantAgent,
    GeminiGateway,
)

__all__ = [
    "AIGatewayInterface",
    "FinanceAssistantAgent",
    "GeminiGateway",
]
