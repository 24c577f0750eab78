"""
AI Agents for Aqsha Tracker

CRITICAL BOUNDARIES:

FINANCE ASSISTANT AGENT:
   - CAN: Explain, summarize and advise on the user's own data
   - CAN: Only see the bounded context snapshot built for this turn
   - CANNOT: Read or write storage
   - CANNOT: Invent transactions, balances or goals
   - MUST: Say so when the context does not contain the answer

The LLM is a TRANSLATOR, not an ORACLE.
It NEVER makes up financial data.

DESIGN DECISION: The model provider sits behind AIGatewayInterface, a
single text-completion call. Gemini is the production gateway; tests
plug in a scripted fake.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

import google.generativeai as genai
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from aqsha.config import GeminiSettings, get_settings
from aqsha.errors import UpstreamError, UpstreamTimeoutError
from aqsha.models.conversation import ChatMessage, ContextSnapshot, MessageRole


logger = structlog.get_logger(__name__)


class AIGatewayInterface(ABC):
    """Opaque text-completion capability."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
    ) -> str:
        """
        Produce the assistant's next message.

        Args:
            system_prompt: Instructions plus serialized context
            messages: Conversation history, oldest first, ending with
                     the user's new message

        Raises:
            UpstreamTimeoutError: If no answer within the timeout
            UpstreamError: For any other provider failure
        """
        pass


class _TransientGatewayError(Exception):
    """Provider call failed in a way worth retrying."""
    pass


class GeminiGateway(AIGatewayInterface):
    """
    Gemini implementation of the AI gateway.

    Each call is retried on transient failure and the whole call,
    retries included, is bounded by request_timeout_seconds.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }

    @staticmethod
    def _to_contents(messages: list[ChatMessage]) -> list[dict]:
        """Gemini calls the assistant role 'model'."""
        return [
            {
                "role": "model" if m.role == MessageRole.ASSISTANT else "user",
                "parts": [m.content],
            }
            for m in messages
        ]

    @retry(
        retry=retry_if_exception_type(_TransientGatewayError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, system_prompt: str, contents: list[dict]) -> str:
        model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=self._generation_config,
            system_instruction=system_prompt,
        )
        try:
            response = await model.generate_content_async(contents)
            text = response.text
        except Exception as e:
            raise _TransientGatewayError(str(e)) from e

        if not text or not text.strip():
            raise UpstreamError("Gemini returned an empty response")
        return text.strip()

    async def complete(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
    ) -> str:
        timeout = self._settings.request_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._generate(system_prompt, self._to_contents(messages)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamTimeoutError(
                f"Gemini did not respond within {timeout:g}s",
                {"timeout_seconds": timeout},
            )
        except _TransientGatewayError as e:
            raise UpstreamError(f"Gemini request failed: {e}") from e


class FinanceAssistantAgent:
    """
    Prompt templating for the finance assistant.

    RESPONSIBILITIES:
    - Turn a context snapshot into system instructions
    - Forward the conversation to the gateway

    BOUNDARIES:
    - NEVER touches storage
    - NEVER sees more than the bounded snapshot
    """

    SYSTEM_PROMPT = """You are AqshaTracker AI, a personal finance assistant.
You help the user understand their spending, income, savings goals and debts.

Today is {today}.

The user's financial data (accounts, recent transactions since {window_start}, active goals,
categories and totals for that window) is below as JSON:

{context}

Rules:
- Use ONLY the data above. Never invent transactions, balances or goals.
- If the data does not answer the question, say so plainly.
- Transfers and debts are not income or spending.
{truncation_note}- Be concise and practical. Give concrete numbers where the data supports them."""

    TRUNCATION_NOTE = (
        "- The data was shortened to fit; older transactions are missing. "
        "Say so if the answer depends on them.\n"
    )

    def __init__(self, gateway: AIGatewayInterface):
        self._gateway = gateway

    def build_system_prompt(
        self,
        snapshot: ContextSnapshot,
        today: Optional[date] = None,
    ) -> str:
        return self.SYSTEM_PROMPT.format(
            today=(today or date.today()).isoformat(),
            window_start=snapshot.window_start.isoformat(),
            context=snapshot.to_prompt_json(),
            truncation_note=self.TRUNCATION_NOTE if snapshot.truncated else "",
        )

    async def reply(
        self,
        snapshot: ContextSnapshot,
        history: list[ChatMessage],
    ) -> str:
        """
        Ask the gateway for the next assistant message.

        Raises:
            UpstreamError: Propagated from the gateway
        """
        system_prompt = self.build_system_prompt(snapshot)
        logger.debug(
            "assistant_prompt_built",
            snapshot_id=snapshot.snapshot_id,
            history_length=len(history),
            prompt_chars=len(system_prompt),
        )
        return await self._gateway.complete(system_prompt, history)
