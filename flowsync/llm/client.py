"""Completion Service Client: hosted text generation via Gemini or Claude."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from flowsync.config import get_api_key

logger = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """Raised when the hosted model call fails or returns nothing usable."""


class CompletionClient(Protocol):
    """Anything that can turn system instructions + user content into raw text."""

    def run(
        self,
        system_prompt: str,
        user_message: str,
        temperature: Optional[float] = None,
        max_output_tokens: int = 1024,
    ) -> str:
        ...


class LLMClient:
    """Unified interface for calling Gemini or Claude APIs."""

    def __init__(
        self,
        provider: str = "gemini",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        thinking_level: str = "off",
    ):
        self.provider = provider.lower()
        self.thinking_level = thinking_level

        if self.provider == "gemini":
            self.model = model or "gemini-2.0-flash"
            self._init_gemini(api_key)
        elif self.provider == "claude":
            self.model = model or "claude-haiku-4-5-20251001"
            self._init_claude(api_key)
        else:
            raise ValueError(f"Unsupported provider: {provider}. Use 'gemini' or 'claude'.")

    def _init_gemini(self, api_key: Optional[str]):
        try:
            from google import genai
        except ImportError:
            raise ImportError("Install google-genai: pip install google-genai")

        api_key = api_key or get_api_key("GEMINI_API_KEY", "gemini")
        if not api_key:
            raise ValueError(
                "GEMINI_API_KEY not found. Either:\n"
                "  • Run: flowsync set-key gemini\n"
                "  • Or:  export GEMINI_API_KEY='your-key'"
            )
        self._gemini_client = genai.Client(api_key=api_key)

    def _init_claude(self, api_key: Optional[str]):
        try:
            import anthropic
        except ImportError:
            raise ImportError("Install anthropic: pip install 'flowsync[claude]'")

        api_key = api_key or get_api_key("ANTHROPIC_API_KEY", "claude")
        if not api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY not found. Either:\n"
                "  • Run: flowsync set-key claude\n"
                "  • Or:  export ANTHROPIC_API_KEY='sk-ant-...'"
            )
        self._claude_client = anthropic.Anthropic(api_key=api_key)

    def run(
        self,
        system_prompt: str,
        user_message: str,
        temperature: Optional[float] = None,
        max_output_tokens: int = 1024,
    ) -> str:
        """Send system + user message to the LLM and return the text response.

        Raises:
            CompletionError: on any provider failure or an empty response.
        """
        try:
            if self.provider == "gemini":
                text = self._run_gemini(system_prompt, user_message, temperature, max_output_tokens)
            else:
                text = self._run_claude(system_prompt, user_message, temperature, max_output_tokens)
        except Exception as exc:
            raise CompletionError(f"{self.provider} call failed: {exc}") from exc

        if not text or not text.strip():
            raise CompletionError(f"{self.provider} returned an empty response")
        return text

    def _run_gemini(
        self,
        system_prompt: str,
        user_message: str,
        temperature: Optional[float],
        max_output_tokens: int,
    ) -> str:
        from google.genai import types

        thinking_budgets = {
            "minimal": 128,
            "low": 1024,
            "medium": 4096,
        }

        config_kwargs = {
            "system_instruction": system_prompt,
            "max_output_tokens": max_output_tokens,
        }
        if temperature is not None:
            config_kwargs["temperature"] = temperature

        # gemini-2.5-* and gemini-3-* support thinking; 2.0 does not
        model_supports_thinking = any(
            self.model.startswith(p) for p in ("gemini-2.5", "gemini-3")
        )
        if model_supports_thinking and self.thinking_level in thinking_budgets:
            config_kwargs["thinking_config"] = types.ThinkingConfig(
                thinking_budget=thinking_budgets[self.thinking_level],
            )

        response = self._gemini_client.models.generate_content(
            model=self.model,
            contents=user_message,
            config=types.GenerateContentConfig(**config_kwargs),
        )

        # Skip thinking parts
        text_parts = []
        if response.candidates and response.candidates[0].content:
            for part in response.candidates[0].content.parts or []:
                if part.text and not getattr(part, "thought", False):
                    text_parts.append(part.text)

        return "".join(text_parts)

    def _run_claude(
        self,
        system_prompt: str,
        user_message: str,
        temperature: Optional[float],
        max_output_tokens: int,
    ) -> str:
        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = self._claude_client.messages.create(
            model=self.model,
            max_tokens=max_output_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
            **kwargs,
        )
        return response.content[0].text
