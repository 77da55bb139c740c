"""LLM providers. One capability interface with a Gemini and an OpenAI variant.

Both variants wrap a LangChain chat model. The model client is built per call
so a provider instance never holds on to an event loop from an earlier call.
"""

import json
import os
from typing import Protocol

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from reqforge.config import get_config
from reqforge.errors import ErrorKind, RefinementError, classify_error
from reqforge.utils.parsing import extract_json_object, invoke_with_retry

PROVIDERS = ("gemini", "openai")


class LLMProvider(Protocol):
    name: str

    async def generate_response(self, prompt: str) -> str:
        ...

    async def generate_structured_response(self, prompt: str, schema: str | None = None) -> dict:
        ...


class ChatModelProvider:
    """Shared request/parse/error handling on top of a LangChain chat model."""

    name = "base"
    api_key_env = ""

    def _api_key(self) -> str:
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise RefinementError(f"{self.api_key_env} is not set.", ErrorKind.UNAUTHORIZED, self.name)
        return api_key

    def _build_llm(self):
        raise NotImplementedError

    async def generate_response(self, prompt: str) -> str:
        try:
            llm = self._build_llm()
            response = await invoke_with_retry(llm, [{"role": "user", "content": prompt}])
        except Exception as exc:
            raise classify_error(exc, self.name) from exc

        text = response.content if isinstance(response.content, str) else str(response.content)
        if not text.strip():
            raise RefinementError(f"Empty response from {self.name}.", ErrorKind.UNKNOWN, self.name)
        return text.strip()

    async def generate_structured_response(self, prompt: str, schema: str | None = None) -> dict:
        if schema:
            structured_prompt = f"{prompt}\n\nRespond with valid JSON that matches this schema exactly: {schema}"
        else:
            structured_prompt = f"{prompt}\n\nRespond with valid JSON only, no additional text."

        text = await self.generate_response(structured_prompt)
        try:
            return extract_json_object(text)
        except (json.JSONDecodeError, ValueError) as exc:
            raise RefinementError(
                f"Failed to parse structured response from {self.name}: {exc}",
                ErrorKind.PARSE_ERROR,
                self.name,
            ) from exc


class GeminiProvider(ChatModelProvider):
    name = "gemini"
    api_key_env = "GEMINI_API_KEY"

    def _build_llm(self):
        config = get_config()
        return ChatGoogleGenerativeAI(
            model=config["gemini_model"],
            google_api_key=self._api_key(),
            temperature=config.get("temperature", 0.7),
            top_p=config.get("top_p", 0.8),
            max_output_tokens=config.get("max_output_tokens", 8192),
        )


class OpenAIProvider(ChatModelProvider):
    name = "openai"
    api_key_env = "OPENAI_API_KEY"

    def _build_llm(self):
        config = get_config()
        return ChatOpenAI(
            model=config["openai_model"],
            api_key=self._api_key(),
            temperature=config.get("temperature", 0.7),
            top_p=config.get("top_p", 0.8),
            max_tokens=config.get("max_output_tokens", 8192),
        )


_PROVIDER_CLASSES = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
}


def get_provider(name: str | None = None) -> LLMProvider:
    """Return the provider for ``name``, or the configured default when None."""
    if name is None:
        name = get_config().get("provider", "gemini")
    key = name.strip().lower()
    if key not in _PROVIDER_CLASSES:
        raise ValueError(f"Unknown provider '{name}'. Must be one of: {PROVIDERS}")
    return _PROVIDER_CLASSES[key]()


def provider_display_name(name: str) -> str:
    return "Google Gemini" if name == "gemini" else "OpenAI GPT-4o mini"
