"""LLM service for OpenAI integration."""

import json
import logging
import re
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from dealfinder.config import settings

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class LLMService:
    """
    Service for LLM interactions with OpenAI.

    Features:
    - Lazy OpenAI client creation
    - Plain text, JSON-array and JSON-object responses
    - Call counting
    """

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self._client: Optional[AsyncOpenAI] = None
        self._call_count: int = 0
        self._failure_count: int = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise ValueError("OpenAI API key not configured")
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def call_llm(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        Call LLM with a prompt and return text response.

        Args:
            prompt: User prompt
            system_prompt: System prompt/instructions
            temperature: Temperature (defaults to settings.llm_temperature)
            model: Model name (defaults to settings.llm_model)

        Returns:
            LLM response text
        """
        model = model or settings.llm_model
        temperature = temperature if temperature is not None else settings.llm_temperature

        try:
            client = await self._get_client()

            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})

            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=settings.llm_max_tokens,
                timeout=settings.llm_timeout_seconds,
            )

            result = response.choices[0].message.content
            if result is None:
                result = ""

            self._call_count += 1
            return result

        except Exception as e:
            self._failure_count += 1
            logger.error(f"LLM API call failed: {e}")
            raise

    async def call_llm_json_array(
        self,
        prompt: str,
        system_prompt: str = "",
        model: Optional[str] = None,
    ) -> list[Any]:
        """
        Call LLM and parse the first JSON array in its response.

        Raises:
            ValueError: If the response contains no valid JSON array
        """
        response_text = await self.call_llm(prompt=prompt, system_prompt=system_prompt, model=model)

        match = _JSON_ARRAY.search(response_text)
        if not match:
            raise ValueError(f"No JSON array in LLM response: {response_text[:200]}")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse LLM JSON response: {e}\nResponse: {response_text[:200]}")
            raise ValueError(f"Invalid JSON response from LLM: {e}") from e
        if not isinstance(parsed, list):
            raise ValueError("LLM response is not a JSON array")
        return parsed

    async def call_llm_structured(
        self,
        prompt: str,
        response_schema: Dict[str, Any],
        system_prompt: str = "",
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Call LLM and parse a JSON object response.

        Args:
            prompt: User prompt
            response_schema: JSON schema the object should follow
            system_prompt: System prompt/instructions
            model: Model name (defaults to settings.llm_model)

        Returns:
            Parsed JSON object

        Raises:
            ValueError: If the response is not a JSON object
        """
        enhanced_system = system_prompt
        if enhanced_system:
            enhanced_system += "\n\n"
        enhanced_system += (
            f"Respond with valid JSON matching this schema: {json.dumps(response_schema)}\n"
            "Return only the JSON object, no additional text."
        )

        response_text = await self.call_llm(prompt=prompt, system_prompt=enhanced_system, model=model)

        match = _JSON_OBJECT.search(response_text)
        if not match:
            raise ValueError(f"No JSON object in LLM response: {response_text[:200]}")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse LLM JSON response: {e}\nResponse: {response_text[:200]}")
            raise ValueError(f"Invalid JSON response from LLM: {e}") from e
        if not isinstance(parsed, dict):
            raise ValueError("LLM response is not a JSON object")
        return parsed

    def get_stats(self) -> Dict[str, Any]:
        """
        Get LLM service statistics.

        Returns:
            Dictionary with call and failure counts
        """
        return {
            "call_count": self._call_count,
            "failure_count": self._failure_count,
            "configured": self.is_configured,
        }

    async def close(self):
        """Close connections."""
        if self._client:
            await self._client.close()
            self._client = None


# Global LLM service instance
llm_service = LLMService()
