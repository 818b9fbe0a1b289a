"""
Direct Anthropic API service module.
Same streaming contract as BedrockService, backed by the anthropic SDK.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

import anthropic

from config import model_config
from credentials import Credentials, load_credentials


logger = logging.getLogger(__name__)


class AnthropicServiceError(Exception):
    """Custom exception for Anthropic API errors"""
    pass


class AnthropicService:
    """
    Streams messages from the Anthropic API.
    Authenticates with an API key, or with an OAuth access token as a bearer token.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        client: Any = None,
    ):
        self.model = model or model_config.anthropic_model
        self.max_tokens = max_tokens or model_config.max_tokens
        if client is not None:
            self.client = client
        else:
            self.client = self._create_client(credentials or load_credentials())
        logger.info(f"AnthropicService initialized with model: {self.model}")

    @staticmethod
    def _create_client(credentials: Credentials) -> Any:
        if credentials.api_key:
            return anthropic.Anthropic(api_key=credentials.api_key)
        return anthropic.Anthropic(auth_token=credentials.access_token)

    def stream_message(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict]] = None,
        max_tokens: Optional[int] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Stream one model turn, yielding raw stream events as dicts."""
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": messages,
            "stream": True,
        }
        if system_prompt:
            params["system"] = system_prompt
        if tools:
            params["tools"] = tools

        logger.info(f"Streaming from model: {self.model}")
        try:
            stream = self.client.messages.create(**params)
            try:
                for event in stream:
                    yield event.model_dump() if hasattr(event, "model_dump") else dict(event)
            finally:
                close = getattr(stream, "close", None)
                if callable(close):
                    close()
        except anthropic.APIError as e:
            logger.error(f"Anthropic streaming error: {e}")
            raise AnthropicServiceError(f"Streaming error: {e}")
