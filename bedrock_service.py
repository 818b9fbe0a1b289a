"""
Amazon Bedrock service module.
Streams Anthropic messages through the Bedrock runtime and hands back the
raw stream events, one dict per chunk, for the session reducer to fold.
"""

import boto3
import json
import logging
from typing import Any, Dict, Iterator, List, Optional
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from dotenv import load_dotenv

from config import (
    aws_config,
    model_config,
    get_model_config,
    get_max_output_tokens,
    requires_inference_profile,
)


logger = logging.getLogger(__name__)
env_path = '.env'

ANTHROPIC_VERSION = "bedrock-2023-05-31"


class BedrockError(Exception):
    """Custom exception for Bedrock service errors"""
    pass


class BedrockService:
    """
    Service class for Amazon Bedrock interactions.
    Pass `client` to reuse an existing bedrock-runtime client.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        region: Optional[str] = None,
        max_tokens: Optional[int] = None,
        throughput_mode: Optional[str] = None,
        client: Any = None,
    ):
        self.model_id = model_id or model_config.model_id
        self.region = region or aws_config.region
        self.max_tokens = max_tokens or model_config.max_tokens
        self.throughput_mode = throughput_mode or model_config.throughput_mode

        self.client = client if client is not None else self._create_client()
        logger.info(f"BedrockService initialized with model: {self.model_id}")

    def _create_client(self) -> Any:
        """Create and configure the Bedrock runtime client"""
        load_dotenv(env_path)
        try:
            session_kwargs = {"region_name": self.region}

            if aws_config.has_profile():
                session_kwargs["profile_name"] = aws_config.profile_name
            elif aws_config.has_explicit_credentials():
                session_kwargs["aws_access_key_id"] = aws_config.access_key_id
                session_kwargs["aws_secret_access_key"] = aws_config.secret_access_key
                if aws_config.has_session_token():
                    session_kwargs["aws_session_token"] = aws_config.session_token

            session = boto3.Session(**session_kwargs)
            return session.client("bedrock-runtime")

        except NoCredentialsError:
            raise BedrockError("AWS credentials not configured.")
        except (BotoCoreError, ValueError) as e:
            raise BedrockError(f"Failed to initialize Bedrock client: {e}")

    def _get_model_identifier(self, model_id: str) -> str:
        """Get the appropriate model identifier based on throughput mode"""
        if self.throughput_mode == "cross-region":
            if model_id.startswith(("us.", "eu.", "ap.")):
                return model_id
            elif requires_inference_profile(model_id):
                region_prefix = "us" if self.region.startswith("us-") else "eu" if self.region.startswith("eu-") else "us"
                return f"{region_prefix}.{model_id}"

        return get_model_config(model_id).get("base_id", model_id)

    def _format_request_body(
        self,
        messages: List[Dict],
        system_prompt: Optional[str],
        tools: Optional[List[Dict]],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        """Build the Anthropic-on-Bedrock request body"""
        limit = min(max_tokens or self.max_tokens, get_max_output_tokens(self.model_id))
        body: Dict[str, Any] = {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": limit,
            "messages": [
                {"role": m["role"], "content": m["content"]}
                for m in messages
                if m.get("role") != "system"
            ],
        }
        if system_prompt:
            body["system"] = system_prompt
        if tools:
            body["tools"] = tools
        logger.debug(f"Request body keys: {list(body.keys())}, messages: {len(body['messages'])}")
        return body

    def stream_message(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict]] = None,
        max_tokens: Optional[int] = None,
    ) -> Iterator[Dict[str, Any]]:
        """
        Stream one model turn. Yields each decoded stream event
        (message_start, content_block_*, message_delta, message_stop, ...).
        """
        model_identifier = self._get_model_identifier(self.model_id)
        request_body = self._format_request_body(messages, system_prompt, tools, max_tokens)

        logger.info(f"Streaming from model: {model_identifier}")

        try:
            response = self.client.invoke_model_with_response_stream(
                modelId=model_identifier,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json"
            )

            for event in response["body"]:
                if "chunk" not in event:
                    # Bedrock reports in-stream failures as exception members
                    # (throttlingException, modelStreamErrorException, ...).
                    name = next(iter(event), "unknown")
                    detail = event.get(name) or {}
                    message = detail.get("message", "") if isinstance(detail, dict) else str(detail)
                    raise BedrockError(f"Streaming error: {name}: {message}")
                try:
                    chunk = json.loads(event["chunk"]["bytes"])
                except (KeyError, TypeError, ValueError) as e:
                    raise BedrockError(f"Malformed stream chunk: {e}")
                if not isinstance(chunk, dict):
                    raise BedrockError("Malformed stream chunk: not an object")
                yield chunk

        except ClientError as e:
            error_message = e.response.get('Error', {}).get('Message', str(e))
            logger.error(f"Bedrock streaming error: {error_message}")
            raise BedrockError(f"Streaming error: {error_message}")
        except BotoCoreError as e:
            logger.error(f"Bedrock streaming error: {e}")
            raise BedrockError(f"Streaming error: {e}")
