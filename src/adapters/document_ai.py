"""OpenAI client adapter for document field extraction."""

import base64
import logging
from typing import Any

import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

TEXT_MEDIA_TYPES = {"text/csv", "text/plain", "application/csv"}


class ExtractionError(Exception):
    """Base exception for the extraction service."""


class ExtractionTimeoutError(ExtractionError):
    """The extraction call did not finish within its timeout."""


class DocumentAIClient:
    """Sends document bytes plus instructions to a chat model and returns its text."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 60,
        max_tokens: int = 4096,
        client: OpenAI | None = None,
    ):
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        # SDK retries are disabled; a failed extraction is retried by the user
        self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "DocumentAIClient":
        return cls(
            api_key=config["api_key"],
            model=config.get("model", "gpt-4o-mini"),
            timeout=config.get("timeout", 60),
            max_tokens=config.get("max_tokens", 4096),
        )

    def _document_part(self, content: bytes, media_type: str, file_name: str) -> dict:
        if media_type in TEXT_MEDIA_TYPES:
            return {
                "type": "text",
                "text": f"Document contents ({file_name}):\n"
                + content.decode("utf-8", errors="replace"),
            }

        encoded = base64.b64encode(content).decode("ascii")
        data_url = f"data:{media_type};base64,{encoded}"
        if media_type.startswith("image/"):
            return {"type": "image_url", "image_url": {"url": data_url}}
        return {"type": "file", "file": {"filename": file_name, "file_data": data_url}}

    def extract_text(
        self,
        content: bytes,
        media_type: str,
        instructions: str,
        file_name: str = "document",
    ) -> str:
        """Run one extraction call and return the model's raw text reply.

        Raises:
            ExtractionTimeoutError: The call exceeded ``timeout``
            ExtractionError: Any other service failure or an empty reply
        """
        messages = [
            {
                "role": "user",
                "content": [
                    self._document_part(content, media_type, file_name),
                    {"type": "text", "text": instructions},
                ],
            }
        ]

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=messages,
                timeout=self.timeout,
            )
        except openai.APITimeoutError as e:
            logger.error(f"Extraction timed out after {self.timeout}s for {file_name}")
            raise ExtractionTimeoutError(f"Extraction timed out after {self.timeout}s") from e
        except openai.APIError as e:
            logger.error(f"Extraction service error for {file_name}: {e}")
            raise ExtractionError(f"Extraction service error: {e}") from e

        if not response.choices:
            raise ExtractionError("No response from extraction service")
        text = response.choices[0].message.content
        if not text:
            raise ExtractionError("No text response from extraction service")
        return text


def create_document_ai_client() -> DocumentAIClient:
    """Create an extraction client from environment and app config."""
    from src.config.loader import get_extraction_config

    return DocumentAIClient.from_config(get_extraction_config())
