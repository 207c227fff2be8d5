"""
AI capability client.

Callers depend on the GenerativeClient protocol:

    generate(prompt, attachments=None) -> str

BedrockClient implements it with the Bedrock Converse API. Native PDFs go
as document blocks ahead of the text prompt. Calls carry explicit
connect/read timeouts and a bounded retry on transient failures only.
"""
from __future__ import annotations

import re
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)

from tender.core.config import settings
from tender.core.logger import logger
from tender.utils.exceptions import AIServiceError

TRANSIENT_ERROR_CODES = {
    "ThrottlingException",
    "ServiceUnavailableException",
    "InternalServerException",
    "ModelNotReadyException",
    "ModelTimeoutException",
    "TooManyRequestsException",
}

DOCUMENT_FORMATS = {
    "application/pdf": "pdf",
}


@dataclass
class Attachment:
    """Binary payload forwarded to the model as-is."""
    file_name: str
    media_type: str
    data: bytes


class GenerativeClient(Protocol):
    def generate(self, prompt: str, attachments: Optional[Sequence[Attachment]] = None) -> str: ...


def document_block_name(file_name: str, index: int) -> str:
    """
    Bedrock document names allow only alphanumerics, single spaces, hyphens,
    parentheses and square brackets, and must be unique per request.
    """
    stem = file_name.rsplit(".", 1)[0] if "." in file_name else file_name
    cleaned = re.sub(r"[^A-Za-z0-9\s\-\(\)\[\]]", " ", stem)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()[:180] or "document"
    return f"{cleaned} [{index + 1}]"


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, (BotoConnectionError, HTTPClientError)):
        return True
    if isinstance(exc, ClientError):
        err = exc.response.get("Error", {})
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        return err.get("Code") in TRANSIENT_ERROR_CODES or status >= 500
    return False


class BedrockClient:
    """
    Bedrock Converse implementation of GenerativeClient.
    """

    def __init__(
        self,
        client=None,
        model_id: Optional[str] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self.model_id = model_id or settings.BEDROCK_MODEL_ID
        self.max_retries = settings.BEDROCK_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_seconds = (
            settings.BEDROCK_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        # botocore's own retries are off; the retry policy lives in generate()
        self.client = client or boto3.client(
            "bedrock-runtime",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
            config=Config(
                connect_timeout=settings.BEDROCK_CONNECT_TIMEOUT_SECONDS,
                read_timeout=settings.BEDROCK_READ_TIMEOUT_SECONDS,
                retries={"max_attempts": 0},
            ),
        )

    def _build_messages(self, prompt: str, attachments: Sequence[Attachment]) -> list:
        content = []
        for i, att in enumerate(attachments):
            fmt = DOCUMENT_FORMATS.get(att.media_type)
            if fmt is None:
                raise AIServiceError(f"Unsupported native attachment type: {att.media_type}")
            content.append(
                {
                    "document": {
                        "format": fmt,
                        "name": document_block_name(att.file_name, i),
                        "source": {"bytes": att.data},
                    }
                }
            )
        content.append({"text": prompt})
        return [{"role": "user", "content": content}]

    @staticmethod
    def _response_text(response: dict) -> str:
        # Response: output.message.content is list of content blocks
        blocks = response.get("output", {}).get("message", {}).get("content", [])
        return "".join(block["text"] for block in blocks if "text" in block)

    def generate(self, prompt: str, attachments: Optional[Sequence[Attachment]] = None) -> str:
        messages = self._build_messages(prompt, attachments or [])
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                logger.info(
                    "Bedrock converse attempt %d/%d (model=%s, attachments=%d, prompt_chars=%d)",
                    attempt, attempts, self.model_id, len(attachments or []), len(prompt),
                )
                response = self.client.converse(
                    modelId=self.model_id,
                    messages=messages,
                    inferenceConfig={
                        "maxTokens": settings.BEDROCK_MAX_TOKENS,
                        "temperature": settings.BEDROCK_TEMPERATURE,
                    },
                )
                return self._response_text(response)
            except (ClientError, BotoCoreError) as e:
                transient = is_transient(e)
                if transient and attempt < attempts:
                    logger.warning(
                        "Bedrock call failed (attempt %d/%d), retrying in %.1fs: %s",
                        attempt, attempts, self.backoff_seconds, e,
                    )
                    time.sleep(self.backoff_seconds)
                    continue
                logger.error("Bedrock call failed after %d attempt(s): %s", attempt, e)
                raise AIServiceError(str(e), transient=transient) from e

        raise AIServiceError("No attempts made")


@lru_cache(maxsize=1)
def get_ai_client() -> GenerativeClient:
    """Built once per process; FastAPI handlers receive it through a dependency."""
    return BedrockClient()
