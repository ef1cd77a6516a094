"""
Amazon Bedrock embedding client used to vectorise memory content and search queries.
"""

import json
import random
import time
from typing import Any, List, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockEmbedConfig
from .logging_config import get_logger

logger = get_logger(__name__)

SEARCH_DOCUMENT = 'search_document'
SEARCH_QUERY = 'search_query'


class BedrockEmbedError(Exception):
    """Custom exception for Bedrock embedding errors."""
    pass


class BedrockEmbed:
    """Bedrock embedding client supporting Titan and Cohere text embedding models."""

    def __init__(self, config: BedrockEmbedConfig, client: Optional[Any] = None):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
            client: Pre-built bedrock-runtime client, created from config if None
        """
        self.config = config
        self.model_id = config.model_id
        self.dimension = config.dimension
        self.bedrock = client or boto3.client(service_name='bedrock-runtime', region_name=config.region)

        logger.info(f'Initialized Bedrock Embed client with model: {self.model_id}')

    def _call_with_retry(self, data: dict) -> dict:
        """
        Invoke the embedding model, retrying client errors with exponential backoff.

        Raises:
            BedrockEmbedError: If all retry attempts fail
        """
        body = json.dumps(data)

        for attempt in range(self.config.retry_attempts):
            try:
                response = self.bedrock.invoke_model(body=body,
                                                     modelId=self.model_id,
                                                     accept='application/json',
                                                     contentType='application/json')
                return json.loads(response.get('body').read())

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockEmbedError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock Embed: {e}')
                raise BedrockEmbedError(f'Unexpected Bedrock Embed error: {e}')

        raise BedrockEmbedError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts')

    def _request_body(self, text: str, input_type: str) -> dict:
        model = self.model_id.lower()
        if 'titan' in model:
            return {'inputText': text, 'dimensions': self.dimension}
        if 'cohere' in model:
            if self.dimension != 1024:
                raise BedrockEmbedError(f'Cohere models only support 1024 dimensions, got {self.dimension}')
            return {'input_type': input_type, 'texts': [text]}
        raise BedrockEmbedError(f'Unsupported embedding model: {self.model_id}')

    def embed(self, text: str, input_type: str = SEARCH_DOCUMENT) -> List[float]:
        """
        Embed one piece of text.

        Args:
            text: Text to embed
            input_type: ``search_document`` for stored content, ``search_query`` for queries

        Returns:
            Embedding vector; a zero vector for empty text

        Raises:
            BedrockEmbedError: If embedding generation fails
        """
        if not text or not text.strip():
            logger.warning(f'Empty text provided for {input_type} embedding')
            return [0.0] * self.dimension

        data = self._request_body(text, input_type)
        response = self._call_with_retry(data)
        if 'embedding' in response:
            return response['embedding']
        embeddings = response.get('embeddings') or []
        if not embeddings:
            raise BedrockEmbedError(f'No embedding returned by {self.model_id}')
        return embeddings[0]

    def embed_document(self, text: str) -> List[float]:
        return self.embed(text, SEARCH_DOCUMENT)

    def embed_query(self, text: str) -> List[float]:
        return self.embed(text, SEARCH_QUERY)

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed documents one request at a time, in order."""
        return [self.embed_document(text) for text in texts]

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock embedding service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            return len(self.embed_document('health check')) == self.dimension
        except Exception as e:
            logger.error(f'Bedrock Embed health check failed: {e}')
            return False
