"""
Health check utilities for the brand memory backends.
"""

from typing import Any, Dict

from .bedrock_embed import BedrockEmbed
from .config import config
from .logging_config import get_logger
from .neptune_client import NeptuneRelationshipStore
from .opensearch_client import OpenSearchMemoryStore

logger = get_logger(__name__)


def check_health() -> bool:
    """Check the health of all backends.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status()
        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All brand memory backends are healthy')
        else:
            unhealthy = [name for name, status in health_status.items() if not status.get('healthy', False)]
            logger.warning(f"Unhealthy brand memory backends: {', '.join(unhealthy)}")

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status() -> Dict[str, Any]:
    """Get detailed health status of each backend.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    embed = None
    try:
        embed = BedrockEmbed(config.bedrock_embed)
        health_status['bedrock_embed'] = {
            'healthy': embed.health_check(),
            'service': 'Amazon Bedrock Embed',
            'model': config.bedrock_embed.model_id
        }
    except Exception as e:
        health_status['bedrock_embed'] = {'healthy': False, 'service': 'Amazon Bedrock Embed', 'error': str(e)}

    try:
        opensearch = OpenSearchMemoryStore(config.opensearch, config.bedrock_embed, embed=embed)
        health_status['opensearch'] = {
            'healthy': opensearch.health_check(),
            'service': 'Amazon OpenSearch',
            'endpoint': config.opensearch.endpoint
        }
    except Exception as e:
        health_status['opensearch'] = {'healthy': False, 'service': 'Amazon OpenSearch', 'error': str(e)}

    try:
        neptune = NeptuneRelationshipStore(config.neptune)
        try:
            neptune_healthy = neptune.health_check()
        finally:
            neptune.close()
        health_status['neptune'] = {
            'healthy': neptune_healthy,
            'service': 'Amazon Neptune',
            'endpoint': config.neptune.endpoint
        }
    except Exception as e:
        health_status['neptune'] = {'healthy': False, 'service': 'Amazon Neptune', 'error': str(e)}

    return health_status


def get_system_info() -> Dict[str, Any]:
    """Get service information, configuration and backend health.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'BrandMemory',
        'version': '1.0.0',
        'configuration': {
            'environment': config.environment,
            'bedrock_embed_model': config.bedrock_embed.model_id,
            'opensearch_index': config.opensearch.index_name,
            'default_ttl_days': config.memory.default_ttl_days,
            'aws_region': config.bedrock_embed.region
        },
        'health_status': get_health_status()
    }
