"""
Brand memory retrieval layer for multi-agent personal-brand pipelines.
"""

# Setup logging configuration on package import
from .utils.logging_config import setup_logging

setup_logging()
