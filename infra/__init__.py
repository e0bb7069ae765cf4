"""
Infrastructure module exports.

Configuration and bootstrap for all service backends and engines.
"""

from .config import InfraConfig, get_config, DescribeBackendType, TTSBackendType
from .results import ResultStore, DescriptionResult
from .bootstrap import InfraBootstrap, bootstrap_infrastructure

__all__ = [
    "InfraConfig",
    "get_config",
    "DescribeBackendType",
    "TTSBackendType",
    "ResultStore",
    "DescriptionResult",
    "InfraBootstrap",
    "bootstrap_infrastructure",
]
