"""
Core module for SOS Beacon

Contains configuration management, logging setup and the backend HTTP client.
"""

from .config import ConfigurationError, ConfigurationManager
from .http_client import ApiClient, HTTPRequestError

__all__ = [
    'ConfigurationManager',
    'ConfigurationError',
    'ApiClient',
    'HTTPRequestError'
]
