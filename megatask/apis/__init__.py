"""
Predefined API interfaces.

- Megaverse challenge API: aiohttp transport, request encoding and a
  repository-style facade over the resilient call pipeline
"""

from .megaverse_api import (
    DEFAULT_BASE_URL,
    ClearResult,
    MegaverseAPI,
    MegaverseClient,
    build_create_request,
    build_delete_request
)

__all__ = [
    'DEFAULT_BASE_URL',
    'ClearResult',
    'MegaverseAPI',
    'MegaverseClient',
    'build_create_request',
    'build_delete_request'
]
