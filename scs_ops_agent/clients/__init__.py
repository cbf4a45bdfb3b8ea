"""Control-plane clients for SCS instances."""

from .base import ScsClient, RemoteServiceError

__all__ = [
    'ScsClient',
    'RemoteServiceError'
]
