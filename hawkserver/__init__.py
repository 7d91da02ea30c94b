"""
hawkserver - server side of the Hawk HTTP authentication scheme.

Verifies `Authorization: Hawk ...` request headers and bewit URLs, and signs
`Server-Authorization` response headers.
"""

__version__ = "1.0.0"

from hawkserver.artifacts import Artifacts
from hawkserver.bewit import Bewit, create_bewit
from hawkserver.clock import ConstantTimeProvider, SystemTimeProvider
from hawkserver.credentials import CallbackCredentialsProvider, Credentials
from hawkserver.errors import (
    ConfigurationError,
    HawkError,
    InvalidCredentialsError,
    UnauthorizedError,
)
from hawkserver.header import Header
from hawkserver.nonce import CallbackNonceValidator, MemoryNonceCache
from hawkserver.server import Response, Server

__all__ = [
    "Artifacts",
    "Bewit",
    "CallbackCredentialsProvider",
    "CallbackNonceValidator",
    "ConfigurationError",
    "ConstantTimeProvider",
    "Credentials",
    "HawkError",
    "Header",
    "InvalidCredentialsError",
    "MemoryNonceCache",
    "Response",
    "Server",
    "SystemTimeProvider",
    "UnauthorizedError",
    "create_bewit",
]
