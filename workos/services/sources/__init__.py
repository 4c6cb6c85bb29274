"""
Message source clients.

Each client fetches raw messages from one external service and translates a
UTC target day into that service's native query syntax.
"""

from workos.services.sources.base import BaseSourceClient, SourceAPIError, SourceAuthError
from workos.services.sources.gmail_client import GmailSourceClient
from workos.services.sources.slack_client import SlackSourceClient

__all__ = [
    "BaseSourceClient",
    "GmailSourceClient",
    "SlackSourceClient",
    "SourceAPIError",
    "SourceAuthError",
]
