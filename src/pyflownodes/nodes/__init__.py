"""
Integration nodes - clients for the external systems a schema node can call.

- http_request: validated HTTP requests with status retry and GET caching
- sendgrid: SendGrid v3 mail API
- postgres: single-use asyncpg connections
- cache: TTL response cache
"""

from pyflownodes.nodes.cache import ResponseCache
from pyflownodes.nodes.http_request import (
    HttpRequestNode,
    HttpRequestParameters,
    HttpResponse,
)
from pyflownodes.nodes.postgres import PostgresClient, PostgresConnectionDetails
from pyflownodes.nodes.sendgrid import SendGridClient, SendGridParameters, SendGridResponse

__all__ = [
    "HttpRequestNode",
    "HttpRequestParameters",
    "HttpResponse",
    "PostgresClient",
    "PostgresConnectionDetails",
    "ResponseCache",
    "SendGridClient",
    "SendGridParameters",
    "SendGridResponse",
]
