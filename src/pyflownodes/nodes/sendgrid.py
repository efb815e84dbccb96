"""
SendGrid mail node.

Sends one email through the SendGrid v3 mail API over httpx. Two shapes are
supported: a body email (plain text and/or HTML) and a template email
(template id plus dynamic template data).

Node configuration (wire form):

    {
        "connection": {"apiKey": "SG.xxx"},
        "email": {
            "to": "user@example.com",          # or a list
            "from": "noreply@example.com",
            "subject": "Hello",
            "type": "body",                     # or "template"
            "body": {"text": "...", "html": "..."},
            "templateId": "d-123",
            "dynamicTemplateData": {...}
        }
    }
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from pyflownodes.errors import NodeConfigurationError

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass(frozen=True)
class SendGridParameters:
    api_key: str | None
    to: tuple[str, ...]
    from_email: str | None
    subject: str | None
    type: str = "body"
    text: str = ""
    html: str = ""
    template_id: str | None = None
    dynamic_template_data: Mapping[str, Any] | None = None

    @classmethod
    def from_node_config(
        cls, config: Mapping[str, Any], default_api_key: str | None = None
    ) -> SendGridParameters:
        """
        Map ``{email, connection}`` node configuration to parameters.

        Raises:
            NodeConfigurationError: If ``email`` or ``connection`` is missing
        """
        email = config.get("email")
        connection = config.get("connection")
        if not isinstance(email, Mapping) or not isinstance(connection, Mapping):
            raise NodeConfigurationError(
                "Invalid config structure: missing email or connection configuration"
            )

        to = email.get("to") or ()
        body = email.get("body") or {}
        return cls(
            api_key=connection.get("apiKey") or default_api_key,
            to=(to,) if isinstance(to, str) else tuple(to),
            from_email=email.get("from"),
            subject=email.get("subject"),
            type=email.get("type") or "body",
            text=body.get("text") or "",
            html=body.get("html") or "",
            template_id=email.get("templateId"),
            dynamic_template_data=email.get("dynamicTemplateData"),
        )

    def validate(self) -> None:
        if not self.api_key:
            raise NodeConfigurationError("SendGrid API key is required")
        if not self.to:
            raise NodeConfigurationError("Recipient (to) is required")
        if not self.from_email:
            raise NodeConfigurationError("Sender (from) is required")
        if not self.subject:
            raise NodeConfigurationError("Subject is required")
        if not self.text and not self.html and not self.template_id:
            raise NodeConfigurationError("Either text, HTML content, or template ID is required")
        if self.template_id is not None and (
            not isinstance(self.template_id, str) or not self.template_id
        ):
            raise NodeConfigurationError("Invalid template ID format")

    def to_payload(self) -> dict[str, Any]:
        """Request body for the v3 mail API."""
        personalization: dict[str, Any] = {"to": [{"email": address} for address in self.to]}
        if self.template_id and self.dynamic_template_data:
            personalization["dynamic_template_data"] = dict(self.dynamic_template_data)

        payload: dict[str, Any] = {
            "personalizations": [personalization],
            "from": {"email": self.from_email},
            "subject": self.subject,
        }
        content = []
        if self.text:
            content.append({"type": "text/plain", "value": self.text})
        if self.html:
            content.append({"type": "text/html", "value": self.html})
        if content:
            payload["content"] = content
        if self.template_id:
            payload["template_id"] = self.template_id
        return payload


@dataclass(frozen=True)
class SendGridResponse:
    success: bool
    status_code: int
    message: str
    error: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "statusCode": self.status_code,
            "message": self.message,
        }
        if self.error is not None:
            result["error"] = self.error
        if self.headers:
            result["headers"] = self.headers
        return result


class SendGridClient:
    """
    Thin SendGrid mail API client.

    Args:
        client: Shared httpx.AsyncClient (caller owns it); a short-lived
            client is created per send when omitted
        api_url: Mail send endpoint
    """

    def __init__(self, client: httpx.AsyncClient | None = None, api_url: str = SENDGRID_API_URL):
        self._client = client
        self._api_url = api_url

    async def send(self, params: SendGridParameters) -> SendGridResponse:
        """
        Send one email.

        Transport and API failures are reported in the response, not raised.

        Raises:
            NodeConfigurationError: If the parameters are invalid
        """
        params.validate()
        headers = {
            "Authorization": f"Bearer {params.api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._api_url, json=params.to_payload(), headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(
                        self._api_url, json=params.to_payload(), headers=headers
                    )
        except httpx.HTTPError as e:
            logger.error(f"Error sending email: {e}")
            return SendGridResponse(
                success=False, status_code=500, message="Failed to send email", error=str(e)
            )

        if response.is_success:
            return SendGridResponse(
                success=True,
                status_code=response.status_code,
                message="Email sent successfully",
                headers={k: str(v) for k, v in response.headers.items()},
            )

        logger.error(f"SendGrid rejected email: HTTP {response.status_code} {response.text}")
        return SendGridResponse(
            success=False,
            status_code=response.status_code,
            message="Failed to send email",
            error=response.text,
        )
