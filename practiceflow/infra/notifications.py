"""
Notification Providers

Email (AWS SES) and SMS (AWS SNS) delivery. boto3 is synchronous, so each
call runs in a worker thread. Providers never raise: every outcome,
including missing configuration, is reported as a ProviderResult.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from practiceflow.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ProviderResult:
    """Outcome of one provider call."""
    success: bool
    message: str
    provider: str
    provider_message_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "message": self.message,
            "provider": self.provider,
            "provider_message_id": self.provider_message_id,
        }


def _client_config() -> Config:
    timeout = settings.provider_timeout_seconds
    return Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": 1},
    )


class EmailProvider:
    """AWS SES email sender."""

    name = "ses"

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or settings.ses_configured

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "ses",
                region_name=settings.aws_ses_region,
                aws_access_key_id=settings.aws_ses_access_key_id,
                aws_secret_access_key=settings.aws_ses_secret_access_key,
                config=_client_config(),
            )
        return self._client

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> ProviderResult:
        """
        Send an HTML email.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body
            text: Optional plain-text alternative

        Returns:
            ProviderResult with the SES MessageId on success
        """
        if not self.configured:
            logger.warning("SES not configured - email not sent")
            return ProviderResult(False, "Email provider not configured", self.name)

        body: dict[str, Any] = {"Html": {"Data": html, "Charset": "UTF-8"}}
        if text:
            body["Text"] = {"Data": text, "Charset": "UTF-8"}

        source = f"{settings.aws_ses_from_name} <{settings.aws_ses_from_email}>"

        try:
            client = self._get_client()
            response = await asyncio.to_thread(
                client.send_email,
                Source=source,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": body,
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SES send failed: {e}")
            return ProviderResult(False, str(e), self.name)

        message_id = response.get("MessageId")
        logger.info(f"Email sent via SES: {message_id}")
        return ProviderResult(True, "Email sent", self.name, message_id)


class SmsProvider:
    """AWS SNS transactional SMS sender."""

    name = "sns"

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or settings.sns_configured

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "sns",
                region_name=settings.aws_sns_region,
                aws_access_key_id=settings.aws_sns_access_key_id,
                aws_secret_access_key=settings.aws_sns_secret_access_key,
                config=_client_config(),
            )
        return self._client

    async def send_sms(self, to: str, body: str) -> ProviderResult:
        """
        Send an SMS.

        Args:
            to: Phone number (E.164 format)
            body: Message text

        Returns:
            ProviderResult with the SNS MessageId on success
        """
        if not self.configured:
            logger.warning("SNS not configured - SMS not sent")
            return ProviderResult(False, "SMS provider not configured", self.name)

        try:
            client = self._get_client()
            response = await asyncio.to_thread(
                client.publish,
                PhoneNumber=to,
                Message=body,
                MessageAttributes={
                    "AWS.SNS.SMS.SMSType": {
                        "DataType": "String",
                        "StringValue": "Transactional",
                    },
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SNS publish failed: {e}")
            return ProviderResult(False, str(e), self.name)

        message_id = response.get("MessageId")
        logger.info(f"SMS sent via SNS: {message_id}")
        return ProviderResult(True, "SMS sent", self.name, message_id)


_email_provider: Optional[EmailProvider] = None
_sms_provider: Optional[SmsProvider] = None


def get_email_provider() -> EmailProvider:
    """Get email provider singleton."""
    global _email_provider
    if _email_provider is None:
        _email_provider = EmailProvider()
    return _email_provider


def get_sms_provider() -> SmsProvider:
    """Get SMS provider singleton."""
    global _sms_provider
    if _sms_provider is None:
        _sms_provider = SmsProvider()
    return _sms_provider
