"""AWS Secrets Manager integration for upstream API credentials."""

import json
from typing import Any, Dict, Optional
import boto3
from botocore.exceptions import ClientError
import structlog

from app.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)


class SecretsManager:
    """Reads Zendesk and Chatmeter credentials from AWS Secrets Manager."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._client = None

    @property
    def client(self):
        """Lazily created boto3 client; None when Secrets Manager is disabled."""
        if self._client is None and self.settings.secrets_manager_enabled:
            self._client = boto3.client(
                "secretsmanager",
                region_name=self.settings.aws_region,
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
            )
        return self._client

    def get_secret(self, secret_arn: str) -> Dict[str, Any]:
        """
        Retrieve a JSON secret.

        Args:
            secret_arn: ARN of the secret

        Returns:
            Secret data as dict

        Raises:
            ValueError: If Secrets Manager is disabled, or the secret is missing,
                forbidden or not a JSON object
        """
        if not self.client:
            raise ValueError("Secrets Manager is not enabled")

        logger.info("retrieving_secret", arn=secret_arn)
        try:
            response = self.client.get_secret_value(SecretId=secret_arn)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            logger.error("secret_retrieval_failed", arn=secret_arn, error_code=error_code)

            if error_code == "ResourceNotFoundException":
                raise ValueError(f"Secret not found: {secret_arn}")
            elif error_code == "AccessDeniedException":
                raise ValueError(f"Access denied to secret: {secret_arn}")
            raise

        try:
            secret_data = json.loads(response.get("SecretString") or "")
        except ValueError:
            raise ValueError(f"Secret is not valid JSON: {secret_arn}")
        if not isinstance(secret_data, dict):
            raise ValueError(f"Secret is not a JSON object: {secret_arn}")

        logger.info("secret_retrieved", arn=secret_arn)
        return secret_data

    def get_zendesk_credentials(self) -> Optional[Dict[str, str]]:
        """
        Get Zendesk API credentials.

        Returns:
            Dict with email and api_token, or None if not configured
        """
        if not self.settings.secrets_manager_enabled or not self.settings.zendesk_secrets_arn:
            return None

        secret_data = self.get_secret(self.settings.zendesk_secrets_arn)
        return {
            "email": secret_data.get("email"),
            "api_token": secret_data.get("api_token"),
        }

    def get_chatmeter_credentials(self) -> Optional[Dict[str, str]]:
        """Get the Chatmeter API token, or None if not configured."""
        if not self.settings.secrets_manager_enabled or not self.settings.chatmeter_secrets_arn:
            return None

        secret_data = self.get_secret(self.settings.chatmeter_secrets_arn)
        return {"token": secret_data.get("token")}
