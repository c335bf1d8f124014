"""Application configuration management."""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="chatmeter-zendesk-bridge", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # Zendesk
    zendesk_subdomain: Optional[str] = Field(default=None, alias="ZENDESK_SUBDOMAIN")
    zendesk_email: Optional[str] = Field(default=None, alias="ZENDESK_EMAIL")
    zendesk_api_token: Optional[str] = Field(default=None, alias="ZENDESK_API_TOKEN")
    zendesk_requester_email: str = Field(default="reviews@example.com", alias="ZENDESK_REQUESTER_EMAIL")
    zendesk_agent_id: Optional[int] = Field(default=None, alias="ZD_AGENT_ID")
    zendesk_group_id: Optional[int] = Field(default=None, alias="ZENDESK_GROUP_ID")
    zendesk_brand_id: Optional[int] = Field(default=None, alias="ZENDESK_BRAND_ID")

    # Zendesk custom field ids (omitted from payloads when unset)
    zd_field_review_id: Optional[int] = Field(default=None, alias="ZD_FIELD_REVIEW_ID")
    zd_field_location_id: Optional[int] = Field(default=None, alias="ZD_FIELD_LOCATION_ID")
    zd_field_location_name: Optional[int] = Field(default=None, alias="ZD_FIELD_LOCATION_NAME")
    zd_field_rating: Optional[int] = Field(default=None, alias="ZD_FIELD_RATING")
    zd_field_first_reply_sent: Optional[int] = Field(default=None, alias="ZD_FIELD_FIRST_REPLY_SENT")

    # Chatmeter
    chatmeter_base_url: str = Field(default="https://live.chatmeter.com/v5", alias="CHATMETER_V5_BASE")
    chatmeter_token: Optional[str] = Field(default=None, alias="CHATMETER_V5_TOKEN")
    chatmeter_auth_style: str = Field(default="raw", alias="CHATMETER_AUTH_STYLE")
    chatmeter_client_id: Optional[str] = Field(default=None, alias="CHM_CLIENT_ID")
    chatmeter_account_id: Optional[str] = Field(default=None, alias="CHM_ACCOUNT_ID")
    chatmeter_group_id: Optional[str] = Field(default=None, alias="CHM_GROUP_ID")

    # External key
    external_id_prefix: str = Field(default="chatmeter", alias="EXTERNAL_ID_PREFIX")
    external_id_include_platform: bool = Field(default=False, alias="EXTERNAL_ID_INCLUDE_PLATFORM")

    # Poller
    poller_lookback_minutes: int = Field(default=15, alias="POLLER_LOOKBACK_MINUTES")
    poller_max_items: int = Field(default=50, alias="POLLER_MAX_ITEMS")
    poller_concurrency: int = Field(default=5, alias="POLLER_CONCURRENCY")
    poller_interval_minutes: int = Field(default=10, alias="POLLER_INTERVAL_MINUTES")
    poller_detail_providers: List[str] = Field(
        default=["GOOGLE", "YELP", "TRUSTPILOT", "FACEBOOK", "BING"],
        alias="POLLER_DETAIL_PROVIDERS",
    )
    cron_secret: Optional[str] = Field(default=None, alias="CRON_SECRET")

    # Location lookup table
    location_map_json: Optional[str] = Field(default=None, alias="LOCATION_MAP_JSON")
    location_map_path: Optional[str] = Field(default=None, alias="LOCATION_MAP_PATH")

    # HTTP / retries
    http_timeout_seconds: float = Field(default=15.0, alias="HTTP_TIMEOUT_SECONDS")
    max_retries: int = Field(default=3, alias="MAX_RETRIES")
    retry_backoff_base_seconds: float = Field(default=1.0, alias="RETRY_BACKOFF_BASE_SECONDS")
    retry_backoff_max_seconds: float = Field(default=16.0, alias="RETRY_BACKOFF_MAX_SECONDS")

    # AWS Secrets Manager
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    secrets_manager_enabled: bool = Field(default=False, alias="SECRETS_MANAGER_ENABLED")
    zendesk_secrets_arn: Optional[str] = Field(default=None, alias="ZENDESK_SECRETS_ARN")
    chatmeter_secrets_arn: Optional[str] = Field(default=None, alias="CHATMETER_SECRETS_ARN")

    # Celery
    celery_broker_url: str = Field(default="redis://localhost:6379/0", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="redis://localhost:6379/0", alias="CELERY_RESULT_BACKEND")
    job_timeout_seconds: int = Field(default=600, alias="JOB_TIMEOUT_SECONDS")

    # Monitoring
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    @property
    def zendesk_base_url(self) -> str:
        """Get Zendesk REST API base URL."""
        return f"https://{self.zendesk_subdomain}.zendesk.com/api/v2"

    def get_custom_field_ids(self) -> dict:
        """Get configured Zendesk custom field ids keyed by review attribute."""
        field_map = {
            "review_id": self.zd_field_review_id,
            "location_id": self.zd_field_location_id,
            "location_name": self.zd_field_location_name,
            "rating": self.zd_field_rating,
            "first_reply_sent": self.zd_field_first_reply_sent,
        }
        return {name: field_id for name, field_id in field_map.items() if field_id}


# Global settings instance
settings = Settings()
