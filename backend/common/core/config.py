from typing import Optional, List
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import (
    Environment,
    StoreProvider,
    LockProvider,
    DispatchMode,
)


class BroadcastGroup(BaseModel):
    """Group chat posted to when documents reach selected stages."""

    name: str
    channel: str
    # Chat id, or phone/group id for the WhatsApp bridge
    endpoint: str
    # Stage values reached, plus "deleted" for cancellations
    stages: List[str] = []
    # Empty matches every document type
    document_types: List[str] = []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "approvals-engine"
    api_version: str = "v1"
    debug: bool = False

    # Document store
    store_provider: StoreProvider = StoreProvider.MEMORY

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @property
    def redis_connection_url(self) -> str:
        """Construct Redis URL from components."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        else:
            return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Locking
    lock_provider: LockProvider = LockProvider.MEMORY
    document_lock_ttl_seconds: int = 30
    document_lock_acquire_timeout_seconds: float = 5.0

    # Notification dispatch
    dispatch_mode: DispatchMode = DispatchMode.INLINE
    channel_delivery_timeout_seconds: float = 10.0
    artifact_render_timeout_seconds: float = 20.0
    dispatch_worker_prefetch_count: int = 5  # How many events to dispatch concurrently
    # Total tries per queued event before it is dead-lettered
    dispatch_max_delivery_attempts: int = 2
    # JSON list from the environment, e.g.
    # [{"name": "exit-permits", "channel": "telegram", "endpoint": "-1001", "stages": ["exited"]}]
    notification_broadcast_groups: List[BroadcastGroup] = []

    # RabbitMQ
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_username: str = "guest"
    rabbitmq_password: str = "guest"
    rabbitmq_vhost: str = "/"

    # Artifact rendering service
    artifact_renderer_url: Optional[str] = None

    # Web push (VAPID)
    vapid_private_key: Optional[str] = None
    vapid_claims_subject: str = "mailto:admin@example.com"

    # Firebase (native push + ID token verification)
    firebase_project_id: Optional[str] = None
    google_application_credentials: Optional[str] = None

    # Chat bridges
    telegram_bot_token: Optional[str] = None
    telegram_api_base_url: str = "https://api.telegram.org"
    bale_bot_token: Optional[str] = None
    bale_api_base_url: str = "https://tapi.bale.ai"
    whatsapp_bridge_url: Optional[str] = None
    whatsapp_bridge_token: Optional[str] = None

    # OpenTelemetry
    otel_service_name: str = "approvals-engine"
    otel_service_version: str = "0.1.0"

    # Axiom (export disabled when no token is set)
    axiom_token: Optional[str] = None
    axiom_dataset: Optional[str] = None

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:5173",
            ]
        return self.allowed_origins

    allowed_origins: List[str] = []


settings = Settings()
