# app/config.py
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/database.db"
    persist_conversations: bool = True

    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_ssl: bool = False
    redis_connection_timeout: int = 5
    redis_socket_timeout: int = 5
    mock_redis: bool = False  # Fallback to in-memory cache
    relay_session_ttl: int = 3600

    # OpenAI Realtime (missing key means sessions are refused)
    openai_api_key: Optional[str] = None
    openai_realtime_url: str = "wss://api.openai.com/v1/realtime"
    openai_realtime_model: str = "gpt-4o-realtime-preview-2024-10-01"
    upstream_connect_timeout: float = 10.0
    handshake_timeout: float = 15.0

    # Default upstream session configuration
    default_topic: str = "daily"
    default_voice: str = "alloy"
    transcription_model: str = "whisper-1"
    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 1000
    temperature: float = 0.8

    # Relay buffers (0 = unbounded)
    client_binary_sample_rate: int = 24000
    client_audio_format: str = "pcm16"  # "pcm16" or "wav"
    audio_queue_max_chunks: int = 0
    client_outbound_max_frames: int = 0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = "server.log"

    class Config:
        env_file = ".env"

    def get_redis_url(self) -> str:
        """Generate Redis URL with proper formatting"""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        protocol = "rediss" if self.redis_ssl else "redis"
        return f"{protocol}://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    def get_redis_hosts_to_try(self) -> List[str]:
        """Redis hosts to try in order of preference"""
        hosts = [self.redis_host]
        if self.redis_host in ["localhost", "127.0.0.1"]:
            for alternative in ["127.0.0.1", "host.docker.internal"]:
                if alternative not in hosts:
                    hosts.append(alternative)
        return hosts

    def get_realtime_uri(self) -> str:
        """Upstream realtime endpoint including the model query"""
        return f"{self.openai_realtime_url}?model={self.openai_realtime_model}"

    def has_upstream_credentials(self) -> bool:
        return bool(self.openai_api_key and self.openai_api_key.strip())

settings = Settings()
