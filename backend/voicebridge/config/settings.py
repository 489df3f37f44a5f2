"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # App info
    app_name: str = "VoiceBridge"
    app_version: str = "1.0.0"
    debug: bool = False

    # Gemini Live
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash-native-audio-preview-09-2025"

    # RAG backend used by the cohort_chat tool
    rag_base_url: Optional[str] = None
    rag_api_key: Optional[str] = None  # sent as a bearer token when set
    rag_timeout_seconds: float = 30.0

    # Sessions
    session_timeout_seconds: int = 30 * 60  # 30 minutes
    session_cleanup_interval_seconds: int = 5 * 60  # 5 minutes
    memory_max_length: int = 10

    # Tools
    tool_dedupe_ttl_seconds: float = 15.0
    enable_example_tools: bool = True

    # Public URLs advertised by /api/config (derived from the request if unset)
    http_base_url: Optional[str] = None
    ws_base_url: Optional[str] = None
    ws_path: str = "/ws"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5500",
        "http://localhost:3001",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/voicebridge.log"
    log_file_enabled: bool = False
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True  # Log all HTTP requests/responses
    log_tools: bool = True  # Log every tool invocation
    latency_log: bool = False  # Per-session latency marks

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
