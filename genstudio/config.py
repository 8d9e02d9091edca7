"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # genstudio/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Kling: access/secret pair (signed JWT) takes precedence over the static api key
    kling_access_key: str | None = None
    kling_secret_key: str | None = None
    kling_api_key: str | None = None
    kling_api_base_url: str = "https://api.klingai.com"
    # When set, every Kling submission carries this callback URL
    kling_callback_url: str | None = None

    # Google (Veo, Imagen, Gemini image)
    google_api_key: str | None = None
    google_api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Data directory: uploads, merged videos and generation records live here
    genstudio_data_dir: str = "./data"

    # Base URL used to build public links for files in the uploads directory
    public_base_url: str = "http://localhost:8000"

    # Record store backend: "file" (default) or "memory"
    record_store: str = "file"

    # Polling (video providers / image providers)
    poll_interval_seconds: float = 10.0
    poll_max_attempts: int = 120
    image_poll_interval_seconds: float = 5.0
    image_poll_max_attempts: int = 60
    poll_max_consecutive_errors: int = 3
    # Skip the poll loop for Kling jobs when a callback URL is configured
    skip_polling_with_webhook: bool = False

    # Retry of transient provider failures
    retry_attempts: int = 3
    retry_backoff_seconds: float = 1.0

    # Multi-stage workflows
    transition_video_concurrency: int = 2
    stage_image_timeout_seconds: float = 600.0

    # Download completed provider results into the uploads directory
    localize_results: bool = True

    # ffmpeg binary used for concatenation
    ffmpeg_binary: str = "ffmpeg"

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"
    # Optional regex to allow origins
    cors_origin_regex: str | None = None

    # Server port
    port: int = 8000

    # Max upload size in bytes (default 100 MB; videos are accepted)
    max_upload_bytes: int = 100 * 1024 * 1024

    @property
    def data_dir(self) -> Path:
        """Get data directory as Path.

        Relative paths are resolved against the project root (not CWD),
        so the backend works whether started from project root or backend/.
        """
        p = Path(self.genstudio_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def records_dir(self) -> Path:
        return self.data_dir / "generations"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.records_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
