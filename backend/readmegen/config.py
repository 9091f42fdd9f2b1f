from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "readmegen"
    env: str
    database_url: str
    redis_url: str
    github_client_id: str
    github_client_secret: str
    github_oauth_redirect_uri: AnyHttpUrl
    github_timeout_seconds: float = 10.0
    frontend_url: AnyHttpUrl
    cors_origins: list[str] = []

    groq_api_key: str
    llm_base_url: AnyHttpUrl = "https://api.groq.com/openai/v1"
    llm_model: str = "llama-3.1-8b-instant"
    llm_max_tokens: int = 2000
    llm_temperature: float = 0.7
    llm_timeout_seconds: float = 60.0

    jwt_secret: str
    session_ttl_hours: int = 24

    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 60
    rate_limit_auth_per_window: int = 10
    rate_limit_guest_per_window: int = 3
    rate_limit_trust_forwarded_for: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
