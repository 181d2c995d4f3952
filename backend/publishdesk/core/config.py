from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Publish Desk"
    app_env: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "publish_desk"
    postgres_user: str = "publish_desk"
    postgres_password: str = "publish_desk"

    database_url: str | None = None
    frontend_origin: str = "http://localhost:3000"
    public_app_url: str = "http://localhost:3000"
    accounts_page_path: str = "/settings/accounts"
    channel_select_path: str = "/settings/accounts/select-channel"

    jwt_secret_key: str = "change_this_in_production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 10080
    auth_cookie_name: str = "publish-desk-session"
    # HTTP-only deployments set SECURE_COOKIE=false
    secure_cookie: bool = True

    token_encryption_key: str | None = None
    token_refresh_buffer_minutes: int = 5

    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_redirect_uri: str | None = None
    google_http_timeout_seconds: float = 20.0
    oauth_state_ttl_seconds: int = 300
    channel_select_ttl_seconds: int = 300
    channel_refresh_ttl_seconds: int = 600

    n8n_webhook_url: str = "http://localhost:5678"
    n8n_api_key: str | None = None
    n8n_timeout_seconds: float = 30.0
    publish_workflow_name: str = "sop-05-publish-content"
    publish_callback_secret: str | None = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def use_secure_cookies(self) -> bool:
        return self.secure_cookie and self.app_env == "production"

    @property
    def cors_allowed_origins(self) -> list[str]:
        origins: list[str] = []
        for origin in (self.frontend_origin.strip(), self.public_app_url.strip()):
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def google_oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_redirect_uri)


settings = Settings()
