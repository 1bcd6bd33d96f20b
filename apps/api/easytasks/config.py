from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  # Pooled URL used by the app; the direct URL (if set) is used by migrations.
  database_url: str = "postgresql+asyncpg://easytasks:easytasks@db:5432/easytasks"
  database_direct_url: str | None = None
  app_secret: str = "dev-secret-change-me"
  app_version: str = "v2026-10-19"
  public_base_url: str = "http://localhost:3000"

  storage_backend: str = "sql"  # sql | local
  local_store_path: str = "data/easytasks-local.json"

  cookie_secure: bool = False
  cookie_domain: str | None = None
  api_docs_enabled: bool = True

  # Shared rate-limit counters across replicas; unset keeps them per process.
  redis_url: str | None = None
  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  rate_limit_register_ip_per_minute: int = 20

  invitation_ttl_days: int = 7
  dashboard_timezone: str = "UTC"
  log_level: str = "INFO"

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web,test"

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def migration_database_url(self) -> str:
    return self.database_direct_url or self.database_url

  def is_local_mode(self) -> bool:
    return self.storage_backend.strip().lower() == "local"


settings = Settings()
