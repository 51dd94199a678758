from pydantic import PrivateAttr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Loan Origination API"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "standard"

    # Local, client-side store for saved drafts (never the system of record)
    database_url: str = "sqlite+aiosqlite:///./loan_drafts.db"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Core banking backend that owns loans, documents and registries
    core_api_url: str = "http://localhost:8000/api"
    core_api_token: str | None = None
    core_api_timeout_seconds: float = 30.0

    second_approval_threshold: int = 200_000
    reloan_min_progress: float = 0.70
    max_draft_count: int = 10
    max_document_bytes: int = 5 * 1024 * 1024
    approval_overdue_minutes: int = 60
    draft_namespace: str = "loanCreation"
    max_wizard_sessions: int = 500
    wizard_session_idle_minutes: int = 120
    default_documentation_fee: int = 1000
    default_max_loan_amount: int = 500_000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    _is_sqlite: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: object) -> None:
        _scheme = self.database_url.split(":")[0].lower()
        object.__setattr__(self, "_is_sqlite", "sqlite" in _scheme)

    @property
    def is_sqlite(self) -> bool:
        return self._is_sqlite

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
