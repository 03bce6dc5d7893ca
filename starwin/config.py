import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

PACKAGE_DIR = Path(__file__).resolve().parent


def _parse_csv_env(s: str) -> List[str]:
    parts = [p.strip() for p in (s or "").split(",")]
    return [p for p in parts if p]


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    db_sslmode: str = "require"
    db_dir: Path = Path("./database")
    db_file: str = "starwin_pro.db"
    admin_password: str = "123451"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    allow_origins: tuple = ("*",)
    allow_methods: tuple = ("*",)
    allow_headers: tuple = ("*",)
    allow_credentials: bool = False
    static_dir: Path = PACKAGE_DIR / "static"

    @property
    def db_path(self) -> Path:
        return Path(self.db_dir) / self.db_file

    @property
    def uses_postgres(self) -> bool:
        return bool(self.database_url)

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("ALLOWED_ORIGINS", "*")
        methods = os.getenv("CORS_ALLOW_METHODS", "*")
        headers = os.getenv("CORS_ALLOW_HEADERS", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            db_sslmode=os.getenv("DB_SSLMODE", "require"),
            db_dir=Path(os.getenv("DB_DIR", "./database")),
            db_file=os.getenv("DB_FILE", "starwin_pro.db"),
            admin_password=os.getenv("ADMIN_PASSWORD", "123451"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            allow_origins=("*",) if origins.strip() == "*" else tuple(_parse_csv_env(origins)),
            allow_methods=("*",) if methods.strip() == "*" else tuple(_parse_csv_env(methods)),
            allow_headers=("*",) if headers.strip() == "*" else tuple(_parse_csv_env(headers)),
            allow_credentials=_env_flag("CORS_ALLOW_CREDENTIALS"),
            static_dir=Path(os.getenv("STATIC_DIR", str(PACKAGE_DIR / "static"))),
        )
