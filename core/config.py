import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent


def _env(*names: str, default: str = "") -> str:
    """Первая непустая переменная окружения из списка"""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class Config:
    data_dir: str = str(ROOT_DIR / "storage")
    seed_path: str = str(ROOT_DIR / "data" / "seed.json")
    log_dir: str = "logs"
    log_level: str = "INFO"
    supabase_url: str = ""
    supabase_key: str = ""
    remote_timeout: float = 15.0
    admin_username: str = "admin"
    admin_password: str = "admin"
    base_url: str = "http://localhost:8501"

    @staticmethod
    def from_env() -> "Config":
        """Читает .env (если есть) и переменные окружения"""
        load_dotenv()
        try:
            timeout = float(_env("DIGISTORE_REMOTE_TIMEOUT", default="15"))
        except ValueError:
            timeout = 15.0
        return Config(
            data_dir=_env("DIGISTORE_DATA_DIR", default=str(ROOT_DIR / "storage")),
            seed_path=_env("DIGISTORE_SEED_PATH", default=str(ROOT_DIR / "data" / "seed.json")),
            log_dir=_env("DIGISTORE_LOG_DIR", default="logs"),
            log_level=_env("DIGISTORE_LOG_LEVEL", default="INFO").upper(),
            # VITE_* имена из фронтенд-сборки, поддерживаем оба варианта
            supabase_url=_env("SUPABASE_URL", "VITE_SUPABASE_URL"),
            supabase_key=_env("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"),
            remote_timeout=timeout,
            admin_username=_env("DIGISTORE_ADMIN_USER", default="admin"),
            admin_password=_env("DIGISTORE_ADMIN_PASSWORD", default="admin"),
            base_url=_env("DIGISTORE_BASE_URL", default="http://localhost:8501").rstrip("/"),
        )
