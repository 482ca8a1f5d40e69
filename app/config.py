import json
import logging
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Load .env file from the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Also try loading from current directory
load_dotenv()


class Settings(BaseSettings):
    database_url: str = "sqlite:///./qr_scanner.db"
    log_level: str = "INFO"

    scan_debounce_interval_ms: int = 5000
    rescan_confirmation_threshold_ms: int = 10000
    display_text_limit: int = 50

    # Offline flag used when no mode file has been written yet
    offline_mode: bool = False
    mode_file: Path = Path("./app_mode.json")

    qr_size: int = 1024
    qr_margin: int = 1
    qr_error_correction: str = "M"

    profile_photo_max_kb: int = 200

    # Sessions not used for this long are closed and forgotten
    session_idle_timeout_s: int = 900
    max_sessions: int = 1000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


settings = Settings()


@dataclass(frozen=True)
class AppMode:
    offline: bool = False


def load_app_mode(path: Path | None = None, default: bool | None = None) -> AppMode:
    """
    Read the persisted online/offline choice.
    Missing or unreadable files fall back to the configured default.
    """
    path = path or settings.mode_file
    fallback = AppMode(offline=settings.offline_mode if default is None else default)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return fallback
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read app mode from {path}: {e}")
        return fallback
    return AppMode(offline=bool(data.get("offline", fallback.offline)))


def save_app_mode(mode: AppMode, path: Path | None = None) -> None:
    path = path or settings.mode_file
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump({"offline": mode.offline}, handle)
    logger.info(f"App mode saved: offline={mode.offline}")


def clear_app_mode(path: Path | None = None) -> None:
    """Forget the stored mode so the next session starts from the default."""
    path = path or settings.mode_file
    path.unlink(missing_ok=True)
