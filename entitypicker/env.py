import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_env(path: Optional[Path] = None) -> None:
    """Load .env from the working directory if present. Existing variables win."""
    env_path = path or Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)


def catalog_url() -> Optional[str]:
    return os.getenv("ENTITYPICKER_CATALOG_URL") or None


def catalog_token() -> Optional[str]:
    return os.getenv("ENTITYPICKER_TOKEN") or None
