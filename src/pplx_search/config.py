import os
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path

from dotenv import dotenv_values, load_dotenv

from pplx_search.errors import EmptyCredential, MissingCredential

logger = getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".pplx_search.conf"
DEFAULT_API_URL = "https://api.perplexity.ai/chat/completions"
DEFAULT_MODEL = "sonar"
DEFAULT_TIMEOUT = 30.0

API_KEY_PREFIX = "pplx-"


@dataclass
class Settings:
    config_file: Path = field(default_factory=lambda: DEFAULT_CONFIG_FILE)
    api_url: str = DEFAULT_API_URL
    default_model: str = DEFAULT_MODEL
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the environment, after loading a .env file from
        the working directory if there is one.
        """
        load_dotenv()

        timeout = os.getenv("PPLX_TIMEOUT")
        try:
            timeout = float(timeout) if timeout else DEFAULT_TIMEOUT
        except ValueError:
            logger.warning(f"Invalid PPLX_TIMEOUT value: {timeout}, using {DEFAULT_TIMEOUT}")
            timeout = DEFAULT_TIMEOUT

        config_file = os.getenv("PPLX_CONFIG_FILE")
        return cls(
            config_file=Path(config_file).expanduser() if config_file else DEFAULT_CONFIG_FILE,
            api_url=os.getenv("PPLX_API_URL", DEFAULT_API_URL),
            default_model=os.getenv("PPLX_DEFAULT_MODEL", DEFAULT_MODEL),
            timeout=timeout,
        )


def load_api_key(config_file: Path) -> str:
    if not config_file.is_file():
        raise MissingCredential()

    api_key = (dotenv_values(config_file).get("API_KEY") or "").strip()
    if not api_key:
        raise EmptyCredential()
    return api_key


def save_api_key(config_file: Path, api_key: str) -> Path:
    """Write the key to the credential file, readable only by its owner."""
    config_file.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(config_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(f"API_KEY={api_key}\n")
    # O_CREAT's mode only applies to new files
    os.chmod(config_file, 0o600)
    logger.debug(f"Saved API key to {config_file}")
    return config_file


def looks_like_api_key(api_key: str) -> bool:
    return api_key.startswith(API_KEY_PREFIX)


def mask_api_key(api_key: str, visible: int = 10) -> str:
    return f"{api_key[:visible]}..."
