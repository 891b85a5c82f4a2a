import json
import os
import secrets
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_PORT = 3000
DEFAULT_ENRICHMENT_TIMEOUT = 5.0


class ConfigurationError(Exception):
    """Startup configuration is missing or invalid. Fatal."""


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid {key}: expected a string, got {value!r}")
    return value or None


@dataclass
class JukeboxConfig:
    host_ip: str
    port: int = DEFAULT_PORT
    trust_proxy: bool = False
    require_login: bool = False
    username: Optional[str] = None
    password_hash: Optional[str] = None
    session_secret: Optional[str] = None
    library_url: Optional[str] = None
    library_token: Optional[str] = None
    library_user_id: Optional[str] = None
    enrichment_timeout: float = DEFAULT_ENRICHMENT_TIMEOUT
    advertise: bool = True
    headless: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "JukeboxConfig":
        if not isinstance(data, dict):
            raise ConfigurationError("config must be a JSON object")

        host_ip = data.get("hostIp")
        if not isinstance(host_ip, str) or not host_ip.strip():
            raise ConfigurationError('config.json is missing "hostIp"')

        port = data.get("port", DEFAULT_PORT)
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            raise ConfigurationError(f"Invalid port: {port!r}")

        timeout = data.get("enrichmentTimeout", DEFAULT_ENRICHMENT_TIMEOUT)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError(f"Invalid enrichmentTimeout: {timeout!r}")

        require_login = data.get("requireLogin") is True
        username = _optional_str(data, "username")
        password_hash = _optional_str(data, "passwordHash")
        if require_login and not (username and password_hash):
            raise ConfigurationError(
                'requireLogin is enabled but "username" or "passwordHash" is missing'
            )

        library_url = _optional_str(data, "libraryUrl")
        if library_url:
            library_url = library_url.rstrip("/")

        return cls(
            host_ip=host_ip.strip(),
            port=port,
            trust_proxy=data.get("trustProxy") is True,
            require_login=require_login,
            username=username,
            password_hash=password_hash,
            session_secret=_optional_str(data, "sessionSecret"),
            library_url=library_url,
            library_token=_optional_str(data, "libraryToken"),
            library_user_id=_optional_str(data, "libraryUserId"),
            enrichment_timeout=float(timeout),
            advertise=data.get("advertise", True) is not False,
            headless=data.get("headless") is True,
        )

    def secret_key(self) -> str:
        # A random key means sessions do not survive a restart, same as the queue.
        if not self.session_secret:
            self.session_secret = "lan-jukebox-secret-" + secrets.token_hex(16)
        return self.session_secret


def load_config(path: Optional[str] = None) -> JukeboxConfig:
    """Read and validate config.json. Raises ConfigurationError on any problem."""
    path = path or os.environ.get("JUKEBOX_CONFIG", DEFAULT_CONFIG_PATH)
    logger.info(f"Loading config from: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Could not find config file at {path}")
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}")

    return JukeboxConfig.from_dict(data)
