import os
import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

DEFAULT_CONFIG_PATH = Path("conf/framecrush.yaml")

def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    With no explicit path a missing default file yields the built-in defaults;
    an explicit path that does not exist is an error.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        if config_path is not None:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        data = {}
    else:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

    config = AppConfig(**data)

    # Hosting platforms hand the port in via the environment
    port = os.environ.get("PORT")
    if port and port.strip().isdigit():
        config.server.port = int(port)
    return config
