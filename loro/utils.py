"""Where loro keeps its trigger config, function key and invocation logs."""
import json
import os
from pathlib import Path
from typing import Optional


LORO_HOME_ENV = "LORO_HOME"
SYSTEM_CONFIG_PATH = Path("/etc/loro/config.json")
DEFAULT_HOME = Path("~/.loro")


def _system_home() -> Optional[Path]:
    if not SYSTEM_CONFIG_PATH.is_file():
        return None
    try:
        configured = read_json(SYSTEM_CONFIG_PATH).get("home")
    except (OSError, ValueError):
        # unreadable system config means no system-wide home
        return None
    return Path(str(configured)).expanduser() if configured else None


def get_home() -> Path:
    """``$LORO_HOME``, then ``home`` from the system config, then ``~/.loro``."""
    env_home = os.environ.get(LORO_HOME_ENV)
    if env_home:
        return Path(env_home).expanduser()
    return _system_home() or DEFAULT_HOME.expanduser()


def config_path() -> Path:
    return get_home() / "loro.json"


def keys_path() -> Path:
    return get_home() / "keys.json"


def log_path(name: str) -> Path:
    return get_home() / "logs" / f"{name}.log"


def ensure_dirs() -> None:
    (get_home() / "logs").mkdir(parents=True, exist_ok=True)


def read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json(path: Path, data: dict) -> None:
    # write-then-rename so a crashed write never leaves half a key file
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f".{path.name}.partial")
    staging.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    os.replace(staging, path)
