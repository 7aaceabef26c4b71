import hmac
import json
import secrets
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from .handler import handler
from .utils import config_path, keys_path, log_path, read_json, write_json


AUTH_LEVELS = ("function", "anonymous")
DEFAULT_KEY_NAME = "default"


@dataclass
class TriggerSpec:
    name: str = "LoroHttpTrigger"
    route: str = "LoroHttpTrigger"
    methods: Tuple[str, ...] = ("GET", "POST")
    auth_level: str = "function"  # "function" or "anonymous"
    logging: bool = True


def load_spec() -> TriggerSpec:
    path = config_path()
    if not path.exists():
        return TriggerSpec()
    cfg = read_json(path)
    defaults = TriggerSpec()
    auth_level = cfg.get("authLevel", defaults.auth_level)
    if auth_level not in AUTH_LEVELS:
        raise RuntimeError(f"Invalid authLevel in {path}: {auth_level!r}")
    return TriggerSpec(
        name=cfg.get("name", defaults.name),
        route=cfg.get("route", defaults.route),
        methods=tuple(m.upper() for m in cfg.get("methods", defaults.methods)),
        auth_level=auth_level,
        logging=bool(cfg.get("logging", defaults.logging)),
    )


def save_spec(spec: TriggerSpec) -> None:
    cfg = asdict(spec)
    cfg["methods"] = [m.lower() for m in spec.methods]
    cfg["authLevel"] = cfg.pop("auth_level")
    write_json(config_path(), cfg)


def _load_keys() -> Dict[str, str]:
    path = keys_path()
    if not path.exists():
        return {}
    return read_json(path)


def rotate_function_key(key_name: str = DEFAULT_KEY_NAME) -> str:
    keys = _load_keys()
    keys[key_name] = secrets.token_urlsafe(32)
    write_json(keys_path(), keys)
    return keys[key_name]


def get_function_key(key_name: str = DEFAULT_KEY_NAME) -> str:
    key = _load_keys().get(key_name)
    if key:
        return key
    return rotate_function_key(key_name)


def check_key(spec: TriggerSpec, supplied: Optional[str]) -> bool:
    if spec.auth_level == "anonymous":
        return True
    if not supplied:
        return False
    expected = get_function_key()
    return hmac.compare_digest(supplied.encode(), expected.encode())


def new_context(spec: TriggerSpec) -> Dict[str, Any]:
    return {"function": spec.name, "invocationId": uuid.uuid4().hex}


def invoke_function(spec: TriggerSpec, event: Dict[str, Any], context: Dict[str, Any]) -> Tuple[int, Dict[str, str], bytes]:
    method = str(event.get("method", "")).upper()
    if method not in spec.methods:
        raise RuntimeError(f"Method {method} not allowed for {spec.name}")
    result = handler(event, context)
    return normalize_result(result)


def normalize_result(result: Dict[str, Any]) -> Tuple[int, Dict[str, str], bytes]:
    """Turn a {statusCode, headers, body} result into what the host sends."""
    headers = {"Content-Type": "application/json", **(result.get("headers") or {})}
    body = json.dumps(result.get("body")).encode()
    return int(result.get("statusCode", 200)), headers, body


def write_log(name: str, record: Dict[str, Any]) -> None:
    path = log_path(name)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, sort_keys=True))
        f.write("\n")
