# release_desk/config_loader.py
from __future__ import annotations
"""
Configuration for the Allotment Release Desk (ARD).

One YAML file drives the server, the terminal desk and the tools:
    config/config.yaml   (or the file named by $RELEASE_DESK_CONFIG)

Layout
------
app.engine.persistence   sqlite_path (required), recreate_on_boot
app.engine.server        host, port
app.release              station_id, scanner{terminators, accept_tab, cancel_keys},
                         notification{duration_ms}
log.level

A missing or unreadable file, or one without a ledger path, fails at import
with a RuntimeError naming the file it tried. Absent optional sections read
as {} and the accessors fill in defaults.

Public API
----------
- CONFIG: dict                              # loaded at import
- load_config(path=None)                    # re-read (tests, tools)
- get_db_path() -> pathlib.Path
- get_persistence_cfg() -> dict
- get_release_cfg() -> dict
- get_scanner_cfg() -> dict
- get_notification_cfg() -> dict
- get_station_id() -> str
- get_log_level(default="INFO") -> str
- get_server_bind() -> tuple[str, int]
"""

import os
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

# ---------- Files & roots ----------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CFG  = PROJECT_ROOT / "config" / "config.yaml"
ENV_CFG      = "RELEASE_DESK_CONFIG"

DEFAULT_STATION_ID = "desk-1"
DEFAULT_BIND = ("127.0.0.1", 8000)


# ---------- I/O helpers ----------
def _read_mapping(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise RuntimeError(
            f"Release desk config not found: {path}\n"
            f"Create it from the template in {PROJECT_ROOT / 'config'} "
            f"or point ${ENV_CFG} at another file."
        )
    except OSError as ex:
        raise RuntimeError(f"Cannot read release desk config {path}: {type(ex).__name__}: {ex}")

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as ex:
        raise RuntimeError(f"Invalid YAML in {path}: {ex}")

    if not isinstance(data, dict):
        raise RuntimeError(f"{path} must hold a mapping at the top level, got {type(data).__name__}")
    return data


def _abs(p: str | os.PathLike[str]) -> Path:
    """Relative paths are taken from the repo root."""
    pth = Path(p)
    return pth if pth.is_absolute() else (PROJECT_ROOT / pth).resolve()


def _section(cfg: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    node: Any = cfg
    for k in keys:
        node = node.get(k) if isinstance(node, dict) else None
    return node if isinstance(node, dict) else {}


# ---------- Loader ----------
def load_config(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """Read `path`, else $RELEASE_DESK_CONFIG, else config/config.yaml."""
    chosen = path or os.getenv(ENV_CFG)
    cfg_path = _abs(chosen) if chosen else DEFAULT_CFG
    cfg = _read_mapping(cfg_path)

    sqlite_path = _section(cfg, "app", "engine", "persistence").get("sqlite_path")
    if not isinstance(sqlite_path, (str, os.PathLike)) or not str(sqlite_path).strip():
        raise RuntimeError(
            f"{cfg_path}: app.engine.persistence.sqlite_path must name the release ledger database"
        )
    return cfg


CONFIG: Dict[str, Any] = load_config()


# ---------- Accessors ----------
def get_persistence_cfg() -> Dict[str, Any]:
    return _section(CONFIG, "app", "engine", "persistence")


def get_db_path() -> Path:
    """Absolute path of the release ledger database."""
    return _abs(get_persistence_cfg()["sqlite_path"])


def get_release_cfg() -> Dict[str, Any]:
    return _section(CONFIG, "app", "release")


def get_scanner_cfg() -> Dict[str, Any]:
    """Keyboard-wedge settings: terminators, accept_tab, cancel_keys."""
    return _section(CONFIG, "app", "release", "scanner")


def get_notification_cfg() -> Dict[str, Any]:
    return _section(CONFIG, "app", "release", "notification")


def get_station_id() -> str:
    """Stamped as released_by on every release this process commits."""
    return str(get_release_cfg().get("station_id") or DEFAULT_STATION_ID)


def get_log_level(default: str = "INFO") -> str:
    return str(_section(CONFIG, "log").get("level") or default).upper()


def get_server_bind() -> Tuple[str, int]:
    server = _section(CONFIG, "app", "engine", "server")
    host, port = server.get("host"), server.get("port")
    if isinstance(host, str) and isinstance(port, int):
        return host, port
    return DEFAULT_BIND
