# YAML configuration and profile loader for tangent.
#
# Layout of the tangent home directory ($TANGENT_HOME or ~/.tangent):
#   config.yaml        API keys and the current profile file name
#   <profile>.yaml     one file per profile
#   history/           saved conversations

from __future__ import annotations

import os
import pathlib
import subprocess
import sys
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigError
from .fs import write_text_atomic
from .models import AppConfig, Profile

CONFIG_FILE = "config.yaml"
HISTORY_DIR = "history"


def tangent_dir() -> pathlib.Path:
    """Return the tangent home directory (not created)."""
    override = os.environ.get("TANGENT_HOME", "").strip()
    if override:
        return pathlib.Path(override).expanduser()
    return pathlib.Path.home() / ".tangent"


def history_dir() -> pathlib.Path:
    return tangent_dir() / HISTORY_DIR


def ensure_tangent_dir() -> pathlib.Path:
    """
    Create the home directory with a default config and profile on first use.

    Existing files are never overwritten.
    """
    root = tangent_dir()
    try:
        root.mkdir(parents=True, exist_ok=True, mode=0o700)
        cfg_path = root / CONFIG_FILE
        if not cfg_path.exists():
            _dump_yaml(cfg_path, AppConfig().model_dump())
        default_profile = root / AppConfig().current_profile
        if not default_profile.exists():
            _dump_yaml(default_profile, Profile().model_dump())
    except OSError as e:
        raise ConfigError(f"cannot initialize {root}: {e}") from e
    return root


def _dump_yaml(path: pathlib.Path, data: Dict[str, Any]) -> None:
    write_text_atomic(path, yaml.safe_dump(data, sort_keys=False, allow_unicode=True))


def _load_yaml_mapping(path: pathlib.Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def load_config() -> AppConfig:
    """
    Load config.yaml, filling missing API keys from OPENAI_API_KEY / ANTHROPIC_API_KEY.

    Raises:
        ConfigError: the file is unreadable or does not validate.
    """
    root = ensure_tangent_dir()
    data = _load_yaml_mapping(root / CONFIG_FILE)
    try:
        cfg = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid {CONFIG_FILE}: {e}") from e
    if not cfg.openai_api_key:
        cfg.openai_api_key = os.environ.get("OPENAI_API_KEY", "")
    if not cfg.anthropic_api_key:
        cfg.anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY", "")
    return cfg


def save_config(cfg: AppConfig) -> None:
    """Persist config.yaml. Keys taken from the environment are not written back."""
    root = ensure_tangent_dir()
    on_disk = AppConfig.model_validate(_load_yaml_mapping(root / CONFIG_FILE))
    data = cfg.model_dump()
    data["openai_api_key"] = on_disk.openai_api_key
    data["anthropic_api_key"] = on_disk.anthropic_api_key
    try:
        _dump_yaml(root / CONFIG_FILE, data)
    except OSError as e:
        raise ConfigError(f"cannot write {CONFIG_FILE}: {e}") from e


def list_profiles() -> List[str]:
    """Profile file names in the home directory, sorted."""
    root = ensure_tangent_dir()
    return sorted(
        p.name for p in root.iterdir()
        if p.is_file() and p.suffix in (".yaml", ".yml") and p.name != CONFIG_FILE
    )


def load_profile(cfg: AppConfig, name: Optional[str] = None) -> Profile:
    """
    Load a profile by file name (with or without .yaml); defaults to cfg.current_profile.

    Raises:
        ConfigError: the profile file is missing or invalid.
    """
    root = ensure_tangent_dir()
    target = (name or cfg.current_profile or "").strip()
    if not target:
        raise ConfigError("no profile selected")
    path = root / target
    if not path.suffix:
        path = path.with_suffix(".yaml")
    if not path.exists():
        raise ConfigError(f"profile not found: {path.name}")
    try:
        return Profile.model_validate(_load_yaml_mapping(path))
    except ValidationError as e:
        raise ConfigError(f"invalid profile {path.name}: {e}") from e


def open_config_dir() -> pathlib.Path:
    """Open the tangent home directory in the platform file browser."""
    root = ensure_tangent_dir()
    if sys.platform.startswith("win"):
        cmd = ["explorer", str(root)]
    elif sys.platform == "darwin":
        cmd = ["open", str(root)]
    else:
        cmd = ["xdg-open", str(root)]
    try:
        subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        raise ConfigError(f"cannot open {root}: {e}") from e
    return root
