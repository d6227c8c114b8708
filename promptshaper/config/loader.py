# promptshaper/config/loader.py
"""
Loads and merges configuration from TOML files.

User settings come from ~/.config/promptshaper/config.toml; the first
project file found in the working directory is layered on top. Both may
declare `[profiles.<name>]` tables, merged project-over-user.
"""
import os
import toml
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from promptshaper.exceptions import ConfigError

log = structlog.get_logger(__name__)

PROJECT_CONFIG_FILENAMES = [".promptshaper.toml", "promptshaper.toml", "pyproject.toml"]
USER_CONFIG_DIR = Path.home() / ".config" / "promptshaper"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.toml"
PROFILE_ENV_VAR = "PROMPTSHAPER_PROFILE"

CONFIG_KEY_TO_CLICONFIG_ATTR_MAP: Dict[str, str] = {
    "variables": "user_vars",
    "file_extensions": "file_extensions",
    "ignore_patterns": "ignore_patterns",
    "encoding": "encoding",
    "show_tokens": "show_tokens_format",
    "output_file": "output_file",
    "clipboard": "clipboard",
    "debug": "debug",
}

def _load_toml_file_data(file_path: Path) -> Dict[str, Any]:
    if not file_path.is_file():
        return {}
    log.debug("loading_toml_config_file", path=str(file_path))
    try:
        data = toml.load(file_path)
    except (toml.TomlDecodeError, OSError) as e:
        log.error("config_file_load_error", path=str(file_path), error=str(e))
        return {}
    if file_path.name == "pyproject.toml":
        return data.get("tool", {}).get("promptshaper", {})
    return data

def load_and_merge_configs(cwd: Optional[Path] = None, user_config_file: Optional[Path] = None) -> Dict[str, Any]:
    cwd = cwd or Path.cwd()
    user_config_file = user_config_file or USER_CONFIG_FILE
    merged: Dict[str, Any] = {}
    if user_config_file.is_file():
        log.info("loading_user_global_config", path=str(user_config_file))
        merged.update(_load_toml_file_data(user_config_file))

    for filename in PROJECT_CONFIG_FILENAMES:
        candidate = cwd / filename
        if not candidate.is_file():
            continue
        project_settings = _load_toml_file_data(candidate)
        if not project_settings:
            continue
        log.info("loading_project_local_config", path=str(candidate))
        project_profiles = project_settings.pop("profiles", None)
        if project_profiles is not None:
            user_profiles = merged.get("profiles")
            if isinstance(user_profiles, dict) and isinstance(project_profiles, dict):
                project_profiles = {**user_profiles, **project_profiles}
            merged["profiles"] = project_profiles
        merged.update(project_settings)
        break
    if not merged:
        log.debug("no_configuration_files_loaded")
    return merged

def resolve_profile_name(cli_profile: Optional[str]) -> Optional[str]:
    # the command line wins over the environment.
    return cli_profile or os.environ.get(PROFILE_ENV_VAR) or None

def effective_settings(raw_config: Dict[str, Any], profile_name: Optional[str]) -> Dict[str, Any]:
    """Returns CliConfig attribute values from the base config plus the selected profile."""
    settings: Dict[str, Any] = {}
    layers = [raw_config]
    if profile_name:
        profiles = raw_config.get("profiles", {})
        profile = profiles.get(profile_name) if isinstance(profiles, dict) else None
        if profile is None:
            log.warning("profile_not_found_in_config_files", profile_name=profile_name)
        elif not isinstance(profile, dict):
            raise ConfigError(f"Profile '{profile_name}' must be a table")
        else:
            log.info("applying_profile_settings", profile=profile_name)
            layers.append(profile)

    for layer in layers:
        for key, attr in CONFIG_KEY_TO_CLICONFIG_ATTR_MAP.items():
            if key not in layer:
                continue
            value = layer[key]
            if key == "variables":
                if not isinstance(value, dict):
                    raise ConfigError("'variables' in configuration must be a table")
                settings[attr] = {**settings.get(attr, {}), **value}
            else:
                settings[attr] = value
    return settings
