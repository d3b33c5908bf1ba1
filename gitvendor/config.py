"""
Tool settings for git-vendor.

These are user-level knobs (worker count, git timeout, API tokens), not the
per-project vendor declaration, which lives in ``.git-vendor/vendor.yml``
and is handled by :mod:`gitvendor.infra.yaml_store`.
"""

import json
import logging
import os
import sys
import tomllib
from pathlib import Path

import yaml

logger = logging.getLogger("gitvendor")

# Hard cap on concurrent vendor workers, regardless of configuration
MAX_WORKERS_CAP = 8

CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']


def get_config_path():
    """Get the path to the settings file.

    Checks in order:
    1. GITVENDOR_CONFIG environment variable
    2. ~/.gitvendor/config.{json,toml,yaml,yml}
    """
    if 'GITVENDOR_CONFIG' in os.environ:
        path = Path(os.environ['GITVENDOR_CONFIG'])
        if path.exists():
            return path

    config_dir = Path.home() / '.gitvendor'
    for filename in CONFIG_FILENAMES:
        path = config_dir / filename
        if path.exists():
            return path

    return config_dir / 'config.json'


def load_config():
    """Load settings: defaults, then the settings file, then environment."""
    config_path = get_config_path()
    config = get_default_config()

    if config_path.exists():
        try:
            suffix = config_path.suffix.lower()
            if suffix == '.toml':
                with open(config_path, 'rb') as f:
                    file_config = tomllib.load(f)
            elif suffix in ('.yaml', '.yml'):
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            else:
                with open(config_path, 'r') as f:
                    file_config = json.load(f)

            config = merge_configs(config, file_config)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error loading config from {config_path}: {e}")

    config = apply_env_overrides(config)

    # Well-known token variables, honoured when nothing else set them
    if not config['github']['token']:
        config['github']['token'] = os.environ.get('GITHUB_TOKEN', '')
    if not config['gitlab']['token']:
        config['gitlab']['token'] = os.environ.get('GITLAB_TOKEN', '')

    return config


def get_default_config():
    """Get default settings."""
    return {
        "sync": {
            "max_workers": 4,
        },
        "git": {
            "timeout_seconds": 300,
        },
        "updates": {
            "max_commits": 10,
            "fetch_depth": 20,
        },
        "github": {
            "token": "",
            "api_url": "https://api.github.com",
        },
        "gitlab": {
            "token": "",
            "api_url": "https://gitlab.com/api/v4",
        },
        "license": {
            "timeout_seconds": 10,
            "max_retries": 3,
        },
        "logging": {
            "level": "WARNING",
            "format": "%(levelname)s: %(message)s",
        },
    }


def merge_configs(base_config, override_config):
    """Deep-merge ``override_config`` into a copy of ``base_config``; nested sections merge key by key."""
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def _coerce_env_value(value: str):
    if value.isdigit():
        return int(value)
    if value.lower() in ('true', 'yes', 'on'):
        return True
    if value.lower() in ('false', 'no', 'off'):
        return False
    return value


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern GITVENDOR_SECTION_KEY, where
    KEY may itself contain underscores. For example:
    GITVENDOR_SYNC_MAX_WORKERS=2 or GITVENDOR_GIT_TIMEOUT_SECONDS=60.
    """
    env_prefix = "GITVENDOR_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix) or env_key == 'GITVENDOR_CONFIG':
            continue

        parts = env_key[len(env_prefix):].lower().split('_', 1)
        if len(parts) != 2:
            continue
        section, key = parts

        if isinstance(config.get(section), dict) and key in config[section]:
            config[section][key] = _coerce_env_value(value)
        else:
            logger.debug(f"Ignoring unknown setting override {env_key}")

    return config


def effective_workers(config, requested=None) -> int:
    """Worker-pool size: explicit request, else settings, capped at MAX_WORKERS_CAP."""
    workers = requested or config.get('sync', {}).get('max_workers') or os.cpu_count() or 1
    return max(1, min(int(workers), MAX_WORKERS_CAP))


def configure_logging(config=None, verbose: bool = False) -> None:
    """Install a stderr handler on the package logger."""
    log_config = (config or get_default_config()).get('logging', {})
    level = logging.DEBUG if verbose else getattr(
        logging, str(log_config.get('level', 'WARNING')).upper(), logging.WARNING
    )

    root = logging.getLogger("gitvendor")
    root.setLevel(level)
    if not any(getattr(h, '_gitvendor', False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            log_config.get('format', "%(levelname)s: %(message)s")
        ))
        handler._gitvendor = True
        root.addHandler(handler)
