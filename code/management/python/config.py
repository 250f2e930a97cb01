#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Configuration for the maintenance run.

Every setting is optional. Values come from the process environment, with an
optional .env file filling in anything the environment does not set.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

# --- THIRD-PARTY LIBRARY IMPORTS ---
from dotenv import load_dotenv

DEFAULT_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
DEFAULT_LOG_DIR = "/var/log/homelab-update"
DEFAULT_DOCKCHECK_URL = (
    "https://raw.githubusercontent.com/mag37/dockcheck/{ref}/dockcheck.sh"
)

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}
CACHE_POLICIES = ("persistent", "per-run")


class ConfigError(ValueError):
    """Raised when a configuration value cannot be parsed."""


def _read_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'.") from None
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}.")
    return value


def _read_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got '{raw}'.")


def _read_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _read_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return raw.split()


@dataclass
class MaintenanceConfig:
    """Manages and validates all configuration for a maintenance run."""

    log_dir: Path = Path(DEFAULT_LOG_DIR)
    log_file: Optional[Path] = None
    required_space_kb: int = 512000
    journal_retention: str = "14d"
    docker_maintenance: bool = True
    dockcheck_version: str = "main"
    dockcheck_options: str = "-apfs -x 4"
    dockcheck_url: str = DEFAULT_DOCKCHECK_URL
    helper_cache_dir: Path = Path("/var/cache/homelab-update")
    helper_cache_policy: str = "persistent"
    vendor_script: Path = Path("/usr/local/bin/unifi-update.sh")
    reboot_marker: Path = Path("/var/run/reboot-required")
    prompt_timeout: int = 30
    required_commands: List[str] = field(
        default_factory=lambda: ["apt-get", "dpkg-query", "uname"]
    )
    dependency_packages: List[str] = field(default_factory=lambda: ["curl"])
    kernels_to_keep: int = 2

    def __post_init__(self):
        """Derives the log file path and validates the cache policy."""
        self.log_dir = Path(self.log_dir)
        if self.log_file is None:
            self.log_file = self.log_dir / "update.log"
        self.log_file = Path(self.log_file)
        if self.helper_cache_policy not in CACHE_POLICIES:
            raise ConfigError(
                f"HELPER_CACHE_POLICY must be one of {', '.join(CACHE_POLICIES)}, "
                f"got '{self.helper_cache_policy}'."
            )
        if "{ref}" not in self.dockcheck_url:
            raise ConfigError("DOCKCHECK_URL must contain a '{ref}' placeholder.")

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "MaintenanceConfig":
        """Loads configuration from the environment and an optional .env file."""
        env_path = Path(env_path) if env_path else DEFAULT_ENV_PATH
        if env_path.exists():
            logging.debug(f"Loading configuration from environment file: {env_path}")
            # Values already present in the real environment take precedence.
            load_dotenv(dotenv_path=env_path, override=False)
        else:
            logging.debug(f"No environment file at {env_path}; using defaults.")

        log_dir = Path(_read_str("LOG_DIR", DEFAULT_LOG_DIR))
        log_file = os.getenv("LOG_FILE")

        return cls(
            log_dir=log_dir,
            log_file=Path(log_file) if log_file else None,
            required_space_kb=_read_int("REQUIRED_SPACE_KB", 512000),
            journal_retention=_read_str("JOURNAL_RETENTION", "14d"),
            docker_maintenance=_read_bool("DOCKER_MAINTENANCE", True),
            dockcheck_version=_read_str("DOCKCHECK_VERSION", "main"),
            dockcheck_options=_read_str("DOCKCHECK_OPTIONS", "-apfs -x 4"),
            dockcheck_url=_read_str("DOCKCHECK_URL", DEFAULT_DOCKCHECK_URL),
            helper_cache_dir=Path(
                _read_str("HELPER_CACHE_DIR", "/var/cache/homelab-update")
            ),
            helper_cache_policy=_read_str("HELPER_CACHE_POLICY", "persistent").lower(),
            vendor_script=Path(
                _read_str("VENDOR_SCRIPT", "/usr/local/bin/unifi-update.sh")
            ),
            reboot_marker=Path(_read_str("REBOOT_MARKER", "/var/run/reboot-required")),
            prompt_timeout=_read_int("PROMPT_TIMEOUT", 30),
            required_commands=_read_list(
                "REQUIRED_COMMANDS", ["apt-get", "dpkg-query", "uname"]
            ),
            dependency_packages=_read_list("DEPENDENCY_PACKAGES", ["curl"]),
            kernels_to_keep=_read_int("KERNELS_TO_KEEP", 2, minimum=1),
        )
