"""
Configuration -- Centralized settings management

Config hierarchy (highest to lowest priority):
  1. Environment variables (GITPULSE_*)
  2. Project / explicit config file (--config, or ./.gitpulse.yaml)
  3. User config (~/.config/gitpulse/config.yaml)
  4. Defaults

Watch directories support ~ and $HOME expansion. Directories that do not
exist are kept (they may appear later) but listed in missing_directories.
"""

import os
import logging
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List


logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 60.0
DEFAULT_REMOTE_TTL = 5.0
DEFAULT_MAX_SCAN_DEPTH = 3


def default_directories() -> List[Path]:
    home = Path.home()
    return [home / "Developer", home / "Projects", home / "repos"]


def expand_home(path: str, home: Optional[Path] = None) -> Path:
    """Expand a leading ~ or $HOME."""
    home = home or Path.home()
    text = str(path)

    if text == "~" or text == "$HOME":
        return home
    if text.startswith("~/"):
        return home / text[2:]
    if text.startswith("$HOME/"):
        return home / text[len("$HOME/"):]
    return Path(text)


@dataclass
class ScanConfig:
    """Discovery and refresh cadence."""
    watch_directories: List[Path] = field(default_factory=default_directories)
    max_scan_depth: int = DEFAULT_MAX_SCAN_DEPTH
    ignored_repos: List[str] = field(default_factory=list)
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL  # seconds between periodic scans
    remote_ttl: float = DEFAULT_REMOTE_TTL              # seconds ahead/behind stay valid

    @property
    def missing_directories(self) -> List[Path]:
        """Configured directories not found on disk."""
        return [d for d in self.watch_directories if not d.exists()]

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if self.max_scan_depth < 0:
            return f"max_scan_depth must be >= 0, got {self.max_scan_depth}"
        if self.refresh_interval <= 0:
            return f"refresh_interval must be > 0, got {self.refresh_interval}"
        if self.remote_ttl < 0:
            return f"remote_ttl must be >= 0, got {self.remote_ttl}"
        return None


@dataclass
class DisplayConfig:
    """Display preferences."""
    show_clean: bool = True  # False = only repos needing attention

    def validate(self) -> Optional[str]:
        return None


@dataclass
class Config:
    """Application configuration."""
    scan: ScanConfig = field(default_factory=ScanConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)

    def validate(self) -> Optional[str]:
        return self.scan.validate() or self.display.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scan": {
                "watch_directories": [str(d) for d in self.scan.watch_directories],
                "max_scan_depth": self.scan.max_scan_depth,
                "ignored_repos": list(self.scan.ignored_repos),
                "refresh_interval": self.scan.refresh_interval,
                "remote_ttl": self.scan.remote_ttl,
            },
            "display": {
                "show_clean": self.display.show_clean,
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create from dictionary."""
        scan_data = data.get("scan", {}) or {}
        display_data = data.get("display", {}) or {}

        directories = scan_data.get("watch_directories")
        if directories is None:
            watch_directories = default_directories()
        else:
            watch_directories = [expand_home(d) for d in directories]

        return cls(
            scan=ScanConfig(
                watch_directories=watch_directories,
                max_scan_depth=int(scan_data.get("max_scan_depth", DEFAULT_MAX_SCAN_DEPTH)),
                ignored_repos=list(scan_data.get("ignored_repos", []) or []),
                refresh_interval=float(scan_data.get("refresh_interval", DEFAULT_REFRESH_INTERVAL)),
                remote_ttl=float(scan_data.get("remote_ttl", DEFAULT_REMOTE_TTL)),
            ),
            display=DisplayConfig(
                show_clean=bool(display_data.get("show_clean", True)),
            )
        )


# Environment overrides: variable -> (section, setting, type)
ENV_OVERRIDES = {
    "GITPULSE_REFRESH_INTERVAL": ("scan", "refresh_interval", float),
    "GITPULSE_REMOTE_TTL": ("scan", "remote_ttl", float),
    "GITPULSE_MAX_SCAN_DEPTH": ("scan", "max_scan_depth", int),
}


class ConfigManager:
    """
    Manages configuration loading and persistence.

    Hierarchy:
      1. Environment variables
      2. Project config (explicit path or ./.gitpulse.yaml)
      3. User config (~/.config/gitpulse/config.yaml)
      4. Defaults
    """

    USER_CONFIG_DIR = Path.home() / ".config" / "gitpulse"
    USER_CONFIG_FILE = USER_CONFIG_DIR / "config.yaml"
    PROJECT_CONFIG_FILE = ".gitpulse.yaml"

    def __init__(self, project_dir: Optional[Path] = None, config_path: Optional[Path] = None):
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self._explicit_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    @property
    def project_config_path(self) -> Path:
        if self._explicit_path is not None:
            return self._explicit_path
        return self.project_dir / self.PROJECT_CONFIG_FILE

    @property
    def user_config_path(self) -> Path:
        return self.USER_CONFIG_FILE

    def load(self) -> Config:
        """Load configuration from all sources."""
        if self._config is not None:
            return self._config

        config_data: Dict[str, Any] = {}

        # Layer 1: User config
        config_data = self._merge(config_data, self._read_yaml(self.user_config_path))

        # Layer 2: Project config (higher priority)
        config_data = self._merge(config_data, self._read_yaml(self.project_config_path))

        # Layer 3: Environment overrides
        for env_key, (section, setting, cast) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                config_data.setdefault(section, {})[setting] = cast(raw)
            except ValueError:
                logger.warning("Ignoring %s=%r: not a number", env_key, raw)

        self._config = Config.from_dict(config_data)
        return self._config

    def _read_yaml(self, path: Path) -> Dict[str, Any]:
        """Read a YAML config file. Missing or malformed files give {}."""
        if not path.exists():
            return {}
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring malformed config %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: top level is not a mapping", path)
            return {}
        return data

    def save_project(self, config: Config):
        """Save configuration to project config file."""
        self.project_config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.project_config_path, 'w') as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False)

        self._config = config

    def save_user(self, config: Config):
        """Save configuration to user config file."""
        self.user_config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.user_config_path, 'w') as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False)

        self._config = config

    def set(self, key: str, value: str, scope: str = "project") -> Optional[str]:
        """
        Set a configuration value.

        Args:
            key: Dot-separated key (e.g., "scan.remote_ttl")
            value: Value to set
            scope: "project" or "user"

        Returns:
            Error message or None if successful
        """
        config = self.load()

        parts = key.split(".")
        if len(parts) != 2:
            return f"Invalid key format: {key}. Use 'section.setting' (e.g., 'scan.remote_ttl')"

        section, setting = parts

        try:
            if section == "scan":
                if setting == "watch_directories":
                    config.scan.watch_directories = [
                        expand_home(p.strip()) for p in value.split(",") if p.strip()
                    ]
                elif setting == "max_scan_depth":
                    config.scan.max_scan_depth = int(value)
                elif setting == "ignored_repos":
                    config.scan.ignored_repos = [p.strip() for p in value.split(",") if p.strip()]
                elif setting == "refresh_interval":
                    config.scan.refresh_interval = float(value)
                elif setting == "remote_ttl":
                    config.scan.remote_ttl = float(value)
                else:
                    return (f"Unknown scan setting: {setting}. Valid: watch_directories, "
                            "max_scan_depth, ignored_repos, refresh_interval, remote_ttl")

            elif section == "display":
                if setting == "show_clean":
                    config.display.show_clean = value.lower() in ('true', '1', 'yes')
                else:
                    return f"Unknown display setting: {setting}. Valid: show_clean"
            else:
                return f"Unknown section: {section}. Valid: scan, display"
        except ValueError:
            return f"Invalid value for {key}: {value}"

        error = config.validate()
        if error:
            return error

        if scope == "project":
            self.save_project(config)
        else:
            self.save_user(config)

        return None

    def get(self, key: str) -> Optional[str]:
        """Get a configuration value as a display string."""
        config = self.load()

        parts = key.split(".")
        if len(parts) != 2:
            return None

        section, setting = parts
        value = config.to_dict().get(section, {}).get(setting)
        if value is None:
            return None
        if isinstance(value, list):
            return ",".join(str(v) for v in value)
        if isinstance(value, bool):
            return str(value).lower()
        return str(value)

    def _merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dicts, override wins."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value
        return result

    def display(self) -> str:
        """Format config for display."""
        config = self.load()

        lines = [
            "Configuration:",
            "",
            "Scan:",
            f"  Refresh interval: {config.scan.refresh_interval:g}s",
            f"  Remote TTL: {config.scan.remote_ttl:g}s",
            f"  Max depth: {config.scan.max_scan_depth}",
            "  Watch directories:",
        ]

        missing = set(config.scan.missing_directories)
        for directory in config.scan.watch_directories:
            marker = " (missing)" if directory in missing else ""
            lines.append(f"    {directory}{marker}")

        if config.scan.ignored_repos:
            lines.append(f"  Ignored: {', '.join(config.scan.ignored_repos)}")

        lines.extend([
            "",
            "Display:",
            f"  Show clean: {config.display.show_clean}",
            "",
            "Config files:",
            f"  User: {self.user_config_path}",
            f"  Project: {self.project_config_path}",
        ])

        return "\n".join(lines)


# Convenience function
def get_config(project_dir: Optional[Path] = None) -> Config:
    """Load configuration for a project."""
    return ConfigManager(project_dir).load()
