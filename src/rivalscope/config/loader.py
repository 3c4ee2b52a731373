"""Reading and writing the YAML file that declares monitored targets."""

import shutil
from pathlib import Path
from typing import Any, Optional

import yaml

from ..utils.logging import get_structured_logger
from .types import (
    VALID_CADENCES,
    VALID_MODES,
    ConfigError,
    ConfigLoadError,
    TargetConfiguration,
)

logger = get_structured_logger(__name__)

EXAMPLE_TARGETS = {
    "targets": [
        {
            "url": "https://example.com",
            "name": "Example Competitor",
            "mode": "SMART",
            "cadence": "DAILY",
            "priority_paths": ["/pricing", "/changelog"],
            "max_signals": 8,
            "enabled": True,
        }
    ],
}


def _entry_issues(index: int, entry: Any) -> list[str]:
    if not isinstance(entry, dict):
        return [f"Target {index} is not a valid object"]

    issues = []
    if "url" not in entry:
        issues.append(f"Target {index} missing required 'url' field")

    mode = str(entry.get("mode", "SINGLE_PAGE")).upper()
    if mode not in VALID_MODES:
        issues.append(f"Target {index} has invalid mode: {mode}")

    cadence = str(entry.get("cadence", "DAILY")).upper()
    if cadence not in VALID_CADENCES:
        issues.append(f"Target {index} has invalid cadence: {cadence}")

    max_signals = entry.get("max_signals", 8)
    if isinstance(max_signals, bool) or not isinstance(max_signals, int) or max_signals <= 0:
        issues.append(f"Target {index} has invalid max_signals: {max_signals}")

    if not isinstance(entry.get("priority_paths", []), list):
        issues.append(f"Target {index} priority_paths must be a list")
    return issues


class ConfigLoader:
    """Targets file at ``config_file`` (``targets.yaml`` by default)."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file or "targets.yaml")

    def load_yaml_config(self) -> dict[str, Any]:
        """Parsed file contents, or an empty mapping when the file is absent.

        Raises:
            ConfigLoadError: If the file cannot be read or is not valid YAML
        """
        if not self.config_file.exists():
            logger.warning("Targets file not found", path=str(self.config_file))
            return {}

        try:
            config = yaml.safe_load(self.config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {self.config_file}: {e}") from e
        except OSError as e:
            raise ConfigLoadError(f"Cannot read {self.config_file}: {e}") from e

        logger.debug("Loaded targets file", path=str(self.config_file))
        return config or {}

    def save_yaml_config(self, config: dict[str, Any]) -> None:
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            self.config_file.write_text(
                yaml.safe_dump(config, default_flow_style=False, indent=2, sort_keys=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise ConfigError(f"Cannot write {self.config_file}: {e}") from e
        logger.info("Saved targets file", path=str(self.config_file))

    def get_targets_config(self) -> list[TargetConfiguration]:
        """Declared targets; malformed entries are logged and skipped."""
        targets = []
        for entry in self.load_yaml_config().get("targets", []):
            try:
                targets.append(TargetConfiguration.from_dict(entry))
            except (KeyError, TypeError, AttributeError) as e:
                logger.error("Skipping malformed target entry", entry=entry, error=str(e))
        return targets

    def add_target(self, target: TargetConfiguration) -> None:
        config = self.load_yaml_config()
        entries = config.setdefault("targets", [])
        if any(entry.get("url") == target.url for entry in entries):
            raise ConfigError(f"Target {target.url} already exists in configuration")

        entries.append(target.to_dict())
        self.save_yaml_config(config)

    def remove_target(self, url: str) -> bool:
        """Drop the entry for ``url``; False when there was none."""
        config = self.load_yaml_config()
        entries = config.get("targets", [])
        kept = [entry for entry in entries if entry.get("url") != url]
        if len(kept) == len(entries):
            return False

        config["targets"] = kept
        self.save_yaml_config(config)
        return True

    def backup_config(self, backup_path: Optional[Path] = None) -> Path:
        """Copy the file to ``<stem>.backup<suffix>`` unless told otherwise."""
        backup_path = backup_path or self.config_file.with_suffix(
            f".backup{self.config_file.suffix}"
        )
        if self.config_file.exists():
            shutil.copy2(self.config_file, backup_path)
            logger.info("Targets file backed up", path=str(backup_path))
        return backup_path

    def validate_config(self) -> list[str]:
        """Human-readable problems with the file, empty when it is usable."""
        try:
            config = self.load_yaml_config()
        except ConfigLoadError as e:
            return [f"Failed to load config: {e}"]

        issues = []
        for index, entry in enumerate(config.get("targets", [])):
            issues.extend(_entry_issues(index, entry))
        return issues


def create_example_config(config_path: Path) -> None:
    ConfigLoader(config_path).save_yaml_config(EXAMPLE_TARGETS)
