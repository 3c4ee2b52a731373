"""Type definitions for configuration system."""

from typing import Any, Optional


class ConfigError(Exception):
    """Base exception for configuration-related errors."""

    pass


class ConfigLoadError(ConfigError):
    """Exception raised when configuration loading fails."""

    pass


VALID_MODES = ("SINGLE_PAGE", "SECTION", "SMART")
VALID_CADENCES = ("DAILY", "WEEKLY", "MONTHLY")


class TargetConfiguration:
    """Configuration for a monitored competitor target."""

    def __init__(
        self,
        url: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        mode: str = "SINGLE_PAGE",
        cadence: str = "DAILY",
        priority_paths: Optional[list[str]] = None,
        max_signals: int = 8,
        enabled: bool = True,
    ):
        self.url = url
        self.name = name
        self.description = description
        self.mode = mode.upper()
        self.cadence = cadence.upper()
        self.priority_paths = priority_paths or []
        self.max_signals = max_signals
        self.enabled = enabled

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetConfiguration":
        """Create from dictionary configuration."""
        return cls(
            url=data["url"],
            name=data.get("name"),
            description=data.get("description"),
            mode=data.get("mode", "SINGLE_PAGE"),
            cadence=data.get("cadence", "DAILY"),
            priority_paths=data.get("priority_paths", []),
            max_signals=data.get("max_signals", 8),
            enabled=data.get("enabled", True),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "mode": self.mode,
            "cadence": self.cadence,
            "priority_paths": list(self.priority_paths),
            "max_signals": self.max_signals,
            "enabled": self.enabled,
        }

    def __repr__(self) -> str:
        return f"TargetConfiguration(url={self.url}, mode={self.mode})"
