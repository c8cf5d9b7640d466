"""
Configuration management for the task analytics engine.
Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


def _parse_mapping(raw: str) -> dict[str, str]:
    """Parse a `key:value,key:value` string into a dict."""
    mapping = {}
    for pair in raw.split(","):
        if ":" in pair:
            key, value = pair.split(":", 1)
            mapping[key.strip()] = value.strip()
    return mapping


class Config:
    """Application configuration loaded from environment variables."""

    # Workspace holding the task Markdown files
    WORKSPACE_PATH: str = os.environ.get("WORKSPACE_PATH", "./workspace")
    SCHEDULE_FILE: str = os.environ.get("SCHEDULE_FILE", "schedule.json")

    # Front matter keys used by the analytics engine
    DEPENDS_ON_KEY: str = os.environ.get("DEPENDS_ON_KEY", "depends_on")
    START_DATE_KEY: str = os.environ.get("START_DATE_KEY", "start_date")
    END_DATE_KEY: str = os.environ.get("END_DATE_KEY", "end_date")
    STATUS_KEY: str = os.environ.get("STATUS_KEY", "status")
    PROGRESS_KEY: str = os.environ.get("PROGRESS_KEY", "progress")
    TITLE_KEY: str = os.environ.get("TITLE_KEY", "")

    # Schedule persistence quiet period (seconds)
    SAVE_DEBOUNCE_SECONDS: float = float(os.environ.get("SAVE_DEBOUNCE_SECONDS", "0.8"))

    # Chart configuration
    CHART_TITLE: str = os.environ.get("CHART_TITLE", "Task Schedule")
    CHART_DATE_FORMAT: str = os.environ.get("CHART_DATE_FORMAT", "YYYY-MM-DD")
    CHART_TEMPLATE: str = os.environ.get("CHART_TEMPLATE", "plotly_white")
    CHART_HEIGHT: int = int(os.environ.get("CHART_HEIGHT", "500"))

    # Server configuration
    PORT: int = int(os.environ.get("PORT", "3000"))
    DEBUG: bool = os.environ.get("DEBUG", "false").lower() == "true"

    @classmethod
    def get_workspace_path(cls) -> Path:
        """Get the workspace directory as a Path."""
        return Path(cls.WORKSPACE_PATH).expanduser()

    @classmethod
    def get_schedule_path(cls) -> Path:
        """Get the file the schedule rows are saved to."""
        return cls.get_workspace_path() / cls.SCHEDULE_FILE

    @classmethod
    def get_attribute_types(cls) -> dict[str, str]:
        """
        Load declared attribute types from environment.
        Format: ATTRIBUTE_TYPES=priority:Number,due:Date
        """
        return _parse_mapping(os.environ.get("ATTRIBUTE_TYPES", ""))

    @classmethod
    def get_status_colors(cls) -> dict[str, str]:
        """
        Load status color overrides from environment.
        Format: STATUS_COLORS=done:#67C23A,blocked:#F56C6C
        """
        colors = _parse_mapping(os.environ.get("STATUS_COLORS", ""))
        return {status.lower(): color for status, color in colors.items()}

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration. Returns list of problems found."""
        problems = []
        if not cls.get_workspace_path().is_dir():
            problems.append(f"WORKSPACE_PATH does not exist: {cls.WORKSPACE_PATH}")
        if cls.SAVE_DEBOUNCE_SECONDS < 0:
            problems.append("SAVE_DEBOUNCE_SECONDS must not be negative")
        return problems


# Singleton instance
config = Config()
