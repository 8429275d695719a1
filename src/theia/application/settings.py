"""
Configuration management for the orchestration core.

Settings come from a profile YAML (``configs/<profile>.yaml``) and can be
overridden with ``THEIA_*`` environment variables or a ``.env`` file.
"""

from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings

from theia.core.domain.approval import ApprovalPolicy


class TheiaSettings(BaseSettings):
    """Orchestrator settings with environment variable support."""

    # Governor
    step_ceiling: int = Field(default=15, ge=1, description="Maximum executed steps per goal")

    # Event bus and trace
    history_size: int = Field(default=100, ge=1, description="Event bus history size")
    trace_capacity: int = Field(default=500, ge=1, description="Flight recorder capacity")
    trace_persisted_entries: int = Field(default=100, ge=0, description="Trace entries mirrored to disk")
    persist_trace: bool = Field(default=True, description="Mirror the trace to disk")

    # UI
    quiet_window_seconds: float = Field(default=3.0, ge=0, description="Navigation quiet window after user activity")

    # Tools
    command_timeout_seconds: float = Field(default=30.0, gt=0, description="Sandbox command timeout")
    approval_policy: ApprovalPolicy = Field(default=ApprovalPolicy.PROMPT, description="Approval policy for sensitive tools")

    # Paths
    work_dir: str = Field(default=".", description="Working directory of sandbox commands")
    state_dir: str = Field(default=".theia", description="Session and trace storage directory")

    # Reasoning service
    llm_config_path: str = Field(default="configs/llm_config.yaml", description="LLM config file")
    model_alias: str = Field(default="main", description="Model alias for planner and executor")

    model_config = {
        "env_file": ".env",
        "env_prefix": "THEIA_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def load_from_file(cls, config_path: Path) -> "TheiaSettings":
        """Load settings from a YAML configuration file."""
        if not config_path.exists():
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @property
    def session_path(self) -> Path:
        return Path(self.state_dir) / "session.json"

    @property
    def trace_path(self) -> Path:
        return Path(self.state_dir) / "flight_log.json"
