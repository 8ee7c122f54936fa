"""
MCP server configuration.

Handles loading and saving the server configuration file
(.mcp-inject/config.yaml) with environment variable overrides.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

import yaml

CONFIG_DIR = ".mcp-inject"
CONFIG_FILE = "config.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class MCPConfig:
    """
    MCP server configuration loaded from .mcp-inject/config.yaml.

    Attributes:
        name: Server name (default: the server class default)
        host: Server bind address (default: "127.0.0.1")
        port: Server port for SSE transport (default: 8000)
        transport: Transport mode ("stdio", "sse" or "http", default: "stdio")
        log_level: Root log level for the CLI (default: "WARNING")
    """

    name: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8000
    transport: Literal["stdio", "sse", "http"] = "stdio"
    log_level: str = "WARNING"

    @staticmethod
    def config_path(project_path: Path) -> Path:
        return project_path / CONFIG_DIR / CONFIG_FILE

    @classmethod
    def load(cls, project_path: Path) -> "MCPConfig":
        """
        Load MCP configuration from .mcp-inject/config.yaml.

        Falls back to defaults if file doesn't exist. Environment variables
        override config file values.

        Args:
            project_path: Path to project root (contains .mcp-inject/)

        Returns:
            MCPConfig instance with loaded/default values

        Raises:
            ValueError: If config file has invalid format or a value is invalid
        """
        config_file = cls.config_path(project_path)
        config_dict = {}

        if config_file.exists():
            try:
                with open(config_file) as f:
                    config_dict = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
            if not isinstance(config_dict, dict):
                raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping at top level")

        # Environment variables override config file
        if "MCP_SERVER_NAME" in os.environ:
            config_dict["name"] = os.environ["MCP_SERVER_NAME"]

        if "MCP_SERVER_HOST" in os.environ:
            config_dict["host"] = os.environ["MCP_SERVER_HOST"]

        if "MCP_SERVER_PORT" in os.environ:
            try:
                config_dict["port"] = int(os.environ["MCP_SERVER_PORT"])
            except ValueError:
                raise ValueError(
                    f"Invalid MCP_SERVER_PORT: {os.environ['MCP_SERVER_PORT']}. "
                    "Must be an integer."
                )

        if "MCP_SERVER_TRANSPORT" in os.environ:
            config_dict["transport"] = os.environ["MCP_SERVER_TRANSPORT"]

        if "MCP_LOG_LEVEL" in os.environ:
            config_dict["log_level"] = os.environ["MCP_LOG_LEVEL"]

        config = cls(**{k: v for k, v in config_dict.items() if k in cls.__annotations__})
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check value types that YAML or the environment may get wrong.

        Raises:
            ValueError: If the port is not an integer or the log level is unknown
        """
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"Invalid port: {self.port!r}. Must be an integer.")

        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{self.log_level}'. "
                f"Must be one of: {', '.join(LOG_LEVELS)}."
            )

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)

    def save(self, project_path: Path):
        """
        Save MCP configuration to .mcp-inject/config.yaml.

        Args:
            project_path: Path to project root (contains .mcp-inject/)
        """
        config_file = self.config_path(project_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        config_dict = {}
        if self.name:
            config_dict["name"] = self.name
        config_dict.update({
            "host": self.host,
            "port": self.port,
            "transport": self.transport,
            "log_level": self.log_level,
        })

        with open(config_file, "w") as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
