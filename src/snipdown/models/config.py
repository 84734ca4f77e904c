"""Application configuration for snipdown."""

from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .options import ConversionOptions


class TopologyName(str, Enum):
    """Execution topologies."""

    AUTO = "auto"
    INLINE = "inline"
    WORKER = "worker"


class OutputConfig(BaseModel):
    """Where delivered files land."""

    directory: Path = Field(Path("./clips"), description="Directory that receives downloads")
    print_result: bool = Field(False, description="Also print each converted document")

    model_config = {"extra": "forbid"}


class NetworkConfig(BaseModel):
    """Network settings for page and image fetches."""

    proxy: Optional[str] = Field(None, description="HTTP/HTTPS proxy URL")
    user_agent: Optional[str] = Field(None, description="Custom User-Agent header")
    max_retries: int = Field(3, ge=0, description="Maximum retry attempts for failed requests")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")

    model_config = {"extra": "forbid"}


class PerformanceConfig(BaseModel):
    """Performance tuning."""

    cpu_workers: int = Field(2, ge=1, le=32, description="Threads used for parsing and conversion")

    model_config = {"extra": "forbid"}


class SnipdownConfig(BaseModel):
    """
    Top-level configuration.

    Example:
        config = SnipdownConfig(options=ConversionOptions(output_format="org"))
        config = SnipdownConfig.from_yaml_file(Path("snipdown.yaml"))
    """

    options: ConversionOptions = Field(default_factory=ConversionOptions)
    output: OutputConfig = Field(default_factory=OutputConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    topology: TopologyName = Field(TopologyName.AUTO, description="Execution topology")
    settings_file: Optional[Path] = Field(None, description="YAML file holding saved options")
    selection_selector: Optional[str] = Field(None, description="CSS selector standing in for the page selection")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("WARNING", description="Logging verbosity")
    log_file: Optional[Path] = Field(None, description="Log file path")

    model_config = {"extra": "forbid"}

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        import yaml

        return yaml.dump(self.model_dump(mode="json", exclude_none=True), default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "SnipdownConfig":
        """Load config from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> "SnipdownConfig":
        """Load config from YAML file."""
        return cls.from_yaml(path.read_text(encoding="utf-8"))
