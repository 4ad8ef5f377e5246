"""Configuration loading for dispute-lib."""

import os
from importlib.resources import files
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class ConfigLoader:
    """Loads local-config.yaml (bundled by default) and exposes typed getters."""

    DEFAULT_SHARD_SIZE = 1000

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to a YAML config file. When omitted the
                local-config.yaml bundled in the dispute_lib package is used.
        """
        if config_path is None:
            config_file = files("dispute_lib").joinpath("local-config.yaml")
            self.local_config_path = str(config_file)
            with config_file.open("r") as f:
                self.local_config = yaml.safe_load(f) or {}
        else:
            self.local_config_path = os.path.abspath(config_path)
            self.local_config = self._load_yaml(self.local_config_path)

    def _load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file from disk."""
        with open(path) as f:
            return yaml.safe_load(f) or {}

    def get_local_config(self) -> Dict[str, Any]:
        return self.local_config

    def get_data_file_path(self) -> Path:
        """Snapshot file location; relative paths resolve against the working directory."""
        location = self.local_config.get("data_file_location", "data.json")
        return Path(location).expanduser().resolve()

    def get_batch_parallelism(self) -> bool:
        return bool(self.local_config.get("batch_parallelism", False))

    def get_batch_max_workers(self) -> Optional[int]:
        """Worker count for the aggregation pool, or None for os.cpu_count()."""
        return self.local_config.get("batch_max_workers")

    def get_aggregation_shard_size(self) -> int:
        size = self.local_config.get("aggregation_shard_size", self.DEFAULT_SHARD_SIZE)
        if not isinstance(size, int) or size <= 0:
            raise ValueError(f"aggregation_shard_size must be a positive integer, got {size!r}")
        return size

    def get_fiscal_data_service_config(self) -> Dict[str, Any]:
        """Fiscal Data proxy configuration; disabled when the section is absent."""
        return self.local_config.get("fiscal_data_service") or {"enabled": False}
