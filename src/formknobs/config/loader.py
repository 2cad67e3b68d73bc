"""Load wizard configurations from YAML files."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from formknobs.config.model import WizardConfig, WizardKind
from formknobs.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class WizardConfigLoader:
    """Reads wizard YAML into :class:`WizardConfig` objects.

    Example wizard file::

        kind: land
        title: Publish land
        schemas:
          location:
            type: object
            required: [address]
            properties:
              address: {type: string, minLength: 5}
        steps:
          - id: location
            title: Location
            schema: location
          - id: media
            title: Photos
            optional: true
        persistence:
          auto_save_interval: 30
          draft_ttl_hours: 24

    Args:
        functions: Named callables available to ``cross_step_rules`` entries
    """

    def __init__(self, functions: dict[str, Callable[..., Any]] | None = None) -> None:
        self._functions = dict(functions or {})

    def load(self, config_path: str | Path) -> WizardConfig:
        """Load a single wizard configuration file.

        Raises:
            ConfigurationError: If the file is missing, is not valid YAML, or
                does not describe a valid wizard
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(
                f"Wizard config not found: {path}", context={"path": str(path)}
            )
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in wizard config {path}: {e}",
                context={"path": str(path)},
            ) from e

        config = self.load_from_dict(data)
        logger.info(
            "Loaded %s wizard config from %s (%d steps)",
            config.kind.value, path, len(config.steps),
            extra={"wizard_kind": config.kind.value, "config_path": str(path)},
        )
        return config

    def load_from_dict(self, data: Any) -> WizardConfig:
        if not isinstance(data, dict):
            raise ConfigurationError("Wizard config must be a mapping at the top level")
        return WizardConfig.from_dict(data, functions=self._functions)

    def load_directory(self, directory: str | Path) -> dict[WizardKind, WizardConfig]:
        """Load every ``*.yaml``/``*.yml`` file in a directory, keyed by kind."""
        configs: dict[WizardKind, WizardConfig] = {}
        for path in sorted(Path(directory).glob("*.y*ml")):
            config = self.load(path)
            if config.kind in configs:
                raise ConfigurationError(
                    f"More than one config for wizard kind '{config.kind.value}'",
                    context={"path": str(path)},
                )
            configs[config.kind] = config
        return configs
