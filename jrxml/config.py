"""Viewer configuration loaded from YAML.

Holds the lenient-parsing defaults, the fuzzy lookup depth, and the
navigation-view settings.  An optional overlay file is deep-merged on top
of the base configuration, so a project only needs to restate the values
it changes.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "config" / "jrxml-viewer.yaml"


class ViewerConfig:
    """Loads and queries the viewer YAML configuration.

    Parameters
    ----------
    config_path : str or Path, optional
        Path to the YAML configuration file.  Defaults to
        ``config/jrxml-viewer.yaml`` relative to the project root.
    overlay_path : str or Path or None, optional
        Path to an optional overlay YAML, deep-merged on top of the base.

    Raises
    ------
    FileNotFoundError
        If the requested configuration file does not exist.
    ValueError
        If the base file does not hold a YAML mapping.
    yaml.YAMLError
        If the YAML is malformed.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        overlay_path: str | Path | None = None,
    ) -> None:
        self._config_path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        self._raw: dict[str, Any] = {}

        self._load(self._config_path)

        if overlay_path is not None:
            self._apply_overlay(Path(overlay_path))

        logger.debug("ViewerConfig loaded from %s", self._config_path)

    # ── Loading / merging ──────────────────────────────────────────

    def _load(self, path: Path) -> None:
        if not path.is_file():
            raise FileNotFoundError(f"Viewer configuration not found: {path}")

        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)

        if not isinstance(data, dict):
            raise ValueError(f"Expected a YAML mapping at the top level in {path}")

        self._raw = data

    def _apply_overlay(self, overlay_path: Path) -> None:
        if not overlay_path.is_file():
            raise FileNotFoundError(f"Configuration overlay not found: {overlay_path}")

        with open(overlay_path, "r", encoding="utf-8") as fh:
            overlay = yaml.safe_load(fh)

        if not isinstance(overlay, dict):
            logger.warning(
                "Overlay file %s does not contain a YAML mapping; skipping",
                overlay_path,
            )
            return

        self._raw = self._deep_merge(self._raw, overlay)
        logger.info("Applied configuration overlay from %s", overlay_path)

    @staticmethod
    def _deep_merge(base: dict, overlay: dict) -> dict:
        """Recursively merge *overlay* into a copy of *base*."""
        result = deepcopy(base)
        for key, value in overlay.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = ViewerConfig._deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)
        return result

    # ── Accessors ──────────────────────────────────────────────────

    def _section(self, name: str) -> dict[str, Any]:
        section = self._raw.get(name) or {}
        return section if isinstance(section, dict) else {}

    def default(self, name: str, fallback: Any = None) -> Any:
        """Return a value from the ``defaults`` section."""
        return self._section("defaults").get(name, fallback)

    @property
    def report_name(self) -> str:
        return str(self.default("report_name", "Unnamed Report"))

    @property
    def page_width(self) -> int:
        return int(self.default("page_width", 595))

    @property
    def page_height(self) -> int:
        return int(self.default("page_height", 842))

    @property
    def column_width(self) -> int:
        return int(self.default("column_width", 555))

    @property
    def margin(self) -> int:
        return int(self.default("margin", 20))

    @property
    def font_size(self) -> int:
        return int(self.default("font_size", 10))

    @property
    def max_depth(self) -> int:
        """Depth bound for the recursive fuzzy key lookup."""
        return int(self._section("lookup").get("max_depth", 6))

    @property
    def label_length(self) -> int:
        return int(self._section("outline").get("label_length", 30))

    @property
    def subreport_label_length(self) -> int:
        return int(self._section("outline").get("subreport_label_length", 20))

    @property
    def band_labels(self) -> dict[str, str]:
        labels = self._section("outline").get("band_labels") or {}
        return dict(labels) if isinstance(labels, dict) else {}

    @property
    def report_extensions(self) -> tuple[str, ...]:
        exts = self._section("scan").get("extensions") or [".jrxml"]
        return tuple(str(e).lower() for e in exts)

    @property
    def skip_dirs(self) -> frozenset[str]:
        return frozenset(self._section("scan").get("skip_dirs") or ())

    @property
    def config_path(self) -> Path:
        return self._config_path


@lru_cache(maxsize=1)
def default_config() -> ViewerConfig:
    """Return the shared configuration loaded from the default path."""
    return ViewerConfig()
