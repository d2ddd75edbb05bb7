"""Loading encoding presets from ``presets.json``."""

import json
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from ..exceptions import PresetError
from ..models.preset import (
    AudioPreset,
    EncodeMode,
    PresetDefinition,
    PresetsRoot,
    VideoPreset,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)


def builtin_presets() -> PresetsRoot:
    """Presets used when no presets file is configured."""
    return PresetsRoot(
        version=1,
        presets=[
            PresetDefinition(
                id="fit",
                name="Fit to disc",
                encode_mode=EncodeMode.FIT,
            ),
            PresetDefinition(
                id="best",
                name="Best quality (two-pass)",
                encode_mode=EncodeMode.BEST,
                audio=AudioPreset(bitrate_kbps=224),
                video=VideoPreset(target_rate_kbps=8000, two_pass=True),
            ),
            PresetDefinition(
                id="fast",
                name="Fast",
                encode_mode=EncodeMode.FAST,
                video=VideoPreset(target_rate_kbps=5000),
            ),
        ],
    )


def _lower_first(key: str) -> str:
    return key[:1].lower() + key[1:]


def _normalize_keys(data: Any) -> Any:
    """Lower-case the first letter of every key so PascalCase files load."""
    if isinstance(data, dict):
        return {_lower_first(str(k)): _normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_normalize_keys(item) for item in data]
    return data


class PresetsService:
    """Reads presets from a JSON file and looks them up by id."""

    def __init__(self, presets_path: Optional[Path] = None) -> None:
        self.presets_path = presets_path
        self._root: Optional[PresetsRoot] = None

    def load(self) -> PresetsRoot:
        """Load and validate the presets file.

        Returns:
            Parsed presets; the built-in set when no file is configured

        Raises:
            PresetError: If the file is missing, unreadable or invalid
        """
        if self.presets_path is None:
            self._root = builtin_presets()
            return self._root

        if not self.presets_path.is_file():
            raise PresetError(
                "Presets file not found", {"path": str(self.presets_path)}
            )

        try:
            with open(self.presets_path, "r", encoding="utf-8-sig") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PresetError(
                f"Failed to read presets file: {e}", {"path": str(self.presets_path)}
            ) from e

        try:
            self._root = PresetsRoot.model_validate(_normalize_keys(raw))
        except ValidationError as e:
            raise PresetError(
                f"Invalid presets file: {e}", {"path": str(self.presets_path)}
            ) from e

        logger.info(
            f"Loaded {len(self._root.presets)} presets from {self.presets_path}"
        )
        return self._root

    @property
    def root(self) -> PresetsRoot:
        if self._root is None:
            return self.load()
        return self._root

    def list_presets(self) -> List[PresetDefinition]:
        return list(self.root.presets)

    def get_preset(self, preset_id: str) -> PresetDefinition:
        """Return the preset with ``preset_id``.

        Raises:
            PresetError: If no such preset exists
        """
        preset = self.root.get(preset_id)
        if preset is None:
            available = ", ".join(p.id for p in self.root.presets)
            raise PresetError(
                f"Unknown preset '{preset_id}'", {"available": available}
            )
        return preset
