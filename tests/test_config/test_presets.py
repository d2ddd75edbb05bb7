"""Tests for the presets service."""

import json

import pytest

from dvdiso.config.presets import PresetsService, builtin_presets
from dvdiso.exceptions import PresetError
from dvdiso.models.preset import EncodeMode

PASCAL_CASE_PRESETS = {
    "Version": 1,
    "Defaults": {
        "DvdMode": "NTSC",
        "Aspect": "16:9",
        "Chapters": {"Mode": "EveryNMinutes", "Minutes": 10},
        "PresetId": "archive",
        "ExportFolder": True,
        "ExportIso": False,
        "DiscLabel": "HOLIDAY",
    },
    "Presets": [
        {
            "Id": "archive",
            "Name": "Archive",
            "EncodeMode": "Best",
            "Audio": {"Codec": "ac3", "BitrateKbps": 256},
            "Video": {"TargetRateKbps": 7000, "TwoPass": True},
        }
    ],
}


class TestBuiltinPresets:
    """Test cases for the built-in presets."""

    def test_ids(self):
        """Test that fit, best and fast are available."""
        root = builtin_presets()
        assert [p.id for p in root.presets] == ["fit", "best", "fast"]

    def test_fit_has_no_target(self):
        """Test that the fit preset computes its bitrate."""
        fit = builtin_presets().get("fit")
        assert fit.is_fit
        assert fit.video.target_rate_kbps is None

    def test_no_path_loads_builtin(self):
        """Test the default presets service."""
        service = PresetsService()
        assert service.get_preset("best").video.two_pass


class TestPresetsFile:
    """Test cases for loading presets files."""

    def test_pascal_case_file(self, tmp_path):
        """Test that PascalCase JSON files load."""
        path = tmp_path / "presets.json"
        path.write_text(json.dumps(PASCAL_CASE_PRESETS), encoding="utf-8")

        root = PresetsService(path).load()

        assert root.defaults.dvd_mode == "NTSC"
        assert root.defaults.chapters.minutes == 10
        assert not root.defaults.export_iso
        preset = root.get("ARCHIVE")
        assert preset.encode_mode == EncodeMode.BEST
        assert preset.audio.bitrate_kbps == 256
        assert preset.video.target_rate_kbps == 7000

    def test_utf8_bom_accepted(self, tmp_path):
        """Test files written with a byte order mark."""
        path = tmp_path / "presets.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps(PASCAL_CASE_PRESETS).encode())
        assert PresetsService(path).list_presets()[0].id == "archive"

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises PresetError."""
        with pytest.raises(PresetError, match="not found"):
            PresetsService(tmp_path / "missing.json").load()

    def test_malformed_json(self, tmp_path):
        """Test that broken JSON raises PresetError."""
        path = tmp_path / "presets.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(PresetError, match="Failed to read"):
            PresetsService(path).load()

    def test_invalid_content(self, tmp_path):
        """Test that schema violations raise PresetError."""
        path = tmp_path / "presets.json"
        path.write_text(
            json.dumps({"presets": [{"id": "x", "name": "X", "encodeMode": "Turbo"}]}),
            encoding="utf-8",
        )
        with pytest.raises(PresetError, match="Invalid presets file"):
            PresetsService(path).load()

    def test_unknown_preset(self):
        """Test that unknown ids list the available presets."""
        with pytest.raises(PresetError) as exc_info:
            PresetsService().get_preset("turbo")
        assert exc_info.value.context["available"] == "fit, best, fast"

    def test_root_is_cached(self, tmp_path):
        """Test that the file is read only once."""
        path = tmp_path / "presets.json"
        path.write_text(json.dumps(PASCAL_CASE_PRESETS), encoding="utf-8")
        service = PresetsService(path)
        first = service.root
        path.unlink()
        assert service.root is first
