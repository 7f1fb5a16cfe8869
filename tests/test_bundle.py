"""Unit tests for screenreel.bundle and screenreel.cursor.smoothing.

Bundles are built in tmp_path; sprites are written with OpenCV so the real
decode path is exercised.
"""

from __future__ import annotations

import json
from pathlib import Path

import cv2
import numpy as np
import pytest

from screenreel.bundle import CursorInfo, MouseMove, load_bundle
from screenreel.cursor.smoothing import smooth_cursor_data
from screenreel.edits.schema import SpringConfig
from screenreel.errors import BundleNotFoundError


def _make_bundle(root: Path, **extras: bool) -> Path:
    recording = root / "recording"
    recording.mkdir(parents=True)
    (recording / "recording-0.mp4").write_bytes(b"")
    for name in ("webcam.mp4", "mic.m4a", "system.m4a"):
        key = name.split(".")[0]
        if extras.get(key):
            (recording / f"recording-0-{name}").write_bytes(b"")
    return recording


class TestLoadBundle:
    def test_screen_only(self, tmp_path: Path) -> None:
        _make_bundle(tmp_path)
        bundle = load_bundle(tmp_path)
        assert bundle.screen_video.name == "recording-0.mp4"
        assert bundle.webcam_video is None
        assert bundle.mic_audio is None
        assert bundle.system_audio is None
        assert bundle.mouse_moves == []
        assert bundle.cursor_images == {}

    def test_optional_tracks_found(self, tmp_path: Path) -> None:
        _make_bundle(tmp_path, webcam=True, mic=True, system=True)
        bundle = load_bundle(tmp_path)
        assert bundle.webcam_video.name == "recording-0-webcam.mp4"
        assert bundle.mic_audio.name == "recording-0-mic.m4a"
        assert bundle.system_audio.name == "recording-0-system.m4a"

    def test_missing_recording_dir(self, tmp_path: Path) -> None:
        with pytest.raises(BundleNotFoundError) as exc_info:
            load_bundle(tmp_path)
        assert "Recording directory not found" in str(exc_info.value)

    def test_missing_screen_video(self, tmp_path: Path) -> None:
        (tmp_path / "recording").mkdir()
        with pytest.raises(BundleNotFoundError) as exc_info:
            load_bundle(tmp_path)
        assert "Screen video not found" in str(exc_info.value)

    def test_mouse_moves_camel_case(self, tmp_path: Path) -> None:
        recording = _make_bundle(tmp_path)
        (recording / "recording-0-mouse-moves.json").write_text(json.dumps([
            {"x": 10.5, "y": 20, "cursorId": "arrow", "processTimeMs": 16.0, "unixTimeMs": 1, "activeModifiers": []},
            {"x": 11, "y": 21, "cursorId": "arrow", "processTimeMs": 33.0},
        ]))
        bundle = load_bundle(tmp_path)
        assert bundle.mouse_moves[0] == MouseMove(x=10.5, y=20, cursor_id="arrow", process_time_ms=16.0)
        assert len(bundle.mouse_moves) == 2

    def test_malformed_mouse_moves(self, tmp_path: Path) -> None:
        recording = _make_bundle(tmp_path)
        (recording / "recording-0-mouse-moves.json").write_text("[{\"x\": 1,")
        with pytest.raises(BundleNotFoundError) as exc_info:
            load_bundle(tmp_path)
        assert "Failed to parse mouse moves" in str(exc_info.value)

    def test_cursor_sprites_decoded_to_rgba(self, tmp_path: Path) -> None:
        recording = _make_bundle(tmp_path)
        sprites = recording / "recording-0-cursors"
        sprites.mkdir()
        bgra = np.zeros((4, 3, 4), dtype=np.uint8)
        bgra[..., 0] = 255  # blue in OpenCV channel order
        bgra[..., 3] = 128
        cv2.imwrite(str(sprites / "arrow.png"), bgra)
        bgr = np.zeros((2, 2, 3), dtype=np.uint8)
        bgr[..., 2] = 200  # red
        cv2.imwrite(str(sprites / "hand.png"), bgr)
        (sprites / "broken.png").write_bytes(b"not a png")

        (recording / "recording-0-cursors.json").write_text(json.dumps({
            "arrow": {"id": "arrow", "imagePath": "arrow.png", "hotspotX": 1.7, "hotspotY": 2, "width": 3, "height": 4},
            "hand": {"imagePath": "hand.png", "hotspotX": 0, "hotspotY": 0, "width": 2, "height": 2},
            "broken": {"imagePath": "broken.png", "hotspotX": 0, "hotspotY": 0, "width": 1, "height": 1},
            "gone": {"imagePath": "gone.png", "hotspotX": 0, "hotspotY": 0, "width": 1, "height": 1},
        }))

        bundle = load_bundle(tmp_path)
        assert set(bundle.cursor_info) == {"arrow", "hand", "broken", "gone"}
        assert set(bundle.cursor_images) == {"arrow", "hand"}

        arrow = bundle.cursor_images["arrow"]
        assert (arrow.width, arrow.height) == (3, 4)
        assert (arrow.hotspot_x, arrow.hotspot_y) == (1, 2)
        assert list(arrow.pixels[0, 0]) == [0, 0, 255, 128]

        hand = bundle.cursor_images["hand"]
        assert list(hand.pixels[1, 1]) == [200, 0, 0, 255]

    def test_malformed_cursors_json(self, tmp_path: Path) -> None:
        recording = _make_bundle(tmp_path)
        (recording / "recording-0-cursors.json").write_text(json.dumps({"arrow": {"hotspotX": 0}}))
        with pytest.raises(BundleNotFoundError) as exc_info:
            load_bundle(tmp_path)
        assert "Failed to parse cursors" in str(exc_info.value)

    def test_cursor_info_defaults(self) -> None:
        info = CursorInfo.model_validate({"imagePath": "a.png"})
        assert info.hotspot_x == 0.0 and info.width == 0


class TestSmoothCursor:
    def _moves(self, *points) -> list[MouseMove]:
        return [MouseMove(x=x, y=y, cursor_id=cid, process_time_ms=t) for t, x, y, cid in points]

    def test_empty(self) -> None:
        assert smooth_cursor_data([], SpringConfig(), 30.0) == []

    def test_one_sample_per_frame_sorted(self) -> None:
        moves = self._moves((1000.0, 0, 0, "a"), (0.0, 0, 0, "a"), (500.0, 0, 0, "a"))
        samples = smooth_cursor_data(moves, SpringConfig(), 10.0)
        times = [s.process_time_ms for s in samples]
        assert times == sorted(times)
        assert len(samples) == 11
        assert times[0] == 0.0
        assert times[-1] == pytest.approx(1000.0)

    def test_converges_to_target(self) -> None:
        moves = self._moves((0.0, 0, 0, "a"), (100.0, 100, 50, "a"), (3000.0, 100, 50, "a"))
        samples = smooth_cursor_data(moves, SpringConfig(), 30.0)
        assert samples[0].x == 0 and samples[0].y == 0
        # eased: not yet at the target right after the jump
        just_after = next(s for s in samples if s.process_time_ms >= 134)
        assert 0 < just_after.x < 100
        assert samples[-1].x == pytest.approx(100, abs=0.5)
        assert samples[-1].y == pytest.approx(50, abs=0.5)

    def test_cursor_id_tracks_latest_raw_move(self) -> None:
        moves = self._moves((0.0, 0, 0, "arrow"), (200.0, 0, 0, "ibeam"))
        samples = smooth_cursor_data(moves, SpringConfig(), 10.0)
        assert samples[0].cursor_id == "arrow"
        assert samples[1].cursor_id == "arrow"
        assert samples[2].cursor_id == "ibeam"
