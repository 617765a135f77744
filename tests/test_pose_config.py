import json
import os
import tempfile
import unittest

from pose_config import AppConfig, DetectorConfig, RenderConfig, load_config


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, payload):
        path = os.path.join(self.tmp.name, "config.json")
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(payload if isinstance(payload, str) else json.dumps(payload))
        return path

    def test_defaults(self):
        cfg = load_config()
        self.assertEqual(cfg, AppConfig())
        self.assertEqual(cfg.detector.max_poses, 5)
        self.assertEqual(cfg.detector.max_hands, 10)
        self.assertEqual(cfg.detector.max_faces, 5)
        self.assertEqual(cfg.detector.min_detection_confidence, 0.3)
        self.assertEqual(cfg.detector.timeout_seconds, 15.0)
        self.assertEqual(cfg.render.canvas_size, 1024)
        self.assertEqual(cfg.render.padding, 100)

    def test_reads_values(self):
        path = self.write(
            {
                "detector": {"max_hands": 4, "timeout_seconds": 2.5, "model_cache_dir": "/tmp/models"},
                "render": {"canvas_size": 512, "padding": 32, "draw_face": "no"},
            }
        )
        cfg = load_config(path)
        self.assertEqual(cfg.detector.max_hands, 4)
        self.assertEqual(cfg.detector.timeout_seconds, 2.5)
        self.assertEqual(cfg.detector.model_cache_dir, "/tmp/models")
        self.assertEqual(cfg.detector.max_poses, 5)
        self.assertEqual(cfg.render, RenderConfig(canvas_size=512, padding=32, draw_face=False))

    def test_bad_values_fall_back(self):
        path = self.write({"detector": {"max_poses": "many", "timeout_seconds": -1}, "render": {"canvas_size": 0}})
        with self.assertLogs("pose_config", level="WARNING"):
            cfg = load_config(path)
        self.assertEqual(cfg.detector.max_poses, 5)
        self.assertEqual(cfg.detector.timeout_seconds, 15.0)
        self.assertEqual(cfg.render.canvas_size, 1024)

    def test_padding_that_fills_canvas_is_rejected(self):
        path = self.write({"render": {"canvas_size": 200, "padding": 100, "draw_hands": False}})
        cfg = load_config(path)
        self.assertEqual(cfg.render.canvas_size, 1024)
        self.assertEqual(cfg.render.padding, 100)
        self.assertFalse(cfg.render.draw_hands)

    def test_missing_or_malformed_file_uses_defaults(self):
        with self.assertLogs("pose_config", level="WARNING"):
            self.assertEqual(load_config(os.path.join(self.tmp.name, "absent.json")), AppConfig())
        with self.assertLogs("pose_config", level="WARNING"):
            self.assertEqual(load_config(self.write("{not json")), AppConfig())
        with self.assertLogs("pose_config", level="WARNING"):
            self.assertEqual(load_config(self.write([1, 2, 3])), AppConfig())

    def test_model_url(self):
        cfg = DetectorConfig(asset_base_url="https://models.example/base/")
        self.assertEqual(cfg.model_url("/a/b.task"), "https://models.example/base/a/b.task")
        self.assertTrue(DetectorConfig().model_url(DetectorConfig().pose_model).endswith("pose_landmarker_heavy.task"))


if __name__ == "__main__":
    unittest.main()
