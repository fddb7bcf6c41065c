"""
Tests for result and manifest persistence.
"""

import json
import os
import stat
import sys
import tempfile
import unittest

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from tagbatch.exceptions import OutputWriteError  # type: ignore
from tagbatch.results import Corner, Detection, DetectionResult, Manifest  # type: ignore
from tagbatch.writer import (  # type: ignore
    atomic_write_text,
    result_filename,
    write_detection_result,
    write_manifest,
)


class TestWriter(unittest.TestCase):
    """File naming, content and whole-file replacement."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.out = self._tmp.name
        corners = (Corner(10.0, 90.0), Corner(90.0, 90.0), Corner(90.0, 10.0), Corner(10.0, 10.0))
        self.result = DetectionResult(
            image="tag.jpg",
            detections=(Detection(tag_id=5, tag_family="tag36h11", corners=corners),),
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_result_filename_replaces_extension(self):
        self.assertEqual(result_filename("tag.jpg"), "tag.json")
        self.assertEqual(result_filename("IMG.0001.PNG"), "IMG.0001.json")

    def test_write_detection_result(self):
        path = write_detection_result(self.result, self.out)

        self.assertEqual(os.path.basename(path), "tag.json")
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
        self.assertEqual(payload["image"], "tag.jpg")
        self.assertEqual(payload["detections"][0]["tag_id"], 5)
        self.assertEqual(
            [(c["x"], c["y"]) for c in payload["detections"][0]["corners"]],
            [(10.0, 90.0), (90.0, 90.0), (90.0, 10.0), (10.0, 10.0)],
        )

    def test_rewrite_replaces_whole_file(self):
        write_detection_result(self.result, self.out)
        write_detection_result(DetectionResult(image="tag.jpg"), self.out)

        with open(os.path.join(self.out, "tag.json"), encoding="utf-8") as f:
            self.assertEqual(json.load(f), {"image": "tag.jpg", "detections": []})
        self.assertEqual(os.listdir(self.out), ["tag.json"])

    def test_write_manifest(self):
        path = write_manifest(Manifest(("tag36h11", "tag25h9")), self.out)

        self.assertEqual(os.path.basename(path), "manifest.json")
        with open(path, encoding="utf-8") as f:
            self.assertEqual(json.load(f), {"supported_families": ["tag36h11", "tag25h9"]})

    def test_unwritable_destination_is_fatal(self):
        missing_dir = os.path.join(self.out, "does", "not", "exist")
        with self.assertRaises(OutputWriteError) as ctx:
            write_detection_result(self.result, missing_dir)
        self.assertIn("tag.json", str(ctx.exception))

    def test_atomic_write_leaves_no_temp_files(self):
        atomic_write_text("{}\n", os.path.join(self.out, "x.json"))
        self.assertEqual(sorted(os.listdir(self.out)), ["x.json"])

    @unittest.skipIf(os.name == "nt", "POSIX permission bits")
    def test_files_follow_umask(self):
        """Outputs get the usual 0666 minus umask, not the private temp-file mode."""
        old_umask = os.umask(0o022)
        try:
            paths = [
                write_detection_result(self.result, self.out),
                write_manifest(Manifest(("tag36h11",)), self.out),
            ]
        finally:
            os.umask(old_umask)

        for path in paths:
            with self.subTest(path=os.path.basename(path)):
                self.assertEqual(stat.S_IMODE(os.stat(path).st_mode), 0o644)


if __name__ == "__main__":
    unittest.main()
