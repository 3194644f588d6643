import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from video_workstation.filenames import (
    image_data_url,
    image_filename,
    image_mime_type,
    next_number,
    next_numbered_filename,
)


class TestNumberedFilenames(unittest.TestCase):
    def test_next_number_starts_at_one_for_missing_directory(self) -> None:
        with TemporaryDirectory() as tmpdir:
            self.assertEqual(next_number(Path(tmpdir) / "missing", ".wav"), 1)

    def test_next_number_skips_past_highest_existing_file(self) -> None:
        with TemporaryDirectory() as tmpdir:
            directory = Path(tmpdir)
            for name in ("1.wav", "3.wav", "notes.wav", "7.txt"):
                (directory / name).write_text("x", encoding="utf-8")

            self.assertEqual(next_number(directory, ".wav"), 4)
            self.assertEqual(next_numbered_filename(directory, ".wav"), "4.wav")

    def test_image_filename_prefers_name(self) -> None:
        with TemporaryDirectory() as tmpdir:
            directory = Path(tmpdir)
            (directory / "1.png").write_bytes(b"png")

            self.assertEqual(image_filename(" hero ", directory), "hero.png")
            self.assertEqual(image_filename("", directory), "2.png")
            self.assertEqual(image_filename(None, directory), "2.png")


class TestImageEncoding(unittest.TestCase):
    def test_image_mime_type_defaults_to_jpeg(self) -> None:
        self.assertEqual(image_mime_type(Path("a.PNG")), "image/png")
        self.assertEqual(image_mime_type(Path("a.webp")), "image/webp")
        self.assertEqual(image_mime_type(Path("a.jpg")), "image/jpeg")
        self.assertEqual(image_mime_type(Path("a.bmp")), "image/jpeg")

    def test_image_data_url_embeds_base64(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "hero.png"
            path.write_bytes(b"abc")

            self.assertEqual(image_data_url(path), "data:image/png;base64,YWJj")


if __name__ == "__main__":
    unittest.main()
