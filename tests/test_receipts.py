"""Tests for receipt and avatar image handling."""
import base64
import io
import os
import sys
import unittest

from PIL import Image

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fundcircle.exceptions import ValidationError
from fundcircle.receipts import decode_image_payload, normalize_avatar, normalize_receipt


def image_bytes(size=(8, 8), fmt="PNG"):
    buf = io.BytesIO()
    Image.new("RGB", size, (250, 200, 0)).save(buf, format=fmt)
    return buf.getvalue()


class TestReceipts(unittest.TestCase):

    def test_bytes_become_data_url(self):
        url = normalize_receipt(image_bytes())
        self.assertTrue(url.startswith("data:image/png;base64,"))
        self.assertEqual(decode_image_payload(url), image_bytes())

    def test_jpeg_data_url_accepted(self):
        raw = image_bytes(fmt="JPEG")
        url = "data:image/jpeg;base64," + base64.b64encode(raw).decode("ascii")
        self.assertTrue(normalize_receipt(url).startswith("data:image/jpeg;base64,"))

    def test_bare_base64_accepted(self):
        encoded = base64.b64encode(image_bytes()).decode("ascii")
        self.assertTrue(normalize_receipt(encoded).startswith("data:image/png"))

    def test_garbage_rejected(self):
        with self.assertRaises(ValidationError):
            normalize_receipt("data:image/png;base64,!!!not-base64!!!")
        with self.assertRaises(ValidationError):
            normalize_receipt(base64.b64encode(b"plain text, not a picture").decode("ascii"))
        with self.assertRaises(ValidationError):
            normalize_receipt("")

    def test_disallowed_format(self):
        with self.assertRaises(ValidationError) as context:
            normalize_receipt(image_bytes(fmt="BMP"))
        self.assertEqual(context.exception.details['format'], "BMP")


class TestAvatars(unittest.TestCase):

    def test_avatar_is_shrunk(self):
        url = normalize_avatar(image_bytes(size=(1024, 512), fmt="JPEG"))
        self.assertTrue(url.startswith("data:image/png;base64,"))

        with Image.open(io.BytesIO(decode_image_payload(url))) as img:
            self.assertEqual(img.format, "PNG")
            self.assertEqual(img.size, (256, 128))

    def test_small_avatar_kept(self):
        url = normalize_avatar(image_bytes(size=(64, 64)))
        with Image.open(io.BytesIO(decode_image_payload(url))) as img:
            self.assertEqual(img.size, (64, 64))


if __name__ == '__main__':
    unittest.main()
