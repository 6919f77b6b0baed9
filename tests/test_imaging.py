import base64
import io

import cv2
import numpy as np
import pytest
from PIL import Image

from imgproc.imaging import (
    ImageDecodeError, apply_exif_orientation, decode_image, encode_png, read_exif_orientation,
    to_data_url_png, to_gray, to_uint8,
)


def test_decode_color_png(two_tone_png):
    img = decode_image(two_tone_png)
    assert img.shape == (64, 64, 3)
    assert img.dtype == np.uint8
    assert img[0, 0].tolist() == [30, 30, 30]


def test_decode_keeps_alpha():
    bgra = np.zeros((8, 8, 4), np.uint8)
    bgra[..., 3] = 128
    ok, buf = cv2.imencode('.png', bgra)
    assert ok

    img = decode_image(buf.tobytes())
    assert img.shape == (8, 8, 4)
    assert int(img[0, 0, 3]) == 128


def test_decode_16bit_scaled_to_8bit():
    deep = np.full((4, 4), 0xAB00, np.uint16)
    ok, buf = cv2.imencode('.png', deep)
    assert ok

    img = decode_image(buf.tobytes())
    assert img.dtype == np.uint8
    assert img.ndim == 2
    assert int(img[0, 0]) == 0xAB


@pytest.mark.parametrize('data', [b'', b'definitely not an image'])
def test_decode_rejects_garbage(data):
    with pytest.raises(ImageDecodeError):
        decode_image(data)


def test_to_gray_handles_all_layouts(two_tone):
    assert to_gray(two_tone).shape == (64, 64)
    bgra = cv2.cvtColor(two_tone, cv2.COLOR_BGR2BGRA)
    assert to_gray(bgra).shape == (64, 64)
    gray = to_gray(two_tone)
    assert to_gray(gray) is gray


def test_data_url_is_png(two_tone):
    url = to_data_url_png(two_tone)
    prefix = 'data:image/png;base64,'
    assert url.startswith(prefix)
    raw = base64.b64decode(url[len(prefix):])
    assert raw == encode_png(two_tone)
    assert raw[:8] == b'\x89PNG\r\n\x1a\n'


def _jpeg_with_orientation(orientation):
    """80 wide, 40 high, red stripe down the left edge, white elsewhere."""
    im = Image.new('RGB', (80, 40), (255, 255, 255))
    im.paste((255, 0, 0), (0, 0, 10, 40))
    exif = Image.Exif()
    exif[0x0112] = orientation
    buf = io.BytesIO()
    im.save(buf, 'JPEG', quality=95, subsampling=0, exif=exif.tobytes())
    return buf.getvalue()


def test_decode_applies_exif_rotation():
    data = _jpeg_with_orientation(6)
    assert read_exif_orientation(data) == 6

    img = decode_image(data)
    # shown 40 wide, 80 high; the left stripe ends up along the top
    assert img.shape == (80, 40, 3)
    b, g, r = img[4, 20].tolist()
    assert r > 200 and b < 80 and g < 80
    assert img[60, 20].tolist() == pytest.approx([255, 255, 255], abs=10)


def test_decode_without_exif_is_unchanged():
    data = _jpeg_with_orientation(1)
    assert decode_image(data).shape == (40, 80, 3)


def test_decode_rotates_bgra_by_exif_tag():
    im = Image.new('RGBA', (80, 40), (0, 0, 255, 128))
    exif = Image.Exif()
    exif[0x0112] = 8
    buf = io.BytesIO()
    im.save(buf, 'PNG', exif=exif.tobytes())

    img = decode_image(buf.getvalue())
    assert img.shape == (80, 40, 4)
    assert int(img[0, 0, 3]) == 128


def test_orientation_unknown_to_pillow_defaults_to_upright():
    assert read_exif_orientation(b'definitely not an image') == 1


@pytest.mark.parametrize('orientation,expected', [
    (1, lambda a: a),
    (2, lambda a: a[:, ::-1]),
    (3, lambda a: a[::-1, ::-1]),
    (4, lambda a: a[::-1]),
    (5, lambda a: a.T),
    (6, lambda a: np.rot90(a, -1)),
    (7, lambda a: a.T[::-1, ::-1]),
    (8, lambda a: np.rot90(a, 1)),
])
def test_exif_orientation_transforms(orientation, expected):
    a = np.arange(6, dtype=np.uint8).reshape(2, 3)
    assert np.array_equal(apply_exif_orientation(a, orientation), expected(a))


def test_to_uint8_scales_unit_float():
    img = np.array([[0.0, 0.5, 1.0]], np.float32)
    assert to_uint8(img).tolist() == [[0, 127, 255]]


def test_to_uint8_clips_wide_float():
    img = np.array([[-5.0, 100.0, 300.0]], np.float64)
    assert to_uint8(img).tolist() == [[0, 100, 255]]


def test_to_uint8_passes_uint8_through():
    img = np.zeros((2, 2), np.uint8)
    assert to_uint8(img) is img
