import base64
import io

import cv2
import numpy as np
from PIL import Image

EXIF_ORIENTATION = 0x0112

# every decode ignores EXIF so the tag is applied exactly once, by apply_exif_orientation
DECODE_FLAGS = (
    cv2.IMREAD_UNCHANGED,
    cv2.IMREAD_ANYDEPTH | cv2.IMREAD_ANYCOLOR | cv2.IMREAD_IGNORE_ORIENTATION,
    cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION,
)


class ImageDecodeError(ValueError):
    pass


def decode_image(img_bytes):
    """
    Decode bytes robustly and return an 8-bit image (2D gray, BGR or BGRA),
    turned upright the way a browser shows it.
    Tries several imdecode flags and handles 16-bit / float cases.
    """
    if not img_bytes:
        raise ImageDecodeError("empty image data")
    arr = np.frombuffer(img_bytes, np.uint8)
    last_err = None
    for flag in DECODE_FLAGS:
        try:
            img = cv2.imdecode(arr, flag)
        except cv2.error as e:
            img = None
            last_err = e
        if img is None:
            continue

        img = to_uint8(img)
        if img.ndim == 3 and img.shape[2] == 1:
            img = img[:, :, 0]

        if img.ndim == 2 or (img.ndim == 3 and img.shape[2] in (3, 4)):
            return apply_exif_orientation(img, read_exif_orientation(img_bytes))

    raise ImageDecodeError("cannot decode image. " + (str(last_err) if last_err is not None else "unsupported or corrupt file"))


def to_uint8(img):
    if img.dtype == np.uint8:
        return img
    if img.dtype == np.uint16:
        # scale 16-bit -> 8-bit
        return (img >> 8).astype(np.uint8)
    img = img.astype(np.float32)
    # float images are usually normalised to [0, 1]
    if img.size and img.max() <= 1.0:
        img = img * 255.0
    return np.clip(img, 0, 255).astype(np.uint8)


def read_exif_orientation(img_bytes):
    """EXIF orientation tag (1-8), or 1 when the file has none."""
    try:
        with Image.open(io.BytesIO(img_bytes)) as im:
            orientation = im.getexif().get(EXIF_ORIENTATION, 1)
    except (OSError, ValueError, SyntaxError):
        # Pillow can't read every format OpenCV can
        return 1
    return orientation if orientation in range(1, 9) else 1


def apply_exif_orientation(img, orientation):
    if orientation == 2:
        return cv2.flip(img, 1)
    if orientation == 3:
        return cv2.rotate(img, cv2.ROTATE_180)
    if orientation == 4:
        return cv2.flip(img, 0)
    if orientation == 5:
        return cv2.transpose(img)
    if orientation == 6:
        return cv2.rotate(img, cv2.ROTATE_90_CLOCKWISE)
    if orientation == 7:
        return cv2.rotate(cv2.transpose(img), cv2.ROTATE_180)
    if orientation == 8:
        return cv2.rotate(img, cv2.ROTATE_90_COUNTERCLOCKWISE)
    return img


def to_gray(img):
    """Return a 2D uint8 grayscale view of a gray, BGR or BGRA image."""
    if img.ndim == 2:
        return img
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def encode_png(img):
    ok, buf = cv2.imencode('.png', img)
    if not ok:
        raise RuntimeError("Failed to encode image")
    return buf.tobytes()


def to_data_url_png(img):
    b64 = base64.b64encode(encode_png(img)).decode('ascii')
    return f"data:image/png;base64,{b64}"
