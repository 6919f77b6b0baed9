import cv2
import numpy as np
import pytest

from imgproc import server


@pytest.fixture
def app():
    # looked up each time so a reloaded server module is picked up
    flask_app = server.app
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def two_tone():
    """64x64 BGR: dark left half, bright right half, 2x2 white speck at (10, 10)."""
    img = np.full((64, 64, 3), 30, np.uint8)
    img[:, 32:] = 220
    img[10:12, 10:12] = 255
    return img


@pytest.fixture
def two_tone_png(two_tone):
    ok, buf = cv2.imencode('.png', two_tone)
    assert ok
    return buf.tobytes()
