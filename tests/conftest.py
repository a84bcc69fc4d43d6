import base64
import threading
import time

import cv2
import numpy as np
import pytest

from idverify.config import Settings
from idverify.models.domain import FaceDescriptor, ReferenceEntry

DIM = 128


def solid_image(level, size=(100, 100)):
    width, height = size
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:] = (level, level, level)
    return img


def encode(img, ext=".png"):
    ok, buf = cv2.imencode(ext, img)
    assert ok
    return buf.tobytes()


def png_bytes(level, size=(100, 100)):
    return encode(solid_image(level, size))


def jpeg_bytes(level, size=(100, 100)):
    return encode(solid_image(level, size), ".jpg")


def data_url(data, mime="image/png"):
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def vector(first=0.0):
    vec = np.zeros(DIM, dtype=np.float64)
    vec[0] = first
    return vec


class FakeProvider:
    """Maps the mean grey level of a canonical image to a descriptor.

    Levels mapped to None behave like images without a face, levels in
    ``slow`` sleep before answering and levels in ``failing`` raise.
    """

    name = "fake_v1"

    def __init__(self, faces, slow=(), delay=0.5, failing=()):
        self.faces = faces
        self.slow = set(slow)
        self.failing = set(failing)
        self.delay = delay
        self.calls = 0
        self.threads = set()

    def detect(self, image, config):
        self.calls += 1
        self.threads.add(threading.current_thread().name)
        level = int(round(float(image.pixels.mean())))
        key = min(self.faces, key=lambda k: abs(k - level))
        if abs(key - level) > 4:
            return None
        if key in self.slow:
            time.sleep(self.delay)
        if key in self.failing:
            raise RuntimeError("dlib: unable to allocate")
        vec = self.faces[key]
        if vec is None:
            return None
        return FaceDescriptor(vector=np.asarray(vec, dtype=np.float64), provider=self.name)


LIVE = 120
NO_FACE = 40
MATCHING = 200
OTHER = 160


@pytest.fixture
def provider():
    return FakeProvider({
        LIVE: vector(0.0),
        NO_FACE: None,
        MATCHING: vector(0.3),
        OTHER: vector(0.8),
    })


@pytest.fixture
def settings(tmp_path):
    return Settings(log_dir=str(tmp_path / "logs"))


@pytest.fixture
def accounts():
    return {
        "9040007857211": [
            ReferenceEntry("ref-no-face", photo=data_url(png_bytes(NO_FACE)),
                           signature=data_url(png_bytes(10, (300, 150)))),
            ReferenceEntry("ref-match", photo=data_url(jpeg_bytes(MATCHING), "image/jpeg"),
                           signature=data_url(png_bytes(100, (300, 150)))),
        ],
        "3051010011804": [
            ReferenceEntry("ref-other", photo=data_url(png_bytes(OTHER)),
                           signature=data_url(png_bytes(250, (300, 150)))),
        ],
        "0000000000000": [],
    }
