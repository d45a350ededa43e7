import io

import pytest
from PIL import Image

from conftest import make_image_bytes
from image_utils import (
    ImageProcessingError, compress_image, decode_data_url, fit_within,
    guess_mime_type, make_square_png, prepare_variation_png, to_data_url,
)


def test_fit_within():
    assert fit_within(1600, 1200, 800, 800) == (800, 600)
    assert fit_within(600, 1200, 800, 800) == (400, 800)
    assert fit_within(300, 200, 800, 800) == (300, 200)


class TestCompressImage:
    def test_downscales_to_jpeg(self):
        compressed = compress_image(make_image_bytes(size=(1600, 1200), fmt='PNG'))

        img = Image.open(io.BytesIO(compressed))
        assert img.format == 'JPEG'
        assert img.size == (800, 600)

    def test_small_image_keeps_size(self):
        img = Image.open(io.BytesIO(compress_image(make_image_bytes(size=(320, 240)))))
        assert img.size == (320, 240)

    def test_transparency_flattened_onto_white(self):
        source = make_image_bytes(size=(50, 50), color=(0, 0, 0, 0), fmt='PNG', mode='RGBA')

        img = Image.open(io.BytesIO(compress_image(source)))

        assert img.mode == 'RGB'
        r, g, b = img.getpixel((25, 25))
        assert min(r, g, b) > 240

    def test_invalid_bytes(self):
        with pytest.raises(ImageProcessingError):
            compress_image(b'definitely not an image')


def test_guess_mime_type():
    assert guess_mime_type(make_image_bytes(fmt='PNG')) == 'image/png'
    assert guess_mime_type(b'garbage') == 'image/jpeg'


class TestDataUrls:
    def test_to_data_url(self):
        assert to_data_url(b'abc') == 'data:image/jpeg;base64,YWJj'
        assert to_data_url(b'abc', 'image/png').startswith('data:image/png;base64,')

    def test_decode_accepts_prefixed_and_bare(self):
        assert decode_data_url('data:image/png;base64,YWJj') == b'abc'
        assert decode_data_url('YWJj') == b'abc'

    def test_decode_rejects_empty(self):
        with pytest.raises(ImageProcessingError):
            decode_data_url('')


def test_make_square_png_letterboxes():
    png = make_square_png(make_image_bytes(size=(400, 200), color=(255, 0, 0), fmt='PNG'), size=256)

    img = Image.open(io.BytesIO(png))
    assert img.format == 'PNG'
    assert img.size == (256, 256)
    assert img.getpixel((128, 128))[:3] == (255, 0, 0)
    assert img.getpixel((128, 5))[:3] == (255, 255, 255)


class TestPrepareVariationPng:
    def test_uses_largest_size_that_fits(self):
        png = prepare_variation_png(make_image_bytes(size=(300, 300)))

        assert Image.open(io.BytesIO(png)).size == (1024, 1024)

    def test_raises_when_nothing_fits(self):
        with pytest.raises(ImageProcessingError):
            prepare_variation_png(make_image_bytes(size=(300, 300)), max_bytes=10)
