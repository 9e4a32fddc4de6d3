"""
Tests for feature extraction (candles / image bytes / rendered charts).
"""

import io

import pytest
from PIL import Image

from pattern_alerts.exceptions import FingerprintError, MarketDataError
from pattern_alerts.services.chart_renderer import render_candles
from pattern_alerts.services.feature_extractor import (
    extract,
    extract_from_bytes,
    extract_from_candles,
    extract_from_image,
    image_to_raster,
)
from pattern_alerts.services.similarity import cosine_similarity, similarity_to_percent
from conftest import IMAGE_A, IMAGE_B, make_candles


class TestExtractFromCandles:

    @pytest.mark.parametrize("count", [0, 1, 10, 50, 64, 65, 200, 1000])
    def test_fixed_dimensionality(self, count):
        vector = extract_from_candles(make_candles(count))
        assert len(vector) == 64

    def test_empty_series_is_zero_vector(self):
        assert extract_from_candles([]) == [0.0] * 64

    def test_deterministic(self):
        candles = make_candles(120)
        assert extract_from_candles(candles) == extract_from_candles(candles)

    def test_normalized_to_unit_range(self):
        vector = extract_from_candles(make_candles(50, start=1.08, step=0.0003))
        assert min(vector) == 0.0
        assert max(vector) == pytest.approx(1.0)
        assert all(0.0 <= v <= 1.0 for v in vector)

    def test_short_series_padded_with_zeros(self):
        vector = extract_from_candles(make_candles(50))
        # 50 closes, then 14 padding entries
        assert vector[49] == pytest.approx(1.0)
        assert vector[50:] == [0.0] * 14

    def test_flat_prices_do_not_divide_by_zero(self):
        candles = make_candles(30, step=0.0)
        assert extract_from_candles(candles) == [0.0] * 64

    def test_long_series_resampled_by_floor_step(self):
        # 128 candles -> every 2nd candle
        candles = make_candles(128)
        vector = extract_from_candles(candles)
        assert vector[0] == 0.0
        assert vector[1] == pytest.approx(2 / 127)
        assert vector[63] == pytest.approx(126 / 127)

    def test_custom_dimension(self):
        assert len(extract_from_candles(make_candles(10), dim=16)) == 16


class TestExtractFromBytes:

    def test_evenly_spaced_offsets(self):
        vector = extract_from_bytes(bytes(range(256)))
        assert len(vector) == 64
        assert vector[0] == 0.0
        assert vector[1] == pytest.approx(4 / 255)
        assert vector[63] == pytest.approx(252 / 255)

    def test_empty_bytes_is_zero_vector(self):
        assert extract_from_bytes(b"") == [0.0] * 64

    def test_short_input_still_fixed_length(self):
        vector = extract_from_bytes(b"\xff\x00")
        assert len(vector) == 64
        assert set(vector) == {0.0, 1.0}

    def test_deterministic(self):
        assert extract_from_bytes(IMAGE_A) == extract_from_bytes(IMAGE_A)


def two_tone_png(width, height):
    """Left half white, right half black."""
    image = Image.new("L", (width, height), 0)
    image.paste(255, (0, 0, width // 2, height))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class TestExtractFromImage:

    def test_fixed_dimensionality(self):
        assert len(extract_from_image(IMAGE_A)) == 64
        assert len(extract_from_image(IMAGE_A, dim=16)) == 16
        assert len(extract_from_image(IMAGE_A, dim=50)) == 50

    def test_raster_is_square_grid(self):
        assert len(image_to_raster(IMAGE_A)) == 64
        assert len(image_to_raster(IMAGE_A, dim=50)) == 64

    def test_contrast_stretched_to_unit_range(self):
        vector = extract_from_image(IMAGE_A)
        assert min(vector) == 0.0
        assert max(vector) == 1.0

    def test_grid_layout_independent_of_image_size(self):
        small = extract_from_image(two_tone_png(80, 80))
        large = extract_from_image(two_tone_png(160, 160))
        assert small == large
        assert small[:8] == [1.0, 1.0, 1.0, 1.0, 0.0, 0.0, 0.0, 0.0]

    def test_uniform_image_is_zero_vector(self):
        buffer = io.BytesIO()
        Image.new("L", (20, 10), 128).save(buffer, format="PNG")
        assert extract_from_image(buffer.getvalue()) == [0.0] * 64

    def test_empty_bytes_is_zero_vector(self):
        assert extract_from_image(b"") == [0.0] * 64

    def test_unreadable_bytes_raise(self):
        with pytest.raises(FingerprintError):
            extract_from_image(b"plain text, not an image")

    def test_opposite_trends_score_below_default_threshold(self):
        percent = similarity_to_percent(
            cosine_similarity(extract_from_image(IMAGE_A), extract_from_image(IMAGE_B))
        )
        assert percent < 70


class TestRenderCandles:

    def test_png_of_requested_size(self):
        data = render_candles(make_candles(50), width=400, height=200)
        assert data[:8] == b"\x89PNG\r\n\x1a\n"
        with Image.open(io.BytesIO(data)) as image:
            assert image.size == (400, 200)

    def test_same_candles_same_fingerprint(self):
        candles = make_candles(50)
        assert extract_from_image(render_candles(candles)) == extract_from_image(render_candles(candles))

    def test_flat_prices_render(self):
        assert render_candles(make_candles(10, step=0.0))[:4] == b"\x89PNG"

    def test_no_candles_rejected(self):
        with pytest.raises(MarketDataError):
            render_candles([])


def test_extract_dispatches_on_input_kind():
    assert extract(IMAGE_A) == extract_from_image(IMAGE_A)
    candles = make_candles(40)
    assert extract(candles) == extract_from_candles(candles)


class TestFeatureExtractor:

    async def test_generate_from_url(self, extractor, image_resolver):
        vector = await extractor.generate_from_url("https://img.example/a.png")
        assert vector == extract_from_image(IMAGE_A)
        assert image_resolver.calls == ["https://img.example/a.png"]

    async def test_unreachable_image_raises_fingerprint_error(self, extractor):
        with pytest.raises(FingerprintError):
            await extractor.generate_from_url("https://img.example/missing.png")

    async def test_non_image_raises_fingerprint_error(self, extractor):
        with pytest.raises(FingerprintError):
            await extractor.generate_from_url("https://img.example/notes.txt")
