import numpy as np
import pytest

from cap_dehaze.color_attenuation_prior import (
    ColorAttenuationDehazer,
    estimate_atmospheric_light,
    estimate_transmission,
    get_depth_from_hazy_image,
    recover_radiance,
    remove_haze,
)
from cap_dehaze.image import Coord, ImageError, Pixel, saturation


class TestDepthEstimation:
    def test_normalised_range(self, hazy_gradient, rng):
        hazy, _ = hazy_gradient
        textured = 0.5 + 0.1 * rng.random((30, 40, 3)).astype(np.float32)
        for image in (hazy, textured):
            depth = get_depth_from_hazy_image(image, 5)
            assert depth.shape == image.shape[:2]
            assert depth.min() == 0.0
            assert depth.max() == 1.0

    def test_monotonic_in_haze(self, hazy_gradient):
        hazy, _ = hazy_gradient
        depth = get_depth_from_hazy_image(hazy, 9)
        assert np.all(np.diff(depth, axis=0) >= 0)
        assert np.all(np.diff(depth, axis=1) >= 0)
        assert depth[0, 0] == 0.0
        assert depth[-1, -1] == 1.0

    def test_linear_model_without_min_filter(self, rng):
        image = 0.4 + 0.3 * rng.random((10, 12, 3)).astype(np.float32)
        lum = 0.2126 * image[..., 0] + 0.7152 * image[..., 1] + 0.0722 * image[..., 2]
        raw = np.clip(0.121779 + 0.959710 * lum - 0.780245 * saturation(image), 0, 1)
        expected = (raw - raw.min()) / (raw.max() - raw.min())
        np.testing.assert_allclose(get_depth_from_hazy_image(image, 1), expected, atol=1e-5)

    def test_min_filter_removes_bright_spots(self):
        image = np.zeros((15, 15, 3), dtype=np.float32)
        image[..., 0] = 1.0
        image[7, 7] = [1.0, 1.0, 1.0]
        unfiltered = get_depth_from_hazy_image(image, 1)
        assert unfiltered[7, 7] == 1.0
        assert unfiltered.sum() == 1.0
        filtered = get_depth_from_hazy_image(image, 3)
        np.testing.assert_array_equal(filtered, 0.0)

    def test_uint8_input(self, hazy_gradient):
        hazy, _ = hazy_gradient
        depth = get_depth_from_hazy_image((hazy * 255).astype(np.uint8), 9)
        assert depth.dtype == np.float32
        assert depth.max() == 1.0

    def test_invalid_kernel(self, hazy_gradient):
        with pytest.raises(ValueError):
            get_depth_from_hazy_image(hazy_gradient[0], 0)


class TestAtmosphericLight:
    def test_brightest_of_farthest(self, rng):
        image = rng.random((100, 100, 3)).astype(np.float32) * 0.5
        depth = rng.random((100, 100)).astype(np.float32) * 0.5
        far = [(3, 4), (10, 90), (50, 50), (70, 2), (99, 99), (0, 0), (20, 30), (40, 60), (80, 80), (60, 10)]
        for y, x in far:
            depth[y, x] = 1.0
        image[50, 50] = [0.9, 0.9, 0.9]
        # brighter, but near the camera
        image[5, 5] = [1.0, 1.0, 1.0]

        A, coord = estimate_atmospheric_light(image, depth)
        assert coord == Coord(50, 50)
        assert (A.r, A.g, A.b) == pytest.approx((0.9, 0.9, 0.9))

    def test_small_image_uses_farthest_pixel(self, rng):
        image = rng.random((10, 10, 3)).astype(np.float32)
        depth = np.zeros((10, 10), dtype=np.float32)
        depth[2, 7] = 1.0
        A, coord = estimate_atmospheric_light(image, depth)
        assert coord == Coord(7, 2)
        assert A == Pixel.from_array(image[2, 7])

    def test_size_mismatch(self):
        with pytest.raises(ImageError):
            estimate_atmospheric_light(np.zeros((4, 4, 3)), np.zeros((4, 5)))


class TestHazeRemoval:
    def test_transmission_bounds(self):
        depth = np.array([[0.0, 0.5, 10.0]], dtype=np.float32)
        t = estimate_transmission(depth, 1.0)
        np.testing.assert_allclose(t, [[0.9, np.exp(-0.5), 0.1]], rtol=1e-6)
        np.testing.assert_allclose(estimate_transmission(depth, 0.0), 0.9)

    def test_recover_radiance_inverts_formation_model(self, rng):
        J = rng.random((8, 8, 3)).astype(np.float32)
        A = Pixel(0.8, 0.85, 0.9)
        t = np.full((8, 8), 0.5, dtype=np.float32)
        hazy = J * t[..., None] + A.to_array() * (1 - t[..., None])
        np.testing.assert_allclose(recover_radiance(hazy, t, A), J, atol=1e-5)

    def test_zero_depth_still_corrected(self, rng):
        image = rng.random((40, 40, 3)).astype(np.float32)
        depth = np.zeros((40, 40), dtype=np.float32)
        A, _ = estimate_atmospheric_light(image, depth)
        out = remove_haze(image, depth, beta=1.0)
        expected = A.to_array() + (image - A.to_array()) / 0.9
        np.testing.assert_allclose(out, expected, rtol=1e-5, atol=1e-6)
        assert not np.allclose(out, image)

    def test_output_not_clipped(self):
        image = np.full((4, 4, 3), 0.5, dtype=np.float32)
        image[0, 0] = [0.0, 0.0, 0.0]
        depth = np.full((4, 4), 3.0, dtype=np.float32)
        depth[1, 1] = 4.0
        image[1, 1] = [0.9, 0.9, 0.9]
        out = remove_haze(image, depth)
        # t = 0.1 everywhere, A = (0.9, 0.9, 0.9)
        np.testing.assert_allclose(out[0, 0], [-8.1, -8.1, -8.1], rtol=1e-5)

    def test_size_mismatch(self):
        with pytest.raises(ImageError):
            remove_haze(np.zeros((4, 4, 3)), np.zeros((5, 4)))


class TestDehazer:
    def test_end_to_end_gradient(self, hazy_gradient):
        hazy, distance = hazy_gradient
        result = ColorAttenuationDehazer(radius=9, beta=1.0).dehaze(hazy)

        assert result.recovered.shape == hazy.shape
        assert result.depth.shape == result.raw_depth.shape == distance.shape
        assert np.all(np.isfinite(result.recovered))

        assert np.corrcoef(result.raw_depth.ravel(), distance.ravel())[0, 1] > 0.8
        assert np.corrcoef(result.depth.ravel(), distance.ravel())[0, 1] > 0.8

        corner = (slice(48, 64), slice(48, 64))
        before = saturation(hazy[corner]).mean()
        after = saturation(np.clip(result.recovered[corner], 0.0, 1.0)).mean()
        assert after > before + 0.03

    def test_defaults(self):
        dehazer = ColorAttenuationDehazer()
        assert dehazer.radius == 9
        assert dehazer.beta == 1.0

    def test_linearize_round_trips_colour_space(self, hazy_gradient):
        hazy, _ = hazy_gradient
        plain = ColorAttenuationDehazer(radius=5).dehaze(hazy)
        linear = ColorAttenuationDehazer(radius=5, linearize=True).dehaze(hazy)
        assert linear.recovered.shape == plain.recovered.shape
        assert not np.allclose(linear.recovered, plain.recovered)
