import base64
import io

from PIL import Image

from bbox_service.image_utils import optimize_screenshot, screenshot_to_data_uri


def _png(size, mode="RGBA", color=(0, 120, 255, 0)):
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


class TestOptimizeScreenshot:
    def test_wide_transparent_image_becomes_narrow_jpeg(self):
        out = Image.open(io.BytesIO(optimize_screenshot(_png((750, 1624)), max_width=375)))

        assert out.format == "JPEG"
        assert out.size == (375, 812)
        # transparent pixels land on white
        assert all(c >= 250 for c in out.getpixel((10, 10)))

    def test_narrow_image_keeps_its_size(self):
        out = Image.open(io.BytesIO(optimize_screenshot(_png((40, 20), "RGB", (1, 2, 3)))))

        assert out.size == (40, 20)

    def test_sliver_keeps_one_pixel_of_height(self):
        out = Image.open(io.BytesIO(optimize_screenshot(_png((4000, 1), "RGB", (0, 0, 0)), max_width=100)))

        assert out.size == (100, 1)


class TestDataUri:
    def test_compressed_and_raw(self):
        png = _png((8, 8), "RGB", (200, 30, 30))

        assert screenshot_to_data_uri(png).startswith("data:image/jpeg;base64,")
        raw = screenshot_to_data_uri(png, compress=False)
        assert raw == "data:image/png;base64," + base64.b64encode(png).decode()
