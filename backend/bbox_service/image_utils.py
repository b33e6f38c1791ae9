"""Screenshot encoding: compress and wrap as data URIs for the JSON response."""
from PIL import Image
import io
import base64


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode == 'RGBA':
        canvas = Image.new('RGB', img.size, (255, 255, 255))
        canvas.paste(img, mask=img.getchannel('A'))
        return canvas
    if img.mode != 'RGB':
        return img.convert('RGB')
    return img


def optimize_screenshot(screenshot_bytes: bytes, max_width: int = 1280, quality: int = 75) -> bytes:
    """PNG bytes in, JPEG bytes out, no wider than ``max_width``."""
    img = Image.open(io.BytesIO(screenshot_bytes))

    if img.width > max_width:
        height = max(1, round(img.height * max_width / img.width))
        img = img.resize((max_width, height), Image.LANCZOS)

    buf = io.BytesIO()
    _flatten(img).save(buf, format='JPEG', quality=quality, optimize=True)
    return buf.getvalue()


def screenshot_to_data_uri(screenshot_bytes: bytes, compress: bool = True,
                           max_width: int = 1280, quality: int = 75) -> str:
    if compress:
        optimized = optimize_screenshot(screenshot_bytes, max_width=max_width, quality=quality)
        return f"data:image/jpeg;base64,{base64.b64encode(optimized).decode()}"
    return f"data:image/png;base64,{base64.b64encode(screenshot_bytes).decode()}"
