"""QR code image generation."""
import io
from typing import List

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}


def _build_matrix(text: str, margin: int, error_correction: str) -> List[List[bool]]:
    if not text or not text.strip():
        raise ValueError("Text to encode must not be blank")

    level = ERROR_CORRECTION_LEVELS.get(error_correction.upper())
    if level is None:
        raise ValueError(f"Unknown error correction level: {error_correction}")

    qr = qrcode.QRCode(error_correction=level, box_size=1, border=margin)
    qr.add_data(text.encode("utf-8"))
    qr.make(fit=True)
    return qr.get_matrix()


def encode(
    text: str,
    size: int = 1024,
    margin: int = 1,
    error_correction: str = "M",
) -> List[List[bool]]:
    """
    Encode text as a size x size grid of dark (True) / light (False) pixels.
    The margin is the quiet zone width in modules.
    """
    matrix = _build_matrix(text, margin, error_correction)
    modules = len(matrix)
    if size < modules:
        raise ValueError(f"Size {size} is smaller than the {modules} module symbol")

    # Nearest-neighbour scaling from module grid to pixel grid
    return [
        [matrix[y * modules // size][x * modules // size] for x in range(size)]
        for y in range(size)
    ]


def render_png(
    text: str,
    size: int = 1024,
    margin: int = 1,
    error_correction: str = "M",
    fill_color: str = "black",
    back_color: str = "white",
) -> bytes:
    matrix = _build_matrix(text, margin, error_correction)
    modules = len(matrix)
    if size < modules:
        raise ValueError(f"Size {size} is smaller than the {modules} module symbol")

    img = Image.new("RGB", (modules, modules), back_color)
    dark = Image.new("RGB", (modules, modules), fill_color)
    mask = Image.new("L", (modules, modules))
    mask.putdata([255 if cell else 0 for row in matrix for cell in row])
    img.paste(dark, mask=mask)
    img = img.resize((size, size), Image.Resampling.NEAREST)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
