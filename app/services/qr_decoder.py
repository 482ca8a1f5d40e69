import logging
from typing import List, Optional

import cv2
import numpy as np
from pyzbar.pyzbar import decode as pyzbar_decode

from app.errors import DecodeFailure

logger = logging.getLogger(__name__)


def _load_image(image_bytes: bytes) -> np.ndarray:
    # Convert bytes → numpy array → CV2 image
    nparr = np.frombuffer(image_bytes, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR) if nparr.size else None

    if img is None:
        logger.error("Uploaded bytes are not a readable image")
        raise DecodeFailure("Image could not be read")
    return img


def decode_all(image_bytes: bytes) -> List[str]:
    """
    Decode every code in a frame, in detection order.
    Returns an empty list when the frame holds no code.
    """
    img = _load_image(image_bytes)

    results = []
    for obj in pyzbar_decode(img):
        try:
            results.append(obj.data.decode("utf-8"))
        except UnicodeDecodeError:
            logger.warning(f"Skipping {obj.type} symbol with non UTF-8 payload")
    return results


def decode_qr_image(image_bytes: bytes) -> Optional[str]:
    """
    Takes raw image bytes and returns the first decoded QR string or None.
    """
    decoded = decode_all(image_bytes)
    if not decoded:
        return None
    return decoded[0]
