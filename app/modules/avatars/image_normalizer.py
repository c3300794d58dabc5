"""Convert uploaded images into bounded-size WebP avatars."""
import io
import logging
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from app.modules.avatars.errors import ImageDecodeError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 512
DEFAULT_QUALITY = 80
WEBP_CONTENT_TYPE = "image/webp"


@dataclass(frozen=True)
class NormalizedImage:
    content: bytes
    width: int
    height: int
    content_type: str = WEBP_CONTENT_TYPE


def compute_target_size(width: int, height: int, max_size: int = DEFAULT_MAX_SIZE) -> Tuple[int, int]:
    """Clamp the longer edge to max_size and scale the shorter one. Never upscales."""
    if width <= max_size and height <= max_size:
        return width, height
    if width > height:
        return max_size, max(1, int(height * max_size / width))
    return max(1, int(width * max_size / height)), max_size


def normalize_image(
    data: bytes,
    max_size: int = DEFAULT_MAX_SIZE,
    quality: int = DEFAULT_QUALITY,
) -> NormalizedImage:
    """
    Decode `data`, resize it to fit inside a max_size square and re-encode as WebP.
    Raises ImageDecodeError if the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            img = ImageOps.exif_transpose(source)
            if img.mode not in ("RGB", "RGBA"):
                has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
                img = img.convert("RGBA" if has_alpha else "RGB")

            target = compute_target_size(img.width, img.height, max_size)
            if target != img.size:
                img = img.resize(target, Image.Resampling.LANCZOS)

            output = io.BytesIO()
            img.save(output, format="WEBP", quality=quality)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning(f"Failed to decode avatar image: {e}")
        raise ImageDecodeError("Failed to load image") from e

    return NormalizedImage(content=output.getvalue(), width=target[0], height=target[1])
