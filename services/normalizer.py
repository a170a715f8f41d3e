from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from services.errors import DecodeError

# Input shape and encoding expected by the external classifier
TARGET_SIZE = (224, 224)
TARGET_FORMAT = "JPEG"
TARGET_CONTENT_TYPE = "image/jpeg"
JPEG_QUALITY = 90

_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    SyntaxError,
    ValueError,
)


def normalize_image(data: bytes) -> bytes:
    """Decode ``data`` and re-encode it as a 224x224 JPEG, entirely in memory.

    The image is scaled and center-cropped to cover the target size, so the
    output shape does not depend on the input aspect ratio.
    Raises ``DecodeError`` when ``data`` is empty or not a decodable image.
    """
    if not data:
        raise DecodeError("The uploaded file is empty.")

    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            rgb = img.convert("RGB")
    except _DECODE_ERRORS as exc:
        raise DecodeError() from exc

    fitted = ImageOps.fit(rgb, TARGET_SIZE, method=Image.Resampling.LANCZOS)

    out = BytesIO()
    fitted.save(out, format=TARGET_FORMAT, quality=JPEG_QUALITY)
    return out.getvalue()
