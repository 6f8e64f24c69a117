#image_compressor.py
import base64
import io
import re

from PIL import Image, UnidentifiedImageError

from envirotrack.utils.logging_config import get_logger

logger = get_logger('envirotrack.images')

DATA_URL_PATTERN = re.compile(r'^data:([^;]+);base64,(.+)$', re.DOTALL)
MIN_QUALITY = 30


def estimate_size_kb(base64_data):
    """Decoded size of a base64 payload in KB"""
    return len(base64_data) * 3 / 4 / 1024


def compress_base64_image(data_url, target_size_kb=100, max_width=800, max_height=600):
    """Shrink a base64 data URL image until it fits the target size.

    Anything that is not an image data URL, or cannot be decoded, is returned unchanged.
    """
    if not isinstance(data_url, str):
        return data_url

    match = DATA_URL_PATTERN.match(data_url)
    if not match:
        return data_url

    mime_type, payload = match.group(1), match.group(2)
    if not mime_type.startswith('image/'):
        return data_url

    if estimate_size_kb(payload) <= target_size_kb:
        return data_url

    try:
        image = Image.open(io.BytesIO(base64.b64decode(payload)))
        image.load()
    except (UnidentifiedImageError, ValueError, OSError) as e:
        logger.warning('Could not read image for compression: %s', e)
        return data_url

    if image.mode not in ('RGB', 'L'):
        image = image.convert('RGB')

    image.thumbnail((max_width, max_height))

    quality = 85
    while True:
        buffer = io.BytesIO()
        image.save(buffer, format='JPEG', quality=quality, optimize=True)
        encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
        if estimate_size_kb(encoded) <= target_size_kb or quality <= MIN_QUALITY:
            break
        quality -= 10

    logger.debug(
        'Compressed image from %.0fKB to %.0fKB (quality %d)',
        estimate_size_kb(payload), estimate_size_kb(encoded), quality
    )
    return f'data:image/jpeg;base64,{encoded}'
