import base64
import io
from typing import Dict, Optional

import requests
from PIL import Image, UnidentifiedImageError

from .client import KomgaClient, build_session
from .config import ImageConfig, Settings
from .logger import get_logger

logger = get_logger()

IMGUR_UPLOAD_URL = "https://api.imgur.com/3/image"


class CoverResolver:
    """Finds a Discord-displayable cover URL for a series, caching per series."""

    def __init__(self, settings: Settings, komga: KomgaClient, session: Optional[requests.Session] = None):
        self.komga = komga
        self.img_config: ImageConfig = settings.image
        self.imgur_client_id = settings.integration.imgur_client_id if settings.rehost_covers else None
        # Separate session so the Komga API key never goes to Imgur
        self.session = session or build_session()
        self.cache: Dict[str, str] = {}
        self._warned_direct = False

    def resolve_cover(self, series_id: str) -> Optional[str]:
        """Checks cache, downloads, optimizes, uploads, and saves to cache."""
        if not series_id:
            return None

        # 1. Check Cache
        if series_id in self.cache:
            return self.cache[series_id]

        # 2. Download
        logger.debug(f"Downloading cover for series {series_id}...")
        img_bytes = self.komga.get_series_thumbnail(series_id)
        if not img_bytes:
            logger.info("Could not download cover art from Komga.")
            return None

        if not self.imgur_client_id:
            url = self.komga.series_thumbnail_url(series_id)
            if not self._warned_direct:
                logger.warning("Imgur rehosting is off; Discord must be able to reach the Komga thumbnail URL itself.")
                self._warned_direct = True
            self.cache[series_id] = url
            return url

        # 3. Optimize
        logger.debug(f"Original image size: {len(img_bytes) / (1024*1024):.2f}MB")
        optimized = self._optimize_image(img_bytes)
        if optimized is None:
            logger.info("Image optimization failed, uploading original bytes.")
            optimized = img_bytes

        # 4. Upload
        logger.debug("Attempting to upload cover art to Imgur...")
        imgur_url = self._upload_imgur(optimized)

        # 5. Cache and Return
        if imgur_url:
            self.cache[series_id] = imgur_url
            logger.info(f"Uploaded and cached: {imgur_url}")
        else:
            logger.warning("Imgur upload failed; showing activity without a cover.")
        return imgur_url

    def _optimize_image(self, image_bytes: bytes) -> Optional[bytes]:
        """Resizes and compresses an image using Pillow."""
        try:
            img = Image.open(io.BytesIO(image_bytes))
            if img.mode != 'RGB':
                img = img.convert('RGB')

            max_size = (self.img_config.max_size, self.img_config.max_size)
            if img.width > max_size[0] or img.height > max_size[1]:
                img.thumbnail(max_size, Image.Resampling.LANCZOS)
                logger.debug(f"Resized image to {img.width}x{img.height}")

            output_buffer = io.BytesIO()
            img.save(output_buffer, format="JPEG", quality=self.img_config.jpeg_quality, optimize=True)
            optimized_bytes = output_buffer.getvalue()

            if len(optimized_bytes) > self.img_config.max_file_bytes:
                logger.info(f"Optimized image is still too large ({len(optimized_bytes)/(1024*1024):.2f}MB).")
                return None
            return optimized_bytes
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.info(f"Error optimizing image: {e}")
            return None

    def _upload_imgur(self, image_bytes: bytes) -> Optional[str]:
        """Uploads image bytes to Imgur."""
        try:
            headers = {"Authorization": f"Client-ID {self.imgur_client_id}"}
            data = {"image": base64.b64encode(image_bytes).decode("ascii"), "type": "base64"}
            r = self.session.post(IMGUR_UPLOAD_URL, headers=headers, data=data, timeout=15)
            r.raise_for_status()
            payload = r.json()
            if payload.get("success"):
                return payload["data"]["link"]
            logger.info(f"Imgur reported failure: {payload.get('data')}")
        except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.info(f"Imgur upload failed: {e}")
        return None
