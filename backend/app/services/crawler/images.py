"""Image re-hosting through an external uploader."""

import logging
from dataclasses import replace
from typing import Optional, Protocol, Tuple

from .models import Extracted, ExtractedArticle

logger = logging.getLogger(__name__)


class ImageUploader(Protocol):
    async def upload(self, url: str, folder: str) -> str:
        """Upload the image at ``url`` and return its hosted URL."""
        ...


def _should_upload(url: str) -> bool:
    return bool(url) and not url.startswith("data:") and not url.lower().endswith(".svg")


async def _rehost(uploader: ImageUploader, url: str, folder: str) -> Optional[str]:
    try:
        return await uploader.upload(url, folder)
    except Exception as exc:
        logger.warning("Image upload failed for %s: %s", url, exc)
        return None


async def rehost_images(
    extracted: Extracted,
    uploader: ImageUploader,
    folder: str,
) -> Tuple[Extracted, int]:
    """Upload every content image and rewrite references to the hosted copies.

    Failed uploads keep the original URL. Returns the rewritten record and the
    number of images uploaded.
    """
    mapping = {}
    for url in extracted.images:
        if url in mapping or not _should_upload(url):
            continue
        hosted = await _rehost(uploader, url, folder)
        if hosted and hosted != url:
            mapping[url] = hosted

    featured = getattr(extracted, "featured_image", None)
    if featured and featured not in mapping and _should_upload(featured):
        hosted = await _rehost(uploader, featured, folder)
        if hosted and hosted != featured:
            mapping[featured] = hosted

    if not mapping:
        return extracted, 0

    images = [mapping.get(url, url) for url in extracted.images]
    if isinstance(extracted, ExtractedArticle):
        content = extracted.content
        for original, hosted in mapping.items():
            content = content.replace(original, hosted)
        rewritten = replace(
            extracted,
            content=content,
            images=images,
            featured_image=mapping.get(featured, featured) if featured else None,
        )
    else:
        description = extracted.description
        for original, hosted in mapping.items():
            description = description.replace(original, hosted)
        rewritten = replace(extracted, description=description, images=images)

    logger.info("Re-hosted %d images to %s", len(mapping), folder)
    return rewritten, len(mapping)
