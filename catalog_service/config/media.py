import logging

import cloudinary

from catalog_service.core.config import settings

logger = logging.getLogger(__name__)


def configure_cloudinary():
    """Cloudinary SDK 전역 설정. 자격 증명이 없으면 경고만 남긴다."""
    if not settings.CLOUDINARY_CLOUD_NAME:
        logger.warning("Cloudinary credentials missing, media uploads will fail.")
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,
    )
    logger.info("Cloudinary configured.", extra={"cloud_name": settings.CLOUDINARY_CLOUD_NAME})
