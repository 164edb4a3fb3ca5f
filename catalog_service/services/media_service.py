import io
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

import cloudinary.exceptions
import cloudinary.uploader
from fastapi.concurrency import run_in_threadpool
from slugify import slugify

from catalog_service.core.exceptions import MediaServiceError

logger = logging.getLogger(__name__)

# 첫 번째: 재생용 AV1 영상, 두 번째: 썸네일
VIDEO_EAGER_TRANSFORMATIONS = [
    {"format": "mp4", "video_codec": "av1", "quality": "auto"},
    {"format": "jpg", "start_offset": "0", "width": 640, "crop": "limit"},
]


@dataclass
class EagerVariant:
    secure_url: Optional[str] = None


@dataclass
class UploadResult:
    secure_url: Optional[str] = None
    public_id: Optional[str] = None
    eager: List[EagerVariant] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_response(cls, response: dict) -> "UploadResult":
        return cls(
            secure_url=response.get("secure_url"),
            public_id=response.get("public_id"),
            eager=[EagerVariant(secure_url=item.get("secure_url")) for item in response.get("eager") or []],
        )


def asset_id_from_url(url: str) -> str:
    """URL 의 마지막 경로 조각에서 확장자를 뗀 값 = Cloudinary public id"""
    last_segment = urlparse(url).path.rstrip("/").split("/")[-1]
    return last_segment.split(".")[0]


def resource_type_from_url(url: str) -> str:
    return "video" if "/video/upload/" in urlparse(url).path else "image"


def build_public_id(name: str) -> str:
    # public ids must differ between uploads of the same name
    return f"{slugify(name) or 'asset'}-{uuid.uuid4().hex[:8]}"


class MediaService:
    """Cloudinary SDK 래퍼. SDK 호출은 동기이므로 threadpool 에서 실행."""

    async def upload(self, data: bytes, name: str, folder: str, is_image: bool = True,
                     kind: str = "image") -> UploadResult:
        options = {
            "public_id": build_public_id(name),
            "asset_folder": folder,
            "overwrite": False,
        }
        if is_image:
            options["resource_type"] = "image"
        else:
            options["resource_type"] = kind
            options["eager"] = VIDEO_EAGER_TRANSFORMATIONS
            options["eager_async"] = False

        try:
            response = await run_in_threadpool(cloudinary.uploader.upload, io.BytesIO(data), **options)
        except cloudinary.exceptions.Error as e:
            logger.error("Cloudinary upload failed.", extra={"asset_name": name, "folder": folder, "error": str(e)})
            return UploadResult(error=str(e))

        result = UploadResult.from_response(response)
        logger.info("Cloudinary upload succeeded.",
                    extra={"public_id": result.public_id, "folder": folder, "eager_count": len(result.eager)})
        return result

    async def delete(self, asset_id: str, resource_type: str = "image") -> str:
        try:
            response = await run_in_threadpool(
                cloudinary.uploader.destroy, asset_id, resource_type=resource_type, invalidate=True
            )
        except cloudinary.exceptions.Error as e:
            raise MediaServiceError(f"Failed to delete asset '{asset_id}': {e}") from e

        outcome = response.get("result")
        if outcome != "ok":
            logger.warning("Cloudinary delete did not remove asset.", extra={"public_id": asset_id, "result": outcome})
        return outcome


def get_media_service() -> MediaService:
    return MediaService()
