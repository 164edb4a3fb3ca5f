import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from catalog_service.core.exceptions import MediaUploadError, MissingAttachmentError
from catalog_service.models.product import MEDIA_FIELDS, VIDEO_THUMBNAIL_FIELD, MediaSlot
from catalog_service.services.background import BackgroundTaskSupervisor
from catalog_service.services.media_service import (
    MediaService, UploadResult, asset_id_from_url, resource_type_from_url,
)

logger = logging.getLogger(__name__)

SlotOutcome = Union[UploadResult, BaseException]


@dataclass
class Attachment:
    slot: MediaSlot
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


def resolve_video_urls(result: Optional[UploadResult]) -> Tuple[str, str]:
    """
    영상 업로드 결과 -> (재생 URL, 썸네일 URL)
    eager 변환본이 있으면 첫 번째가 영상, 두 번째가 썸네일.
    없으면 원본 URL 만 영상으로 사용.
    """
    if result is None or result.error:
        return "", ""
    if result.eager:
        video_url = result.eager[0].secure_url or result.secure_url or ""
        thumbnail_url = ""
        if len(result.eager) > 1 and result.eager[1].secure_url:
            thumbnail_url = result.eager[1].secure_url
        return video_url, thumbnail_url
    if result.secure_url:
        return result.secure_url, ""
    return "", ""


def slot_urls(slot: MediaSlot, result: Optional[UploadResult]) -> Dict[str, str]:
    """업로드 결과에서 문서에 기록할 필드 -> URL. 실패면 빈 dict."""
    if slot is MediaSlot.VIDEO:
        video_url, thumbnail_url = resolve_video_urls(result)
        if not video_url:
            return {}
        return {slot.field: video_url, VIDEO_THUMBNAIL_FIELD: thumbnail_url}
    if result is None or result.error or not result.secure_url:
        return {}
    return {slot.field: result.secure_url}


class MediaManager:
    def __init__(self, media: MediaService, tasks: BackgroundTaskSupervisor):
        self.media = media
        self.tasks = tasks
        self.tracer = trace.get_tracer("catalog_service.services.MediaManager")

    @staticmethod
    def require_primary(attachments: Mapping[MediaSlot, Attachment]):
        if MediaSlot.IMG not in attachments or not attachments[MediaSlot.IMG].data:
            raise MissingAttachmentError()

    async def _upload(self, attachment: Attachment, base_name: str, folder: str) -> UploadResult:
        slot = attachment.slot
        logger.info("Uploading attachment.",
                    extra={"slot": slot.field, "upload_filename": attachment.filename,
                           "content_type": attachment.content_type, "size": len(attachment.data)})
        return await self.media.upload(
            attachment.data,
            f"{base_name}{slot.suffix}",
            folder,
            is_image=slot.is_image,
            kind="image" if slot.is_image else "video",
        )

    async def _upload_all(self, attachments: Mapping[MediaSlot, Attachment], base_name: str,
                          folder: str) -> Dict[MediaSlot, SlotOutcome]:
        with self.tracer.start_as_current_span("service.media.upload_all") as span:
            slots = list(attachments)
            span.set_attribute("app.media.slots", [slot.field for slot in slots])
            span.set_attribute("app.media.folder", folder)
            outcomes = await asyncio.gather(
                *(self._upload(attachments[slot], base_name, folder) for slot in slots),
                return_exceptions=True,
            )
            for slot, outcome in zip(slots, outcomes):
                if isinstance(outcome, BaseException):
                    span.record_exception(outcome)
                    logger.error("Attachment upload raised.", extra={"slot": slot.field, "error": str(outcome)},
                                 exc_info=(type(outcome), outcome, outcome.__traceback__))
                elif outcome.error:
                    logger.warning("Attachment upload reported an error.", extra={"slot": slot.field, "error": outcome.error})
            return dict(zip(slots, outcomes))

    async def upload_for_create(self, attachments: Mapping[MediaSlot, Attachment], base_name: str,
                                folder: str) -> Dict[str, str]:
        """
        생성용 업로드. 대표 이미지는 필수, 나머지는 best-effort (실패 시 "").
        반환값은 모든 미디어 필드를 포함한다.
        """
        self.require_primary(attachments)
        outcomes = await self._upload_all(attachments, base_name, folder)

        media = {field: "" for field in MEDIA_FIELDS}
        for slot, outcome in outcomes.items():
            if not isinstance(outcome, BaseException):
                media.update(slot_urls(slot, outcome))

        primary = outcomes[MediaSlot.IMG]
        if isinstance(primary, BaseException) or not media[MediaSlot.IMG.field]:
            self.discard(media[slot.field] for slot in MediaSlot)
            if isinstance(primary, BaseException):
                raise primary
            raise MediaUploadError()
        return media

    async def upload_for_update(self, attachments: Mapping[MediaSlot, Attachment], base_name: str, folder: str,
                                current: Mapping) -> Tuple[Dict[str, str], List[str]]:
        """
        수정용 업로드. 모든 슬롯이 best-effort.
        반환: (새 URL 들, 교체되어 지워야 할 이전 URL 들)
        """
        if not attachments:
            return {}, []
        outcomes = await self._upload_all(attachments, base_name, folder)

        updates: Dict[str, str] = {}
        stale: List[str] = []
        for slot, outcome in outcomes.items():
            urls = {} if isinstance(outcome, BaseException) else slot_urls(slot, outcome)
            if not urls:
                logger.warning("Upload failed on update, keeping previous value.", extra={"slot": slot.field})
                continue
            previous = current.get(slot.field)
            if previous:
                stale.append(previous)
            updates.update(urls)
        return updates, stale

    async def delete(self, url: str) -> str:
        return await self.media.delete(asset_id_from_url(url), resource_type_from_url(url))

    def discard(self, urls: Iterable[str]):
        """원격 자산 삭제를 백그라운드로 보낸다. 응답은 기다리지 않음."""
        for url in urls:
            if not url:
                continue
            self.tasks.spawn(self.delete(url), name=f"media-delete:{asset_id_from_url(url)}")
            logger.info("Scheduled remote asset deletion.", extra={"url": url})
