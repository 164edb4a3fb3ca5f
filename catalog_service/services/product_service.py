import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from slugify import slugify

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.semconv.trace import SpanAttributes

from catalog_service.core.config import settings
from catalog_service.core.exceptions import ProductNotFoundError, ReferenceNotFoundError
from catalog_service.models.product import (
    PRODUCT_COLLECTION, REFERENCE_FIELDS, REFERENCE_PROJECTION, REFERENCES_BY_NAME, MediaSlot,
)
from catalog_service.schemas.product import parse_product_form
from catalog_service.services.media_manager import Attachment, MediaManager
from catalog_service.services.reference_checker import ReferenceChecker

logger = logging.getLogger(__name__)

CATEGORY_COLLECTION = REFERENCES_BY_NAME["category"].collection


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _projection(fields: Optional[str]) -> Optional[Dict[str, int]]:
    """'name,category' -> include, '-video,-image1' -> exclude"""
    if not fields:
        return None
    projection = {}
    for name in (part.strip() for part in fields.split(",")):
        if name.startswith("-"):
            name = name[1:].strip()
            if name:
                projection[name] = 0
        elif name:
            projection[name] = 1
    return projection or None


def _public(document: Dict[str, Any]) -> Dict[str, Any]:
    return jsonable_encoder(document, custom_encoder={ObjectId: str})


class ProductService:
    def __init__(self, database: AsyncIOMotorDatabase, media: MediaManager,
                 references: Optional[ReferenceChecker] = None,
                 default_limit: int = settings.DEFAULT_PAGE_LIMIT,
                 default_folder: str = settings.MEDIA_DEFAULT_FOLDER):
        self.database = database
        self.products = database[PRODUCT_COLLECTION]
        self.media = media
        self.references = references or ReferenceChecker(database)
        self.default_limit = default_limit
        self.default_folder = default_folder
        self.tracer = trace.get_tracer("catalog_service.services.ProductService", "0.1.0")

    @staticmethod
    def _object_id(product_id: str) -> ObjectId:
        # a malformed id can never match a record
        if not ObjectId.is_valid(product_id):
            raise ProductNotFoundError()
        return ObjectId(product_id)

    async def _populate(self, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """참조 필드를 {_id, name} 으로 치환. lookup 컬렉션 당 $in 조회 한 번, 모두 동시에 실행."""

        async def load(ref):
            ids = {doc[ref.name] for doc in documents if isinstance(doc.get(ref.name), ObjectId)}
            if not ids:
                return ref, {}
            cursor = self.database[ref.collection].find({"_id": {"$in": list(ids)}}, REFERENCE_PROJECTION)
            rows = await cursor.to_list(length=None)
            return ref, {row["_id"]: {"_id": row["_id"], "name": row.get("name")} for row in rows}

        if not documents:
            return documents
        lookups = await asyncio.gather(*(load(ref) for ref in REFERENCE_FIELDS))
        for ref, rows in lookups:
            for doc in documents:
                if ref.name in doc:
                    doc[ref.name] = rows.get(doc[ref.name])
        return documents

    async def _find_populated(self, object_id: ObjectId) -> Optional[Dict[str, Any]]:
        document = await self.products.find_one({"_id": object_id})
        if document is None:
            return None
        populated = await self._populate([document])
        return populated[0]

    async def _category_folder(self, category_id: Optional[ObjectId]) -> Optional[str]:
        """카테고리 이름 slug = 업로드 폴더. 카테고리가 없으면 None."""
        if category_id is None:
            return None
        category = await self.database[CATEGORY_COLLECTION].find_one({"_id": category_id}, REFERENCE_PROJECTION)
        if category is None:
            return None
        return slugify(category.get("name") or "") or self.default_folder

    async def create_product(self, form: Mapping[str, Any],
                             attachments: Mapping[MediaSlot, Attachment]) -> Dict[str, Any]:
        """새 상품 생성: 검증 -> 참조 확인 -> 업로드 -> 저장 -> populate 조회"""
        with self.tracer.start_as_current_span("service.product.create") as span:
            product = parse_product_form(form)
            span.set_attribute("app.product.request.name", product.name)
            span.set_attribute("app.product.request.attachments", [slot.field for slot in attachments])

            self.media.require_primary(attachments)
            await self.references.ensure_exist(product.references())

            folder = await self._category_folder(product.category)
            if folder is None:
                raise ReferenceNotFoundError("Category not found")

            media = await self.media.upload_for_create(attachments, product.name, folder)

            now = datetime.now(timezone.utc)
            document = {**product.to_document(), **media, "created_at": now, "updated_at": now}
            try:
                result = await self.products.insert_one(document)
            except Exception:
                self.media.discard(media[slot.field] for slot in MediaSlot)
                raise

            product_id = result.inserted_id
            span.set_attribute("app.product.id", str(product_id))
            span.set_attribute(SpanAttributes.DB_MONGODB_COLLECTION, PRODUCT_COLLECTION)
            logger.info("Product created.", extra={"product_id": str(product_id), "folder": folder})

            created = await self._find_populated(product_id)
            span.set_status(Status(StatusCode.OK))
            return _public(created)

    async def list_products(self, page: Any = None, limit: Any = None,
                            fields: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
        """상품 목록 조회 (count 와 페이지 조회를 동시에 실행)"""
        with self.tracer.start_as_current_span("service.product.list") as span:
            page = _positive_int(page, 1)
            limit = _positive_int(limit, self.default_limit)
            projection = _projection(fields)
            skip = (page - 1) * limit
            span.set_attribute("app.pagination.page", page)
            span.set_attribute("app.pagination.limit", limit)

            cursor = self.products.find({}, projection).sort("_id", 1).skip(skip).limit(limit)
            documents, total = await asyncio.gather(
                cursor.to_list(length=limit),
                self.products.count_documents({}),
            )
            documents = await self._populate(documents)

            pagination = {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            }
            span.set_attribute("app.products.response.count", len(documents))
            span.set_status(Status(StatusCode.OK))
            return [_public(doc) for doc in documents], pagination

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        with self.tracer.start_as_current_span("service.product.get") as span:
            span.set_attribute("app.product.request.id", product_id)
            product = await self._find_populated(self._object_id(product_id))
            if product is None:
                span.set_attribute("app.product.found", False)
                raise ProductNotFoundError()
            span.set_status(Status(StatusCode.OK))
            return _public(product)

    async def update_product(self, product_id: str, form: Mapping[str, Any],
                             attachments: Mapping[MediaSlot, Attachment]) -> Dict[str, Any]:
        """
        부분 수정. 빈 값은 무시하고, 요청에 포함된 참조만 다시 검증한다.
        교체된 이전 미디어는 응답을 기다리지 않고 백그라운드에서 삭제.
        """
        with self.tracer.start_as_current_span("service.product.update") as span:
            span.set_attribute("app.product.request.id", product_id)
            patch = parse_product_form(form, partial=True)

            object_id = self._object_id(product_id)
            current = await self.products.find_one({"_id": object_id})
            if current is None:
                raise ProductNotFoundError()

            await self.references.ensure_exist(patch.references())

            updates = patch.to_document()
            span.set_attribute("app.product.request.update_fields_count", len(updates))

            media_updates: Dict[str, str] = {}
            stale: List[str] = []
            if attachments:
                folder = await self._category_folder(patch.category or current.get("category")) or self.default_folder
                base_name = patch.name or current.get("name") or "product"
                media_updates, stale = await self.media.upload_for_update(attachments, base_name, folder, current)

            updates.update(media_updates)
            updates["updated_at"] = datetime.now(timezone.utc)

            new_urls = [media_updates.get(slot.field) for slot in MediaSlot]
            try:
                updated = await self.products.find_one_and_update(
                    {"_id": object_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
                )
            except Exception:
                self.media.discard(new_urls)
                raise
            if updated is None:
                # removed concurrently; new uploads are orphans now
                self.media.discard(new_urls)
                raise ProductNotFoundError()

            self.media.discard(stale)
            logger.info("Product updated.", extra={"product_id": product_id, "replaced_assets": len(stale)})

            populated = await self._populate([updated])
            span.set_status(Status(StatusCode.OK))
            return _public(populated[0])

    async def delete_product(self, product_id: str):
        """상품 삭제 + 대표 이미지 원격 삭제 (동기 실행, 실패는 그대로 전파)"""
        with self.tracer.start_as_current_span("service.product.delete") as span:
            span.set_attribute("app.product.request.id", product_id)
            deleted = await self.products.find_one_and_delete({"_id": self._object_id(product_id)})
            if deleted is None:
                raise ProductNotFoundError()
            logger.info("Product deleted.", extra={"product_id": product_id})

            if deleted.get("img"):
                outcome = await self.media.delete(deleted["img"])
                logger.info("Primary image deleted.", extra={"product_id": product_id, "result": outcome})
            span.set_status(Status(StatusCode.OK))
