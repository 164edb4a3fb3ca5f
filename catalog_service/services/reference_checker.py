import asyncio
import logging
from typing import List, Mapping

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from catalog_service.core.exceptions import ReferenceNotFoundError
from catalog_service.models.product import REFERENCES_BY_NAME

logger = logging.getLogger(__name__)


class ReferenceChecker:
    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.tracer = trace.get_tracer("catalog_service.services.ReferenceChecker")

    async def _exists(self, field: str, object_id: ObjectId) -> bool:
        collection = self.database[REFERENCES_BY_NAME[field].collection]
        document = await collection.find_one({"_id": object_id}, {"_id": 1})
        return document is not None

    async def missing(self, references: Mapping[str, ObjectId]) -> List[str]:
        """존재하지 않는 참조 필드 이름 목록 (모든 조회는 동시에 실행)"""
        fields = list(references)
        results = await asyncio.gather(*(self._exists(field, references[field]) for field in fields))
        return [field for field, exists in zip(fields, results) if not exists]

    async def ensure_exist(self, references: Mapping[str, ObjectId]):
        with self.tracer.start_as_current_span("service.reference.ensure_exist") as span:
            span.set_attribute("app.references.count", len(references))
            if not references:
                return
            missing = await self.missing(references)
            if missing:
                logger.warning("Referenced entities do not exist.", extra={"missing_fields": missing})
                span.set_status(Status(StatusCode.ERROR, "missing references"))
                raise ReferenceNotFoundError()
            span.set_status(Status(StatusCode.OK))
