"""
Shared fixtures: in-memory stand-ins for the Motor database and the
Cloudinary-backed media service.
"""

import asyncio
import copy
import itertools
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from slugify import slugify

from catalog_service.core.exceptions import MediaServiceError
from catalog_service.models.product import REFERENCE_FIELDS, MediaSlot
from catalog_service.services.background import BackgroundTaskSupervisor
from catalog_service.services.media_manager import Attachment, MediaManager
from catalog_service.services.media_service import EagerVariant, UploadResult
from catalog_service.services.product_service import ProductService


# ============================================================================
# Fake Motor database
# ============================================================================


def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in (query or {}).items():
        value = document.get(key)
        if isinstance(condition, dict) and "$in" in condition:
            if value not in condition["$in"]:
                return False
        elif value != condition:
            return False
    return True


def _project(document: Dict[str, Any], projection: Optional[Dict[str, int]]) -> Dict[str, Any]:
    if not projection:
        return copy.deepcopy(document)
    if not any(include for key, include in projection.items() if key != "_id"):
        return copy.deepcopy({key: value for key, value in document.items() if projection.get(key, 1)})
    projected = {"_id": document["_id"]}
    for key, include in projection.items():
        if include and key in document:
            projected[key] = document[key]
    return copy.deepcopy(projected)


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents
        self._skip = 0
        self._limit = 0

    def sort(self, key, direction=1):
        self._documents = sorted(self._documents, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, count):
        self._skip = count
        return self

    def limit(self, count):
        self._limit = count
        return self

    async def to_list(self, length=None):
        documents = self._documents[self._skip:]
        if self._limit:
            documents = documents[:self._limit]
        if length is not None:
            documents = documents[:length]
        return documents


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.find_one_calls = 0

    def _first(self, query):
        return next((doc for doc in self.documents if _matches(doc, query)), None)

    async def find_one(self, query, projection=None):
        self.find_one_calls += 1
        await asyncio.sleep(0)
        document = self._first(query)
        return None if document is None else _project(document, projection)

    def find(self, query=None, projection=None):
        return FakeCursor([_project(doc, projection) for doc in self.documents if _matches(doc, query)])

    async def count_documents(self, query):
        return sum(1 for doc in self.documents if _matches(doc, query))

    async def insert_one(self, document):
        document.setdefault("_id", ObjectId())
        self.documents.append(copy.deepcopy(document))
        return SimpleNamespace(inserted_id=document["_id"])

    async def find_one_and_update(self, query, update, return_document=False):
        document = self._first(query)
        if document is None:
            return None
        before = copy.deepcopy(document)
        document.update(copy.deepcopy(update.get("$set", {})))
        return copy.deepcopy(document) if return_document else before

    async def find_one_and_delete(self, query):
        document = self._first(query)
        if document is None:
            return None
        self.documents.remove(document)
        return copy.deepcopy(document)


class FakeDatabase:
    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


# ============================================================================
# Fake media service
# ============================================================================

BASE_URL = "https://res.cloudinary.com/demo"


def _slot_of(name: str) -> str:
    for slot in (MediaSlot.IMAGE1, MediaSlot.IMAGE2, MediaSlot.VIDEO):
        if name.endswith(slot.suffix):
            return slot.field
    return MediaSlot.IMG.field


class FakeMediaService:
    """Records calls; per-slot outcomes can be overridden with a result or an exception."""

    def __init__(self):
        self.uploads: List[Dict[str, Any]] = []
        self.deleted: List[tuple] = []
        self.outcomes: Dict[str, Any] = {}
        self.fail_delete = False
        self.delete_gate: Optional[asyncio.Event] = None
        self._counter = itertools.count(1)

    def default_result(self, name: str, is_image: bool) -> UploadResult:
        public_id = f"{slugify(name)}-{next(self._counter):04d}"
        if is_image:
            return UploadResult(secure_url=f"{BASE_URL}/image/upload/v1/{public_id}.jpg", public_id=public_id)
        return UploadResult(
            secure_url=f"{BASE_URL}/video/upload/v1/{public_id}.mov",
            public_id=public_id,
            eager=[
                EagerVariant(secure_url=f"{BASE_URL}/video/upload/vc_av1/v1/{public_id}.mp4"),
                EagerVariant(secure_url=f"{BASE_URL}/video/upload/so_0/v1/{public_id}.jpg"),
            ],
        )

    async def upload(self, data, name, folder, is_image=True, kind="image"):
        slot = _slot_of(name)
        self.uploads.append({"slot": slot, "name": name, "folder": folder, "is_image": is_image, "kind": kind})
        await asyncio.sleep(0)
        outcome = self.outcomes.get(slot)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is not None:
            return outcome
        return self.default_result(name, is_image)

    async def delete(self, asset_id, resource_type="image"):
        if self.delete_gate is not None:
            await self.delete_gate.wait()
        if self.fail_delete:
            raise MediaServiceError(f"Failed to delete asset '{asset_id}'")
        self.deleted.append((asset_id, resource_type))
        return "ok"

    @property
    def deleted_ids(self):
        return [asset_id for asset_id, _ in self.deleted]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def references(database):
    """One row per lookup collection; returns field name -> ObjectId."""
    ids = {}
    for ref in REFERENCE_FIELDS:
        object_id = ObjectId()
        name = "Cotton Fabrics" if ref.name == "category" else f"{ref.label} One"
        database[ref.collection].documents.append({"_id": object_id, "name": name})
        ids[ref.name] = object_id
    return ids


@pytest.fixture
def media():
    return FakeMediaService()


@pytest.fixture
def supervisor():
    return BackgroundTaskSupervisor()


@pytest.fixture
def service(database, media, supervisor):
    return ProductService(database, MediaManager(media, supervisor))


@pytest.fixture
def product_form(references):
    form = {ref.name: str(references[ref.name]) for ref in REFERENCE_FIELDS if ref.required}
    form.update({
        "name": "Linen Shirt",
        "um": "m",
        "currency": "USD",
        "gsm": "120",
        "oz": "3.5",
        "cm": "150",
        "inch": "59",
    })
    return form


def make_attachments(*slots: MediaSlot) -> Dict[MediaSlot, Attachment]:
    return {slot: Attachment(slot, f"{slot.field}-bytes".encode()) for slot in slots}


@pytest.fixture
def all_attachments():
    return make_attachments(*MediaSlot)
