from enum import Enum
from typing import Dict, NamedTuple

PRODUCT_COLLECTION = "products"


class ReferenceField(NamedTuple):
    """상품이 참조하는 lookup 컬렉션 필드"""
    name: str
    collection: str
    required: bool = True

    @property
    def label(self) -> str:
        return self.name.capitalize()


REFERENCE_FIELDS = (
    ReferenceField("category", "categories"),
    ReferenceField("substructure", "substructures"),
    ReferenceField("content", "contents"),
    ReferenceField("design", "designs"),
    ReferenceField("subfinish", "subfinishes"),
    ReferenceField("subsuitable", "subsuitables"),
    ReferenceField("vendor", "vendors"),
    ReferenceField("groupcode", "groupcodes"),
    ReferenceField("color", "colors"),
    ReferenceField("motif", "motifs", required=False),
)

REFERENCES_BY_NAME: Dict[str, ReferenceField] = {ref.name: ref for ref in REFERENCE_FIELDS}

# display projection applied to every joined reference
REFERENCE_PROJECTION = {"name": 1}


class MediaSlot(Enum):
    """업로드 슬롯: (form key, document field, public id suffix, is_image)"""
    IMG = ("file", "img", "", True)
    IMAGE1 = ("image1", "image1", "-image1", True)
    IMAGE2 = ("image2", "image2", "-image2", True)
    VIDEO = ("video", "video", "-video", False)

    def __init__(self, form_key: str, field: str, suffix: str, is_image: bool):
        self.form_key = form_key
        self.field = field
        self.suffix = suffix
        self.is_image = is_image


VIDEO_THUMBNAIL_FIELD = "videoThumbnail"

MEDIA_FIELDS = tuple(slot.field for slot in MediaSlot) + (VIDEO_THUMBNAIL_FIELD,)
