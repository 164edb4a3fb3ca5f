from typing import Annotated, Any, Dict, List, Mapping, Optional, Type, Union

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError
from pydantic_core import PydanticCustomError

from catalog_service.core.exceptions import FieldValidationError
from catalog_service.models.product import REFERENCE_FIELDS


def _check_object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise PydanticCustomError("object_id", "invalid ObjectId")
    return ObjectId(value)


ObjectIdField = Annotated[str, AfterValidator(_check_object_id)]


class ProductWrite(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", allow_inf_nan=False)

    um: Optional[str] = None
    currency: Optional[str] = None
    gsm: Optional[float] = None
    oz: Optional[float] = None
    cm: Optional[float] = None
    inch: Optional[float] = None

    def to_document(self) -> Dict[str, Any]:
        """None 이 아닌 값만 MongoDB 문서 형태로 반환 (참조 필드는 ObjectId)"""
        values = {name: getattr(self, name) for name in type(self).model_fields}
        return {key: value for key, value in values.items() if value is not None}

    def references(self) -> Dict[str, ObjectId]:
        """값이 있는 참조 필드만 반환"""
        return {
            ref.name: getattr(self, ref.name)
            for ref in REFERENCE_FIELDS
            if getattr(self, ref.name, None) is not None
        }


class ProductCreate(ProductWrite):
    name: str = Field(min_length=2)
    category: ObjectIdField
    substructure: ObjectIdField
    content: ObjectIdField
    design: ObjectIdField
    subfinish: ObjectIdField
    subsuitable: ObjectIdField
    vendor: ObjectIdField
    groupcode: ObjectIdField
    color: ObjectIdField
    motif: Optional[ObjectIdField] = None


class ProductUpdate(ProductWrite):
    name: Optional[str] = Field(default=None, min_length=2)
    category: Optional[ObjectIdField] = None
    substructure: Optional[ObjectIdField] = None
    content: Optional[ObjectIdField] = None
    design: Optional[ObjectIdField] = None
    subfinish: Optional[ObjectIdField] = None
    subsuitable: Optional[ObjectIdField] = None
    vendor: Optional[ObjectIdField] = None
    groupcode: Optional[ObjectIdField] = None
    color: Optional[ObjectIdField] = None
    motif: Optional[ObjectIdField] = None


FORM_FIELDS = tuple(ProductCreate.model_fields)

_ERROR_MESSAGES = {
    "missing": "{label} is required",
    "string_too_short": "{label} must be at least 2 characters",
    "object_id": "{label} must be a valid ObjectId",
    "float_parsing": "{label} must be numeric",
    "float_type": "{label} must be numeric",
    "finite_number": "{label} must be numeric",
    "string_type": "{label} must be a string",
}


def _field_errors(exc: ValidationError) -> List[Dict[str, str]]:
    errors = []
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "body"
        template = _ERROR_MESSAGES.get(error["type"])
        message = template.format(label=field.capitalize()) if template else error["msg"]
        errors.append({"field": field, "message": message})
    return errors


def _clean_form(form: Mapping[str, Any]) -> Dict[str, Any]:
    # blank values count as absent for both create and update
    cleaned = {}
    for key in FORM_FIELDS:
        value = form.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        cleaned[key] = value
    return cleaned


def parse_product_form(form: Mapping[str, Any], partial: bool = False) -> Union[ProductCreate, ProductUpdate]:
    """
    multipart form 값을 ProductCreate / ProductUpdate 로 변환.
    실패하면 모든 위반 사항을 모아 FieldValidationError 로 던진다.
    """
    model: Type[ProductWrite] = ProductUpdate if partial else ProductCreate
    try:
        return model(**_clean_form(form))
    except ValidationError as e:
        raise FieldValidationError(_field_errors(e)) from e


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ProductEnvelope(BaseModel):
    success: bool = True
    data: Dict[str, Any]


class ProductListEnvelope(BaseModel):
    success: bool = True
    data: List[Dict[str, Any]]
    pagination: Pagination


class MessageEnvelope(BaseModel):
    success: bool = True
    message: str
