import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.semconv.trace import SpanAttributes

from catalog_service.api.dependencies import get_product_service
from catalog_service.core.exceptions import ProductError, unexpected_error_content
from catalog_service.models.product import MediaSlot
from catalog_service.schemas.product import (
    FORM_FIELDS, MessageEnvelope, ProductEnvelope, ProductListEnvelope,
)
from catalog_service.services.media_manager import Attachment
from catalog_service.services.product_service import ProductService

router = APIRouter()
tracer = trace.get_tracer("catalog_service.api.product_router")

logger = logging.getLogger(__name__)


async def _read_multipart(request: Request) -> Tuple[Dict[str, Any], Dict[MediaSlot, Attachment]]:
    """multipart body -> (텍스트 필드, 슬롯별 첨부 파일). 빈 파일은 첨부로 취급하지 않음."""
    async with request.form() as form:
        fields = {key: form.get(key) for key in FORM_FIELDS if key in form}
        attachments: Dict[MediaSlot, Attachment] = {}
        for slot in MediaSlot:
            upload = form.get(slot.form_key)
            if not isinstance(upload, UploadFile):
                continue
            data = await upload.read()
            if data:
                attachments[slot] = Attachment(slot, data, upload.filename, upload.content_type)
    return fields, attachments


def _handled(span, error: ProductError, operation: str, **context):
    span.set_attribute(SpanAttributes.HTTP_STATUS_CODE, error.status_code)
    span.set_status(Status(StatusCode.ERROR, description=error.message))
    logger.warning(f"{operation} rejected.",
                   extra={**context, "status_code": error.status_code, "detail": error.message})


def _unexpected(span, error: Exception, operation: str, **context) -> JSONResponse:
    logger.error(f"{operation} failed.", extra={**context, "error": str(error)}, exc_info=True)
    span.set_attribute(SpanAttributes.HTTP_STATUS_CODE, 500)
    span.set_status(Status(StatusCode.ERROR, description=f"Unhandled exception: {str(error)}"))
    span.record_exception(error)
    return JSONResponse(status_code=500, content=unexpected_error_content(error))


@router.post("/", status_code=201, response_model=ProductEnvelope, summary="Create a new product")
async def create_product(request: Request, service: ProductService = Depends(get_product_service)):
    """새 상품 생성 (multipart: 필드 + file/image1/image2/video)"""
    with tracer.start_as_current_span("endpoint.create_product") as span:
        span.set_attribute(SpanAttributes.HTTP_METHOD, "POST")
        span.set_attribute(SpanAttributes.HTTP_ROUTE, "/")
        try:
            fields, attachments = await _read_multipart(request)
            logger.info("Attempting to create product.",
                        extra={"product_name": fields.get("name"), "attachments": [s.field for s in attachments]})
            product = await service.create_product(fields, attachments)
            span.set_status(Status(StatusCode.OK))
            logger.info("Successfully created product.", extra={"product_id": product["_id"]})
            return {"success": True, "data": product}
        except ProductError as pe:
            _handled(span, pe, "Create product")
            raise
        except Exception as e:
            return _unexpected(span, e, "Create product")


@router.get("/", response_model=ProductListEnvelope, summary="Get a page of products")
async def list_products(limit: Optional[str] = None, page: Optional[str] = None, fields: Optional[str] = None,
                        service: ProductService = Depends(get_product_service)):
    """상품 목록 조회 (page, limit, fields)"""
    with tracer.start_as_current_span("endpoint.list_products") as span:
        span.set_attribute(SpanAttributes.HTTP_METHOD, "GET")
        span.set_attribute(SpanAttributes.HTTP_ROUTE, "/")
        try:
            products, pagination = await service.list_products(page=page, limit=limit, fields=fields)
            span.set_status(Status(StatusCode.OK))
            logger.info("Successfully retrieved products list.", extra={"count": len(products), **pagination})
            return {"success": True, "data": products, "pagination": pagination}
        except ProductError as pe:
            _handled(span, pe, "List products")
            raise
        except Exception as e:
            return _unexpected(span, e, "List products", page=page, limit=limit)


@router.get("/{product_id}", response_model=ProductEnvelope, summary="Get a specific product by ID")
async def get_product(product_id: str, service: ProductService = Depends(get_product_service)):
    """상품 조회"""
    with tracer.start_as_current_span("endpoint.get_product_by_id") as span:
        span.set_attribute(SpanAttributes.HTTP_METHOD, "GET")
        span.set_attribute(SpanAttributes.HTTP_ROUTE, "/{product_id}")
        span.set_attribute("app.product.request.id", product_id)
        try:
            product = await service.get_product(product_id)
            span.set_status(Status(StatusCode.OK))
            return {"success": True, "data": product}
        except ProductError as pe:
            _handled(span, pe, "Get product", product_id=product_id)
            raise
        except Exception as e:
            return _unexpected(span, e, "Get product", product_id=product_id)


@router.api_route("/{product_id}", methods=["PUT", "PATCH"], response_model=ProductEnvelope,
                  summary="Update an existing product")
async def update_product(product_id: str, request: Request, service: ProductService = Depends(get_product_service)):
    """상품 부분 수정"""
    with tracer.start_as_current_span("endpoint.update_product") as span:
        span.set_attribute(SpanAttributes.HTTP_METHOD, request.method)
        span.set_attribute(SpanAttributes.HTTP_ROUTE, "/{product_id}")
        span.set_attribute("app.product.request.id", product_id)
        try:
            fields, attachments = await _read_multipart(request)
            logger.info("Attempting to update product.",
                        extra={"product_id": product_id, "update_fields_count": len(fields),
                               "attachments": [s.field for s in attachments]})
            product = await service.update_product(product_id, fields, attachments)
            span.set_status(Status(StatusCode.OK))
            logger.info("Successfully updated product.", extra={"product_id": product_id})
            return {"success": True, "data": product}
        except ProductError as pe:
            _handled(span, pe, "Update product", product_id=product_id)
            raise
        except Exception as e:
            return _unexpected(span, e, "Update product", product_id=product_id)


@router.delete("/{product_id}", response_model=MessageEnvelope, summary="Delete a product")
async def delete_product(product_id: str, service: ProductService = Depends(get_product_service)):
    """상품 삭제"""
    with tracer.start_as_current_span("endpoint.delete_product") as span:
        span.set_attribute(SpanAttributes.HTTP_METHOD, "DELETE")
        span.set_attribute(SpanAttributes.HTTP_ROUTE, "/{product_id}")
        span.set_attribute("app.product.request.id", product_id)
        try:
            await service.delete_product(product_id)
            span.set_status(Status(StatusCode.OK))
            logger.info("Successfully deleted product.", extra={"product_id": product_id})
            return {"success": True, "message": "Deleted successfully"}
        except ProductError as pe:
            _handled(span, pe, "Delete product", product_id=product_id)
            raise
        except Exception as e:
            return _unexpected(span, e, "Delete product", product_id=product_id)
