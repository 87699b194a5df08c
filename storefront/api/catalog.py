"""CRUD routes for the product and release document collections."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..repository import DocumentRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])

T = TypeVar("T")

RESERVED_KEYS = frozenset({"id", "createdAt", "updatedAt"})


class ProductRequest(BaseModel):
    """Product document body."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    price: float
    image_url: str | None = Field(default=None, alias="imageUrl")


class ProductUpdateRequest(BaseModel):
    """Partial product body; only the supplied fields are changed."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    price: float | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")

    @field_validator("title", "price")
    @classmethod
    def _reject_null(cls, value):
        # omitted fields never reach this validator, explicit nulls do
        if value is None:
            raise ValueError("title and price cannot be null")
        return value


class DeletedResponse(BaseModel):
    detail: str


def get_products(request: Request) -> DocumentRepository:
    return request.app.state.products


def get_releases(request: Request) -> DocumentRepository:
    return request.app.state.releases


def _run(operation: Callable[[], T], failure_message: str) -> T:
    """Run a store call, turning any failure into a generic 500."""
    try:
        return operation()
    except Exception as exc:
        logger.exception("%s", failure_message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_message
        ) from exc


def _not_found(kind: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found")


@router.post("/products", status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductRequest,
    products: DocumentRepository = Depends(get_products),
) -> dict[str, Any]:
    data = payload.model_dump(by_alias=True, exclude_none=True)
    return _run(lambda: products.create(data), "Couldn't post the product.")


@router.get("/products")
def list_products(products: DocumentRepository = Depends(get_products)) -> list[dict[str, Any]]:
    return _run(products.list_all, "Couldn't retrieve the products.")


@router.get("/products/{product_id}")
def get_product(
    product_id: str,
    products: DocumentRepository = Depends(get_products),
) -> dict[str, Any]:
    product = _run(lambda: products.get(product_id), "Couldn't retrieve the product.")
    if product is None:
        raise _not_found("product")
    return product


@router.put("/products/{product_id}")
def update_product(
    product_id: str,
    payload: ProductUpdateRequest,
    products: DocumentRepository = Depends(get_products),
) -> dict[str, Any]:
    """Change the supplied product fields, leaving the others untouched."""
    data = payload.model_dump(by_alias=True, exclude_unset=True)
    product = _run(lambda: products.update(product_id, data), "Couldn't update the product.")
    if product is None:
        raise _not_found("product")
    return product


@router.delete(
    "/products/{product_id}",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=DeletedResponse,
)
def delete_product(
    product_id: str,
    products: DocumentRepository = Depends(get_products),
) -> DeletedResponse:
    deleted = _run(lambda: products.delete(product_id), "Couldn't delete the product.")
    if not deleted:
        raise _not_found("product")
    return DeletedResponse(detail="The product has been deleted.")


@router.post("/releases", status_code=status.HTTP_201_CREATED)
def create_release(
    payload: dict[str, Any] = Body(...),
    releases: DocumentRepository = Depends(get_releases),
) -> dict[str, Any]:
    """Store the posted JSON object as a release document."""
    return _run(lambda: releases.create(_strip_reserved(payload)), "Couldn't post the release.")


@router.get("/releases")
def list_releases(releases: DocumentRepository = Depends(get_releases)) -> list[dict[str, Any]]:
    return _run(releases.list_all, "Couldn't retrieve the releases.")


@router.get("/releases/{release_id}")
def get_release(
    release_id: str,
    releases: DocumentRepository = Depends(get_releases),
) -> dict[str, Any]:
    release = _run(lambda: releases.get(release_id), "Couldn't retrieve the release.")
    if release is None:
        raise _not_found("release")
    return release


@router.put("/releases/{release_id}")
def update_release(
    release_id: str,
    payload: dict[str, Any] = Body(...),
    releases: DocumentRepository = Depends(get_releases),
) -> dict[str, Any]:
    release = _run(
        lambda: releases.update(release_id, _strip_reserved(payload)),
        "Couldn't update the release.",
    )
    if release is None:
        raise _not_found("release")
    return release


@router.delete(
    "/releases/{release_id}",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=DeletedResponse,
)
def delete_release(
    release_id: str,
    releases: DocumentRepository = Depends(get_releases),
) -> DeletedResponse:
    deleted = _run(lambda: releases.delete(release_id), "Couldn't delete the release.")
    if not deleted:
        raise _not_found("release")
    return DeletedResponse(detail="The release has been deleted.")


def _strip_reserved(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop keys the store owns so clients cannot overwrite them."""
    return {key: value for key, value in payload.items() if key not in RESERVED_KEYS}
