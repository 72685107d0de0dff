from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError

from .. import catalog
from ..dependencies import get_blob_store, get_emitter, get_repository
from ..entities import Product
from ..errors import DuplicateKey, EntityNotFound, StaleVersion, TransientFailure
from ..events import EventEmitter
from ..repository import EntityRepository
from ..results import field_errors_from
from ..schemas import ProductOut
from ..uploads import BlobStore

router = APIRouter(prefix="/products", tags=["Products"])


def _read_image(image: Optional[UploadFile]):
    if image is None:
        return None
    content = image.file.read()
    if not content:
        return None
    return content, image.filename or ""


@router.get("/", response_model=List[ProductOut])
def list_products(repo: EntityRepository = Depends(get_repository)):
    try:
        return repo.list_all(Product)
    except TransientFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, repo: EntityRepository = Depends(get_repository)):
    try:
        product = repo.get(Product, product_id)
    except TransientFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/", response_model=ProductOut, status_code=201)
def create_product(
    name: str = Form(..., min_length=1, description="Product name"),
    description: str = Form("", description="Description"),
    price: Decimal = Form(..., gt=0, description="Price (must be greater than 0)"),
    stock: int = Form(..., ge=0, description="Stock available (must be >= 0)"),
    image: Optional[UploadFile] = File(None),
    repo: EntityRepository = Depends(get_repository),
    blob_store: BlobStore = Depends(get_blob_store),
):
    product_data = {
        "name": name,
        "description": description,
        "unit_price": price,
        "stock_available": stock,
    }
    try:
        return catalog.create_product(repo, product_data, image=_read_image(image), blob_store=blob_store)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error": "validation_failed", "fields": field_errors_from(e)})
    except DuplicateKey as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[Decimal] = Form(None, gt=0),
    stock: Optional[int] = Form(None, ge=0),
    version: Optional[int] = Form(None, description="Version last read; rejects the edit if stale"),
    image: Optional[UploadFile] = File(None),
    repo: EntityRepository = Depends(get_repository),
    emitter: EventEmitter = Depends(get_emitter),
    blob_store: BlobStore = Depends(get_blob_store),
):
    update_data = {
        "name": name,
        "description": description,
        "unit_price": price,
        "stock_available": stock,
    }
    try:
        product = catalog.update_product(
            repo,
            emitter,
            product_id,
            update_data,
            expected_version=version,
            image=_read_image(image),
            blob_store=blob_store,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error": "validation_failed", "fields": field_errors_from(e)})
    except StaleVersion:
        raise HTTPException(status_code=409, detail="Product was changed by someone else; reload and retry")
    except EntityNotFound:
        product = None
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.delete("/{product_id}", response_model=ProductOut)
def delete_product(product_id: str, repo: EntityRepository = Depends(get_repository)):
    try:
        product = catalog.delete_product(repo, product_id)
    except EntityNotFound:
        product = None
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
