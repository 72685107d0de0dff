from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from .. import references
from ..config import PROOF_OF_PAYMENT_CONTAINER
from ..dependencies import get_blob_store, get_order_manager, get_repository
from ..entities import Order
from ..errors import TransientFailure
from ..orders import OrderLifecycleManager
from ..repository import EntityRepository
from ..schemas import OrderListResponse, OrderOut, OrderResultOut, ProductInfoOut, ReferenceListsOut
from ..uploads import BlobStore
from .outcomes import raise_for_failure

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("/", response_model=OrderListResponse)
def list_orders(repo: EntityRepository = Depends(get_repository)):
    try:
        orders = repo.list_all(Order)
    except TransientFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    orders.sort(key=lambda o: o.order_date, reverse=True)
    return {"orders": orders, "total": len(orders)}


@router.get("/references", response_model=ReferenceListsOut)
def get_reference_lists(repo: EntityRepository = Depends(get_repository)):
    """Customers and products to choose from when placing an order."""
    customers, products = references.list_active_customers_and_products(repo)
    return {"customers": customers, "products": products}


@router.get("/product-info/{product_id}", response_model=ProductInfoOut)
def get_product_info(product_id: str, repo: EntityRepository = Depends(get_repository)):
    try:
        info = references.get_product_info(repo, product_id)
    except TransientFailure:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Error fetching product info"},
        )
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"error": "Product not found"})
    return info


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, repo: EntityRepository = Depends(get_repository)):
    try:
        order = repo.get(Order, order_id)
    except TransientFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with id {order_id} not found")
    return order


@router.post("/", response_model=OrderResultOut, status_code=status.HTTP_201_CREATED)
def create_order(
    customer_id: str = Form(..., description="Customer placing the order"),
    product_id: str = Form(..., description="Product ordered"),
    quantity: int = Form(..., ge=1, description="Units ordered"),
    order_date: Optional[datetime] = Form(None, description="Defaults to now (UTC)"),
    status_: Optional[str] = Form(None, alias="status", description="Defaults to Submitted"),
    order_id: Optional[str] = Form(None, alias="id", description="Client supplied key (optional)"),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    """Place an order and reserve its quantity from the product's stock."""
    result = raise_for_failure(
        manager.create(
            customer_id=customer_id,
            product_id=product_id,
            quantity=quantity,
            order_date=order_date,
            status=status_,
            order_id=order_id,
        )
    )
    return {"order": result.entity, "warnings": result.warnings}


@router.put("/{order_id}", response_model=OrderResultOut)
def edit_order(
    order_id: str,
    product_id: str = Form(..., description="Product ordered"),
    quantity: int = Form(..., ge=1, description="New quantity"),
    order_date: Optional[datetime] = Form(None),
    status_: Optional[str] = Form(None, alias="status"),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    """Change product/quantity; only the difference in quantity moves stock."""
    result = raise_for_failure(
        manager.edit(
            order_id=order_id,
            product_id=product_id,
            quantity=quantity,
            order_date=order_date,
            status=status_,
        )
    )
    return {"order": result.entity, "warnings": result.warnings}


@router.delete("/{order_id}", response_model=OrderResultOut)
def delete_order(order_id: str, manager: OrderLifecycleManager = Depends(get_order_manager)):
    """Delete an order and give its quantity back to stock. Deleting twice is a no-op."""
    result = raise_for_failure(manager.delete(order_id))
    return {"order": result.entity, "warnings": result.warnings}


@router.post("/{order_id}/proof-of-payment")
def upload_proof_of_payment(
    order_id: str,
    proof_of_payment: UploadFile = File(...),
    repo: EntityRepository = Depends(get_repository),
    manager: OrderLifecycleManager = Depends(get_order_manager),
    blob_store: BlobStore = Depends(get_blob_store),
):
    content = proof_of_payment.file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please select a file to upload.")
    try:
        order = repo.get(Order, order_id)
    except TransientFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with id {order_id} not found")

    try:
        file_url = blob_store.upload(content, PROOF_OF_PAYMENT_CONTAINER, proof_of_payment.filename or "")
    except TransientFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    result = raise_for_failure(manager.complete(order_id))
    return {
        "file_url": file_url,
        "order": OrderOut.model_validate(result.entity).model_dump(mode="json"),
        "warnings": result.warnings,
    }
