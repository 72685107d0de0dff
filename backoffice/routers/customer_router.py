from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from .. import catalog
from ..dependencies import get_repository
from ..entities import Customer
from ..errors import DuplicateKey, EntityNotFound, StaleVersion, TransientFailure
from ..repository import EntityRepository
from ..results import field_errors_from
from ..schemas import CustomerCreate, CustomerOut, CustomerUpdate

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.get("/", response_model=List[CustomerOut])
def list_customers(repo: EntityRepository = Depends(get_repository)):
    try:
        return repo.list_all(Customer)
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: str, repo: EntityRepository = Depends(get_repository)):
    try:
        customer = repo.get(Customer, customer_id)
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.post("/", response_model=CustomerOut, status_code=201)
def create_customer(body: CustomerCreate, repo: EntityRepository = Depends(get_repository)):
    try:
        return catalog.create_customer(repo, body.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error": "validation_failed", "fields": field_errors_from(e)})
    except DuplicateKey as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.put("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: str, body: CustomerUpdate, repo: EntityRepository = Depends(get_repository)):
    data = body.model_dump(exclude={"version"})
    try:
        customer = catalog.update_customer(repo, customer_id, data, expected_version=body.version)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"error": "validation_failed", "fields": field_errors_from(e)})
    except StaleVersion:
        raise HTTPException(status_code=409, detail="Customer was changed by someone else; reload and retry")
    except EntityNotFound:
        customer = None
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.delete("/{customer_id}", response_model=CustomerOut)
def delete_customer(customer_id: str, repo: EntityRepository = Depends(get_repository)):
    try:
        customer = catalog.delete_customer(repo, customer_id)
    except EntityNotFound:
        customer = None
    except TransientFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer
