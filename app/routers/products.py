from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session
from app.core.exceptions import NotFound
from app.db.session import get_session
from app.models.product import Product, Pack
from app.services.catalog import CatalogService

router = APIRouter()

def get_catalog_service(session: Session = Depends(get_session)) -> CatalogService:
    return CatalogService(session)

@router.get("/", response_model=List[Product])
def read_products(q: Optional[str] = None, service: CatalogService = Depends(get_catalog_service)):
    return service.list_products(q=q)

@router.get("/packs/", response_model=List[Pack])
def read_packs(service: CatalogService = Depends(get_catalog_service)):
    return service.list_packs()

@router.get("/{product_id}", response_model=Product)
def read_product(product_id: int, service: CatalogService = Depends(get_catalog_service)):
    product = service.get_product(product_id)
    if not product or not product.is_active:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product
