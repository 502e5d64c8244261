from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, selectinload

from core.db import get_db
from models.product import Product, ProductVariant
from routes.auth import get_current_user, require_admin
from schemas.product import ProductCreate, ProductOut, VariantCreate, VariantOut, VariantUpdate

router = APIRouter(tags=["catalog"])


@router.get("/products", response_model=List[ProductOut], dependencies=[Depends(get_current_user)])
def list_products(db: Session = Depends(get_db)):
    return (
        db.query(Product)
        .options(selectinload(Product.variants))
        .filter(Product.is_active.is_(True))
        .order_by(Product.name)
        .all()
    )


@router.get("/products/{product_id}", response_model=ProductOut, dependencies=[Depends(get_current_user)])
def get_product(product_id: str, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/products", response_model=ProductOut, status_code=201, dependencies=[Depends(require_admin)])
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    product = Product(
        name=data.name,
        description=data.description,
        base_price=data.base_price,
        is_active=True,
    )
    for variant in data.variants:
        product.variants.append(ProductVariant(**variant.model_dump()))
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.post("/products/{product_id}/variants", response_model=VariantOut, status_code=201,
             dependencies=[Depends(require_admin)])
def add_variant(product_id: str, data: VariantCreate, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    variant = ProductVariant(product_id=product.id, **data.model_dump())
    db.add(variant)
    db.commit()
    db.refresh(variant)
    return variant


@router.patch("/variants/{variant_id}", response_model=VariantOut, dependencies=[Depends(require_admin)])
def update_variant(variant_id: str, data: VariantUpdate, db: Session = Depends(get_db)):
    variant = db.get(ProductVariant, variant_id)
    if not variant:
        raise HTTPException(status_code=404, detail="Variant not found")

    if data.stock_quantity is not None:
        variant.stock_quantity = data.stock_quantity
    if data.price_adjustment is not None:
        variant.price_adjustment = data.price_adjustment

    db.commit()
    db.refresh(variant)
    return variant
