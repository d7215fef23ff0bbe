from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from rental_management.errors import CategoryNotFound, InvalidQuantity, MissingField
from rental_management.models.rental_models import Category, Product
from rental_management.schemas.products import CategoryUpsert, ProductUpsert


def create_category(db: Session, payload: CategoryUpsert) -> Category:
    name = (payload.categoryName or "").strip()
    if not name:
        raise MissingField("categoryName is required", field="categoryName")
    category = Category(CategoryName=name, Description=payload.description, CreatedDate=datetime.now())
    db.add(category)
    return category


def create_product(db: Session, payload: ProductUpsert, actor_id: int) -> Product:
    name = (payload.productName or "").strip()
    if not name:
        raise MissingField("productName is required", field="productName")
    if payload.stock < 0:
        raise InvalidQuantity("stock cannot be negative", field="stock")
    if payload.perDayPrice < 0:
        raise InvalidQuantity("perDayPrice cannot be negative", field="perDayPrice")

    category = db.get(Category, payload.categoryID)
    if not category:
        raise CategoryNotFound(f"Category not found: {payload.categoryID}", field="categoryID", entity=payload.categoryID)

    product = Product(
        ProductName=name,
        Description=payload.description or "",
        PerDayPrice=payload.perDayPrice,
        CategoryID=category.CategoryID,
        CategoryName=category.CategoryName,
        Stock=payload.stock,
        CreatedBy=actor_id,
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    db.add(product)
    return product


def serialize_category(category: Category) -> dict:
    return {
        "categoryID": category.CategoryID,
        "categoryName": category.CategoryName,
        "description": category.Description,
        "createdDate": category.CreatedDate,
    }


def serialize_product(product: Product) -> dict:
    return {
        "productID": product.ProductID,
        "productName": product.ProductName,
        "description": product.Description,
        "perDayPrice": float(product.PerDayPrice or 0),
        "categoryID": product.CategoryID,
        "categoryName": product.CategoryName,
        "stock": int(product.Stock or 0),
        "createdBy": product.CreatedBy,
        "createdDate": product.CreatedDate,
        "updatedDate": product.UpdatedDate,
    }
