import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from rental_management.db.base import Base
from rental_management.db.deps import get_rental_db
from rental_management.db.session import engine_rental
from rental_management.errors import ProductNotFound, RentalError
from rental_management.models.rental_models import AuditLog, Category, Product
from rental_management.schemas.orders import CreateOrderDto, PartialReturnDto, ReturnAllDto, UpdateOrderDto
from rental_management.schemas.products import CategoryUpsert, ProductUpsert
from rental_management.services.order_lifecycle import (
    cancel_order,
    create_order,
    finalize_return,
    partial_return,
    return_all,
    update_order_fields,
)
from rental_management.services.order_service import (
    DEFAULT_PAGE_SIZE,
    build_bill,
    get_order,
    list_orders,
    serialize_order,
)
from rental_management.services.product_service import (
    create_category,
    create_product,
    serialize_category,
    serialize_product,
)


API_LOGGER = logging.getLogger("rental_management.api")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    Base.metadata.create_all(bind=engine_rental)
    yield


app = FastAPI(title="Rental Management API", lifespan=lifespan)


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RentalError)
async def handle_rental_error(request: Request, exc: RentalError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def log_audit(db: Session, entity_type: str, entity_id: int, action: str, details: str | None = None, user_id: int | None = None) -> None:
    db.add(
        AuditLog(
            EntityType=entity_type,
            EntityID=entity_id,
            Action=action,
            Details=details,
            UserID=user_id,
            CreatedAt=datetime.now(),
        )
    )


def _require_actor_or_401(x_admin_id: str | None) -> int:
    raw = (x_admin_id or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise HTTPException(status_code=401, detail="X-Admin-ID header is required.")
    return int(raw)


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_rental_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        API_LOGGER.warning("Health check failed reason=%s", exc)
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc
    return {"status": "ok", "db": "ok"}


@app.get("/api/categories")
def get_categories(db: Session = Depends(get_rental_db)):
    categories = db.execute(select(Category).order_by(Category.CategoryName)).scalars().all()
    return [serialize_category(category) for category in categories]


@app.post("/api/categories", status_code=201)
def post_category(
    payload: CategoryUpsert,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    category = create_category(db, payload)
    db.commit()
    db.refresh(category)
    log_audit(db, "Category", category.CategoryID, "CreateCategory", category.CategoryName, user_id=actor_id)
    db.commit()
    return serialize_category(category)


@app.get("/api/products")
def get_products(db: Session = Depends(get_rental_db)):
    products = db.execute(select(Product).order_by(Product.ProductName)).scalars().all()
    return [serialize_product(product) for product in products]


@app.get("/api/products/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_rental_db)):
    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFound("Product not found", entity=product_id)
    return serialize_product(product)


@app.post("/api/products", status_code=201)
def post_product(
    payload: ProductUpsert,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    product = create_product(db, payload, actor_id)
    db.commit()
    db.refresh(product)
    log_audit(db, "Product", product.ProductID, "CreateProduct", f"Stock {product.Stock}", user_id=actor_id)
    db.commit()
    return serialize_product(product)


@app.get("/api/orders")
def get_orders(
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_rental_db),
):
    return list_orders(db, search=search, page=page, limit=limit)


@app.get("/api/orders/{order_id}")
def read_order(order_id: int, db: Session = Depends(get_rental_db)):
    return serialize_order(get_order(db, order_id))


@app.get("/api/orders/{order_id}/bill")
def get_order_bill(order_id: int, db: Session = Depends(get_rental_db)):
    return build_bill(get_order(db, order_id))


@app.post("/api/orders", status_code=201)
def post_order(
    payload: CreateOrderDto,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    order = create_order(db, payload, actor_id)
    log_audit(db, "Order", order.OrderID, "CreateOrder", f"Created {order.OrderNumber}", user_id=actor_id)
    db.commit()
    return {"message": "Order created successfully", "order": serialize_order(order)}


@app.post("/api/orders/{order_id}/cancel")
def post_cancel_order(
    order_id: int,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    order = cancel_order(db, order_id, actor_id)
    log_audit(db, "Order", order_id, "Cancel", "Order cancelled and remaining stock restored", user_id=actor_id)
    db.commit()
    return {"message": "Order cancelled & stock restored.", "order": serialize_order(order)}


@app.post("/api/orders/{order_id}/return-product")
def post_partial_return(
    order_id: int,
    payload: PartialReturnDto,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    outcome = partial_return(db, order_id, payload, actor_id)
    log_audit(
        db,
        "Order",
        order_id,
        "ReturnProduct",
        f"Product {payload.productId} quantity {payload.returnedQuantity}",
        user_id=actor_id,
    )
    db.commit()
    return {
        "message": "Order fully returned & total calculated" if outcome.all_fully_returned else "Product partially returned",
        "order": serialize_order(outcome.order),
        "allFullyReturned": outcome.all_fully_returned,
        "totalCost": outcome.total_cost,
    }


@app.post("/api/orders/{order_id}/return")
def post_return_all(
    order_id: int,
    payload: ReturnAllDto,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    outcome = return_all(db, order_id, payload.returnedDate, actor_id)
    log_audit(db, "Order", order_id, "ReturnAll", f"Total {outcome.total_cost}", user_id=actor_id)
    db.commit()
    return {
        "message": "Order returned & stock updated.",
        "order": serialize_order(outcome.order),
        "allFullyReturned": True,
        "totalCost": outcome.total_cost,
    }


@app.post("/api/orders/{order_id}/complete-return")
def post_complete_return(
    order_id: int,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    order = finalize_return(db, order_id, actor_id)
    log_audit(db, "Order", order_id, "CompleteReturn", f"Total {float(order.TotalPrice or 0)}", user_id=actor_id)
    db.commit()
    return {"message": "Order fully returned & total calculated", "order": serialize_order(order)}


@app.put("/api/orders/{order_id}")
def put_order(
    order_id: int,
    payload: UpdateOrderDto,
    db: Session = Depends(get_rental_db),
    x_admin_id: str | None = Header(None, alias="X-Admin-ID"),
):
    actor_id = _require_actor_or_401(x_admin_id)
    order = update_order_fields(db, order_id, payload, actor_id)
    log_audit(db, "Order", order_id, "UpdateOrder", ",".join(sorted(payload.model_fields_set)), user_id=actor_id)
    db.commit()
    return {"message": "Order updated successfully.", "order": serialize_order(order)}
