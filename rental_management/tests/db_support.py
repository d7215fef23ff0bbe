from datetime import datetime

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rental_management.db.base import Base
from rental_management.models.rental_models import Category, Product


def make_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    return engine


def make_session_factory(engine):
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def seed_product(db, name="Scaffold Pipe", stock=10, per_day_price=25.0, category_name="Scaffolding"):
    category = db.execute(select(Category).where(Category.CategoryName == category_name)).scalars().first()
    if not category:
        category = Category(CategoryName=category_name, CreatedDate=datetime.now())
        db.add(category)
        db.flush()
    product = Product(
        ProductName=name,
        PerDayPrice=per_day_price,
        CategoryID=category.CategoryID,
        CategoryName=category.CategoryName,
        Stock=stock,
        CreatedBy=1,
    )
    db.add(product)
    db.commit()
    return product


def stock_of(db, product_id):
    return db.execute(select(Product.Stock).where(Product.ProductID == product_id)).scalar()


def make_file_engine(path):
    # Separate connections per session, unlike the shared in-memory pool.
    engine = create_engine(f"sqlite+pysqlite:///{path}", future=True)
    Base.metadata.create_all(bind=engine)
    return engine
