from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from rental_management.db.base import Base


ORDER_STATUS_ON_RENT = "on_rent"
ORDER_STATUS_RETURNED = "returned_after_rent"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = {ORDER_STATUS_ON_RENT, ORDER_STATUS_RETURNED, ORDER_STATUS_CANCELLED}
TERMINAL_ORDER_STATUSES = {ORDER_STATUS_RETURNED, ORDER_STATUS_CANCELLED}

PAYMENT_STATUSES = {"pending", "paid", "failed"}


class Category(Base):
    __tablename__ = "Categories"

    CategoryID = Column(Integer, primary_key=True)
    CategoryName = Column(String(100), nullable=False)
    Description = Column(String(500))
    CreatedDate = Column(DateTime, server_default=func.now())

    Products = relationship("Product", back_populates="Category")


class Product(Base):
    __tablename__ = "Products"
    __table_args__ = (CheckConstraint("Stock >= 0", name="ck_products_stock_non_negative"),)

    ProductID = Column(Integer, primary_key=True)
    ProductName = Column(String(255), nullable=False)
    Description = Column(String(1000), default="")
    PerDayPrice = Column(Numeric(10, 2), nullable=False)
    CategoryID = Column(Integer, ForeignKey("Categories.CategoryID"), nullable=False)
    CategoryName = Column(String(100), nullable=False)
    Stock = Column(Integer, nullable=False, default=0)
    CreatedBy = Column(Integer, nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Category = relationship("Category", back_populates="Products")


class Order(Base):
    __tablename__ = "Orders"

    OrderID = Column(Integer, primary_key=True)
    OrderNumber = Column(String(50), nullable=False, unique=True)
    IdempotencyKey = Column(String(100), nullable=False, unique=True)
    CustomerName = Column(String(255), nullable=False)
    CustomerPhone = Column(String(50), nullable=False)
    RentingStartDate = Column(DateTime, nullable=False)
    RentingEndDate = Column(DateTime)
    TotalPrice = Column(Numeric(12, 2), nullable=False, default=0)
    PaymentStatus = Column(String(20), nullable=False, default="pending")
    OrderStatus = Column(String(30), nullable=False, default=ORDER_STATUS_ON_RENT)
    CreatedBy = Column(Integer, nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())
    Version = Column(Integer, nullable=False)

    Lines = relationship(
        "RentalLine",
        back_populates="Order",
        cascade="all, delete-orphan",
        order_by="RentalLine.LineID",
    )

    __mapper_args__ = {"version_id_col": Version}


class RentalLine(Base):
    __tablename__ = "RentalLines"
    __table_args__ = (CheckConstraint("RentedAmount > 0", name="ck_rentallines_rented_positive"),)

    LineID = Column(Integer, primary_key=True)
    OrderID = Column(Integer, ForeignKey("Orders.OrderID"), nullable=False)
    ProductID = Column(Integer, nullable=False)
    ProductName = Column(String(255), nullable=False)
    CategoryID = Column(Integer)
    CategoryName = Column(String(100))
    RentedAmount = Column(Integer, nullable=False)
    PerDayPrice = Column(Numeric(10, 2), nullable=False)

    Order = relationship("Order", back_populates="Lines")
    Returns = relationship(
        "ReturnEvent",
        back_populates="Line",
        cascade="all, delete-orphan",
        order_by="ReturnEvent.ReturnID",
    )


class ReturnEvent(Base):
    __tablename__ = "ReturnEvents"
    __table_args__ = (CheckConstraint("ReturnedQuantity > 0", name="ck_returnevents_quantity_positive"),)

    ReturnID = Column(Integer, primary_key=True)
    LineID = Column(Integer, ForeignKey("RentalLines.LineID"), nullable=False)
    ReturnedQuantity = Column(Integer, nullable=False)
    ReturnedDate = Column(DateTime, nullable=False)
    RecordedBy = Column(Integer)
    CreatedDate = Column(DateTime, server_default=func.now())

    Line = relationship("RentalLine", back_populates="Returns")


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(Integer, nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(Integer)
    CreatedAt = Column(DateTime, server_default=func.now())
