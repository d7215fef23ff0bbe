from typing import Optional

from pydantic import BaseModel, ConfigDict


class CategoryUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    categoryName: str
    description: Optional[str] = None


class ProductUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    productName: str
    description: Optional[str] = None
    perDayPrice: float
    categoryID: int
    stock: int = 0
