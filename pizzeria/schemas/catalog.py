"""
Pizzeria — Menu / back-office catalog schemas
"""
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    image_url: str | None = None
    display_order: int = 0
    is_active: bool = True


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    image_url: str | None = None
    display_order: int | None = None
    is_active: bool | None = None


class CategoryRead(CategoryBase):
    model_config = ConfigDict(from_attributes=True)

    id: str


class ProductBase(BaseModel):
    category_id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    base_price: Decimal = Field(..., ge=0)
    image_url: str | None = None
    is_available: bool = True
    is_pizza: bool = False


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    category_id: str | None = None
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    base_price: Decimal | None = Field(None, ge=0)
    image_url: str | None = None
    is_available: bool | None = None
    is_pizza: bool | None = None


class ProductRead(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: str


class ToppingBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0)
    is_available: bool = True


class ToppingCreate(ToppingBase):
    pass


class ToppingUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    price: Decimal | None = Field(None, ge=0)
    is_available: bool | None = None


class ToppingRead(ToppingBase):
    model_config = ConfigDict(from_attributes=True)

    id: str


class MenuCategory(CategoryRead):
    products: list[ProductRead] = []
