from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from uuid import UUID


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category_id: UUID
    price: float = Field(..., ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    is_active: bool = True


class ProductStatusUpdate(BaseModel):
    is_active: bool


class ProductResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    category_id: UUID
    price: float
    sale_price: Optional[float] = None
    current_price: float
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
