from sqlalchemy import Column, String, Boolean, ForeignKey, Text, Float
from core.database import BaseModel, CHAR_LENGTH, GUID


class Product(BaseModel):
    __tablename__ = "products"
    __table_args__ = {'extend_existing': True}

    name = Column(String(CHAR_LENGTH), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category_id = Column(GUID(), ForeignKey(
        "categories.id"), nullable=False, index=True)
    price = Column(Float, nullable=False, default=0.0)
    sale_price = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    @property
    def current_price(self) -> float:
        if self.sale_price is not None and self.sale_price < self.price:
            return self.sale_price
        return self.price

    def to_dict(self) -> dict:
        """Convert product to dictionary for API responses"""
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "category_id": str(self.category_id),
            "price": self.price,
            "sale_price": self.sale_price,
            "current_price": self.current_price,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
