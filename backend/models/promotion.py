"""
Promotion model: coupons, order/product/conditional discounts and buy-X-get-Y offers
"""
from sqlalchemy import Column, String, Boolean, DateTime, Float, Text, Integer, Index, JSON
from core.database import BaseModel
from typing import Dict, Any


class Promotion(BaseModel):
    """Discount rule evaluated against carts by PromotionEngine"""
    __tablename__ = "promotions"
    __table_args__ = (
        Index('idx_promotions_code', 'code'),
        Index('idx_promotions_type', 'promotion_type'),
        Index('idx_promotions_active_valid', 'is_active', 'start_date', 'end_date'),
        Index('idx_promotions_end_date', 'end_date'),
        {'extend_existing': True}
    )

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    code = Column(String(20), unique=True, nullable=True)  # upper-case, required for COUPON
    promotion_type = Column(String(30), nullable=False)  # PRODUCT_DISCOUNT, ORDER_DISCOUNT, CONDITIONAL_DISCOUNT, COUPON
    discount_type = Column(String(20), nullable=False)  # PERCENTAGE, FIXED_AMOUNT, FREE_SHIPPING, BUY_X_GET_Y
    discount_value = Column(Float, nullable=False, default=0.0)  # 10 for 10% or 10 currency units
    conditions = Column(JSON, nullable=False, default=dict)  # see schemas.promotion.PromotionConditions
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert promotion to dictionary for API responses"""
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "code": self.code,
            "promotion_type": self.promotion_type,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "conditions": self.conditions or {},
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_active": self.is_active,
            "priority": self.priority,
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
