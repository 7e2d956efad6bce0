from sqlalchemy import Column, String, Boolean, ForeignKey, Text, Integer, Index
from core.database import BaseModel, CHAR_LENGTH, GUID


class Category(BaseModel):
    """Node of the category forest. ``level`` and ``slug`` are derived by CategoryService."""
    __tablename__ = "categories"
    __table_args__ = (
        Index('idx_categories_parent_id', 'parent_id'),
        Index('idx_categories_active', 'is_active'),
        Index('idx_categories_sort_order', 'sort_order'),
        {'extend_existing': True}
    )

    name = Column(String(CHAR_LENGTH), unique=True, nullable=False)
    slug = Column(String(CHAR_LENGTH), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    icon = Column(String(CHAR_LENGTH), nullable=True)  # icon class or URL
    image_url = Column(String(500), nullable=True)
    parent_id = Column(GUID(), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    level = Column(Integer, default=0, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)

    # SEO
    meta_title = Column(String(CHAR_LENGTH), nullable=True)
    meta_description = Column(Text, nullable=True)

    # Cached count of active products, see CategoryService.recompute_product_count
    product_count = Column(Integer, default=0, nullable=False)

    def to_dict(self) -> dict:
        """Convert category to dictionary for API responses"""
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "icon": self.icon,
            "image_url": self.image_url,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "level": self.level,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "product_count": self.product_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, slug='{self.slug}', level={self.level})>"
