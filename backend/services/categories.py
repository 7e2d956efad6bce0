"""
Category hierarchy service

Maintains the category forest: unique slugs, derived levels, cached product
counts, and tree / ancestor / descendant queries. Slug and level derivation
are plain functions so they can be tested without a database.
"""
import re
import unicodedata
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    ConflictException,
    CorruptHierarchyException,
    NotFoundException,
    ValidationException,
)
from core.logging_config import get_logger
from core.store import SQLAlchemyStore
from core.utils.ids import to_uuid
from models.category import Category
from models.product import Product
from schemas.category import CategoryTreeNode

logger = get_logger(__name__)

# Attributes a caller may set directly; slug, level and product_count are derived.
EDITABLE_FIELDS = {
    "description",
    "icon",
    "image_url",
    "sort_order",
    "is_active",
    "is_featured",
    "meta_title",
    "meta_description",
}

SIBLING_ORDER = ["sort_order", "created_at", "name"]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def slugify(name: str) -> str:
    """
    Lower-case, strip diacritics and non-alphanumerics, hyphenate whitespace.

    "Cá Koi Nhật Bản" -> "ca-koi-nhat-ban"
    """
    value = (name or "").strip().lower()
    # đ has no decomposition in Unicode
    value = value.replace("đ", "d")
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-z0-9\s-]", "", value)
    value = re.sub(r"[\s-]+", "-", value)
    return value.strip("-")


def next_available_slug(base: str, taken: Iterable[str]) -> str:
    """``base`` if free, otherwise the first free ``base-1``, ``base-2``, ..."""
    taken = set(taken)
    if base not in taken:
        return base
    suffix = 1
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def compute_level(parent: Optional[Category]) -> int:
    return 0 if parent is None else (parent.level or 0) + 1


def _created(category) -> datetime:
    created = category.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def sibling_key(category) -> Tuple[int, datetime, str]:
    return (category.sort_order or 0, _created(category), category.name or "")


def check_hierarchy(categories: Iterable[Category], max_depth: int) -> None:
    """Raise CorruptHierarchyException if any parent chain loops or runs deeper than max_depth."""
    by_id = {c.id: c for c in categories}
    # depth of every category whose chain has been walked, 0 for roots
    depths: Dict[UUID, int] = {}

    for category in by_id.values():
        chain: List[UUID] = []
        on_chain: Set[UUID] = set()
        current = category
        while current is not None and current.id not in depths:
            if current.id in on_chain:
                raise CorruptHierarchyException(
                    f"Category {current.id} is its own ancestor", category_id=str(current.id)
                )
            chain.append(current.id)
            on_chain.add(current.id)
            current = by_id.get(current.parent_id) if current.parent_id else None

        depth = depths[current.id] if current is not None else -1
        for category_id in reversed(chain):
            depth += 1
            if depth > max_depth:
                raise CorruptHierarchyException(
                    f"Category {category_id} is nested deeper than {max_depth} levels",
                    category_id=str(category_id),
                )
            depths[category_id] = depth


def build_tree(
    categories: Iterable[Category],
    root_id: Optional[UUID] = None,
    max_depth: int = 32,
) -> List[CategoryTreeNode]:
    """
    Nest a flat list of categories into a forest.

    Siblings are ordered by ``sort_order``, then creation time, then name.
    With ``root_id`` only that subtree is returned. Categories whose parent is
    not in ``categories`` (e.g. filtered out as inactive) are left out.
    """
    categories = list(categories)
    check_hierarchy(categories, max_depth)

    by_id = {c.id: c for c in categories}
    children: Dict[Optional[UUID], List[Category]] = defaultdict(list)
    for category in categories:
        children[category.parent_id].append(category)
    for siblings in children.values():
        siblings.sort(key=sibling_key)

    def build(category: Category) -> CategoryTreeNode:
        node = CategoryTreeNode.model_validate(category)
        node.children = [build(child) for child in children.get(category.id, [])]
        return node

    if root_id is None:
        roots = children.get(None, [])
    else:
        roots = [by_id[root_id]] if root_id in by_id else []
    return [build(root) for root in roots]


def flatten_tree(nodes: Iterable[CategoryTreeNode]) -> List[Tuple[Optional[UUID], UUID]]:
    """(parent_id, id) pairs for every node of a built tree, depth first."""
    pairs = []
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        pairs.append((node.parent_id, node.id))
        stack.extend(reversed(node.children))
    return pairs


class CategoryService:
    def __init__(
        self,
        db: AsyncSession,
        name_max_length: int = 100,
        description_max_length: int = 500,
        max_depth: int = 32,
        slug_max_attempts: int = 50,
    ):
        self.db = db
        self.store = SQLAlchemyStore(db, Category)
        self.products = SQLAlchemyStore(db, Product)
        self.name_max_length = name_max_length
        self.description_max_length = description_max_length
        self.max_depth = max_depth
        self.slug_max_attempts = slug_max_attempts

    # ---- validation helpers ----

    def _validate_name(self, name: Any) -> str:
        name = (name or "").strip() if isinstance(name, str) or name is None else None
        if name is None:
            raise ValidationException("Category name must be a string", errors={"name": "invalid"})
        if not name:
            raise ValidationException("Category name is required", errors={"name": "required"})
        if len(name) > self.name_max_length:
            raise ValidationException(
                f"Category name cannot exceed {self.name_max_length} characters",
                errors={"name": "too long"},
            )
        return name

    def _validate_attrs(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(attrs) - EDITABLE_FIELDS
        if unknown:
            raise ValidationException(
                f"Unknown or read-only category fields: {', '.join(sorted(unknown))}",
                errors={field: "not allowed" for field in unknown},
            )
        description = attrs.get("description")
        if description is not None and len(description) > self.description_max_length:
            raise ValidationException(
                f"Category description cannot exceed {self.description_max_length} characters",
                errors={"description": "too long"},
            )
        return attrs

    async def _ensure_name_free(self, name: str, exclude_id: Optional[UUID] = None) -> None:
        filt: Dict[str, Any] = {"name": name}
        if exclude_id is not None:
            filt["id"] = {"$ne": exclude_id}
        if await self.store.find_one(filt):
            raise ConflictException(f"Category '{name}' already exists")

    async def _taken_slugs(self, base: str) -> Set[str]:
        existing = await self.store.find({"slug": {"$startswith": base}})
        return {c.slug for c in existing}

    async def _unique_slug(self, name: str) -> Tuple[str, Set[str]]:
        base = slugify(name)
        if not base:
            raise ValidationException(
                "Category name must contain at least one letter or digit",
                errors={"name": "no slug characters"},
            )
        return base, await self._taken_slugs(base)

    # ---- commands ----

    async def create_category(self, name: str, parent_id: Any = None, **attrs) -> Category:
        name = self._validate_name(name)
        attrs = self._validate_attrs(attrs)
        parent_id = to_uuid(parent_id, "parent_id")

        await self._ensure_name_free(name)

        level = 0
        if parent_id is not None:
            parent = await self.store.get(parent_id)
            if parent is None:
                raise ValidationException("Parent category not found", errors={"parent_id": "not found"})
            level = compute_level(parent)

        base, taken = await self._unique_slug(name)

        for _ in range(self.slug_max_attempts):
            slug = next_available_slug(base, taken)
            try:
                category = await self.store.insert({
                    "name": name,
                    "slug": slug,
                    "parent_id": parent_id,
                    "level": level,
                    **attrs,
                })
            except ConflictException:
                # Lost a race on the unique constraint; the name may be the culprit.
                await self._ensure_name_free(name)
                logger.warning(f"Slug '{slug}' was taken concurrently, retrying")
                taken.add(slug)
                continue

            logger.info(f"Created category {category.id} slug={slug} level={level}")
            return category

        raise ConflictException(f"Could not allocate a unique slug for '{name}'")

    async def update_category(self, category_id: Any, patch: Dict[str, Any]) -> Category:
        category = await self.get_category(category_id)
        patch = dict(patch)

        if "slug" in patch:
            if category.slug and patch["slug"] != category.slug:
                raise ValidationException("Slug cannot be changed once set", errors={"slug": "immutable"})
            patch.pop("slug")

        name_given = "name" in patch
        parent_given = "parent_id" in patch
        name = patch.pop("name", None)
        new_parent_id = to_uuid(patch.pop("parent_id", None), "parent_id")
        changes = self._validate_attrs(patch)

        if name_given:
            name = self._validate_name(name)
            if name != category.name:
                await self._ensure_name_free(name, exclude_id=category.id)
                changes["name"] = name

        if not category.slug:
            base, taken = await self._unique_slug(changes.get("name", category.name))
            changes["slug"] = next_available_slug(base, taken)

        level_changed = False
        if parent_given and new_parent_id != category.parent_id:
            changes["parent_id"] = new_parent_id
            changes["level"] = await self._level_under(category, new_parent_id)
            level_changed = changes["level"] != category.level

        updated = await self.store.update(category.id, changes)
        if level_changed:
            await self._propagate_levels(updated)

        logger.info(f"Updated category {updated.id}: {sorted(changes)}")
        return updated

    async def _level_under(self, category: Category, new_parent_id: Optional[UUID]) -> int:
        if new_parent_id is None:
            return 0
        if new_parent_id == category.id:
            raise ValidationException("A category cannot be its own parent", errors={"parent_id": "self"})

        parent = await self.store.get(new_parent_id)
        if parent is None:
            raise ValidationException("Parent category not found", errors={"parent_id": "not found"})

        descendant_ids = {d.id for d in await self.get_descendants(category.id)}
        if new_parent_id in descendant_ids:
            raise ValidationException(
                "A category cannot be moved under its own descendant",
                errors={"parent_id": "descendant"},
            )
        return compute_level(parent)

    async def _propagate_levels(self, category: Category) -> None:
        """Re-derive levels below a category whose level changed."""
        queue = [category]
        seen = {category.id}
        while queue:
            node = queue.pop(0)
            for child in await self.store.find({"parent_id": node.id}):
                if child.id in seen:
                    raise CorruptHierarchyException(
                        f"Category {child.id} is its own ancestor", category_id=str(child.id)
                    )
                seen.add(child.id)
                expected = compute_level(node)
                if child.level != expected:
                    child = await self.store.update(child.id, {"level": expected})
                queue.append(child)

    async def set_active(self, category_id: Any, is_active: bool) -> Category:
        category = await self.get_category(category_id)
        if category.is_active == is_active:
            return category
        updated = await self.store.update(category.id, {"is_active": is_active})
        logger.info(f"Category {updated.id} is_active={is_active}")
        return updated

    async def toggle_active(self, category_id: Any) -> Category:
        category = await self.get_category(category_id)
        return await self.set_active(category.id, not category.is_active)

    async def delete_category(self, category_id: Any) -> Category:
        """Soft delete. Rejected while active children or active products remain."""
        category = await self.get_category(category_id)

        children = await self.store.count({"parent_id": category.id, "is_active": True})
        if children:
            raise ConflictException(
                f"Category has {children} active subcategories; move or delete them first"
            )

        products = await self.products.count({"category_id": category.id, "is_active": True})
        if products:
            raise ConflictException(
                f"Category has {products} active products; reassign or deactivate them first"
            )

        return await self.set_active(category.id, False)

    async def recompute_product_count(self, category_id: Any) -> int:
        category = await self.get_category(category_id)
        count = await self.products.count({"category_id": category.id, "is_active": True})
        if count != category.product_count:
            await self.store.update(category.id, {"product_count": count})
        return count

    # ---- queries ----

    async def get_category(self, category_id: Any) -> Category:
        category = await self.store.get(to_uuid(category_id))
        if category is None:
            raise NotFoundException("Category not found", resource="Category")
        return category

    async def get_category_by_slug(self, slug: str) -> Category:
        category = await self.store.find_one({"slug": slug, "is_active": True})
        if category is None:
            raise NotFoundException("Category not found", resource="Category")
        return category

    async def list_categories(self, active_only: bool = True, parent_id: Any = None) -> List[Category]:
        filt: Dict[str, Any] = {}
        if active_only:
            filt["is_active"] = True
        if parent_id is not None:
            filt["parent_id"] = to_uuid(parent_id, "parent_id")
        return await self.store.find(filt, order_by=SIBLING_ORDER)

    async def get_root_categories(self) -> List[Category]:
        return await self.store.find({"parent_id": None, "is_active": True}, order_by=SIBLING_ORDER)

    async def get_featured_categories(self) -> List[Category]:
        return await self.store.find({"is_featured": True, "is_active": True}, order_by=SIBLING_ORDER)

    async def get_tree(self, root_id: Any = None, include_inactive: bool = False) -> List[CategoryTreeNode]:
        categories = await self.store.find(
            {} if include_inactive else {"is_active": True}, order_by=SIBLING_ORDER
        )

        root = None
        if root_id is not None:
            root = await self.get_category(root_id)
            if all(c.id != root.id for c in categories):
                categories.append(root)

        return build_tree(categories, root_id=root.id if root else None, max_depth=self.max_depth)

    async def get_ancestors(self, category_id: Any) -> List[Category]:
        """Root first, immediate parent last. A dangling parent ends the chain early."""
        category = await self.get_category(category_id)
        ancestors: List[Category] = []
        seen = {category.id}
        current = category

        while current.parent_id is not None:
            if current.parent_id in seen or len(ancestors) >= self.max_depth:
                logger.warning(f"Corrupt hierarchy above category {category.id}")
                raise CorruptHierarchyException(
                    f"Ancestor chain of category {category.id} loops or is too deep",
                    category_id=str(category.id),
                )
            parent = await self.store.get(current.parent_id)
            if parent is None:
                logger.warning(f"Category {current.id} references missing parent {current.parent_id}")
                break
            ancestors.insert(0, parent)
            seen.add(parent.id)
            current = parent

        return ancestors

    async def get_descendants(self, category_id: Any) -> List[Category]:
        """Every category below ``category_id``, depth first."""
        category = await self.get_category(category_id)
        descendants: List[Category] = []
        seen = {category.id}
        stack: List[Tuple[Category, int]] = [(category, 0)]

        while stack:
            node, depth = stack.pop()
            if depth >= self.max_depth:
                raise CorruptHierarchyException(
                    f"Subtree of category {category.id} is deeper than {self.max_depth} levels",
                    category_id=str(category.id),
                )
            children = await self.store.find({"parent_id": node.id}, order_by=SIBLING_ORDER)
            for child in reversed(children):
                if child.id in seen:
                    logger.warning(f"Category {child.id} reached twice below {category.id}")
                    raise CorruptHierarchyException(
                        f"Category {child.id} is its own ancestor", category_id=str(child.id)
                    )
                seen.add(child.id)
                stack.append((child, depth + 1))
            if node is not category:
                descendants.append(node)

        return descendants
