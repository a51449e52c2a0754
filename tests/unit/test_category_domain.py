"""
Unit tests for category domain entities.
"""
from decimal import Decimal
from uuid import uuid4

import pytest

from internal.domain.audit import (
    AuditAction,
    AuditEntry,
    CreatedChanges,
    FieldChange,
    FieldChanges,
    MovedChanges,
    StatusChanges,
    changes_from_dict,
)
from internal.domain.category import (
    BreadcrumbItem,
    Category,
    CategorySettings,
    CategoryStatus,
    CategoryTreeNode,
    DeletionInfo,
)
from internal.domain.errors import (
    CategoryIntegrityError,
    DomainValidationError,
    MaxDepthExceededError,
)
from internal.domain.events import MetricsInvalidatedEvent, ProductChange
from internal.domain.metrics import (
    CategoryMetrics,
    ProductAggregate,
    ProductCounts,
    compute_popularity_score,
)


class TestCategory:
    """Tests for Category entity."""

    def test_create_root_category(self):
        """Test creating a root category."""
        category = Category(name="Electronics", slug="electronics")

        assert category.is_root
        assert category.level == 0
        assert category.path == ""
        assert category.full_path == "electronics"
        assert category.ancestor_slugs == []
        assert category.status == CategoryStatus.ACTIVE

    def test_create_child_category(self):
        """Test creating a child category."""
        parent_id = uuid4()
        category = Category(
            name="Smartphones",
            slug="smartphones",
            parent_id=parent_id,
            level=2,
            path="electronics/phones",
        )

        assert category.parent_id == parent_id
        assert category.full_path == "electronics/phones/smartphones"
        assert category.ancestor_slugs == ["electronics", "phones"]

    def test_name_is_trimmed(self):
        """Test that names are normalized."""
        category = Category(name="  Phones  ", slug="phones")
        assert category.name == "Phones"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_invalid_name(self, name):
        """Test that empty and overlong names are rejected."""
        with pytest.raises(DomainValidationError):
            Category(name=name, slug="phones")

    @pytest.mark.parametrize("slug", ["", "Phones", "phones!", "a/b"])
    def test_invalid_slug(self, slug):
        """Test that malformed slugs are rejected."""
        with pytest.raises(DomainValidationError):
            Category(name="Phones", slug=slug)

    def test_level_above_maximum_rejected(self):
        """Test that level 6 is rejected."""
        with pytest.raises(DomainValidationError):
            Category(name="Deep", slug="deep", level=6, path="a/b/c/d/e/f")

    def test_status_coerced_from_string(self):
        """Test that a stored status string becomes the enum."""
        category = Category(name="Phones", slug="phones", status="archived")
        assert category.status == CategoryStatus.ARCHIVED

    def test_public_visibility(self):
        """Test which categories appear in public trees."""
        assert Category(name="A", slug="a").is_publicly_visible()
        assert not Category(name="A", slug="a", status=CategoryStatus.DRAFT).is_publicly_visible()
        hidden = Category(name="A", slug="a", settings=CategorySettings(is_visible=False))
        assert not hidden.is_publicly_visible()

    def test_can_add_products(self):
        """Test product eligibility."""
        allowed, reason = Category(name="A", slug="a").can_add_products()
        assert allowed
        assert reason == "OK"

        allowed, _ = Category(name="A", slug="a", status=CategoryStatus.INACTIVE).can_add_products()
        assert not allowed

        closed = Category(name="A", slug="a", settings=CategorySettings(allow_products=False))
        allowed, reason = closed.can_add_products()
        assert not allowed
        assert "does not allow" in reason

    def test_to_dict(self):
        """Test converting category to dictionary."""
        category = Category(name="Phones", slug="phones", level=1, path="electronics")

        result = category.to_dict()

        assert result["id"] == str(category.id)
        assert result["parent_id"] is None
        assert result["slug"] == "phones"
        assert result["path"] == "electronics"
        assert result["status"] == "active"
        assert result["settings"]["is_visible"] is True
        assert result["metrics"]["popularity_score"] == 0
        assert "created_at" in result
        assert "updated_at" in result


class TestCategoryTreeNode:
    """Tests for CategoryTreeNode."""

    def test_sort_orders_by_sort_order_then_name(self):
        """Test sibling ordering."""
        root = CategoryTreeNode(category=Category(name="Root", slug="root"))
        for name, order in (("Beta", 0), ("Alpha", 0), ("First", -1)):
            child = Category(
                name=name,
                slug=name.lower(),
                level=1,
                path="root",
                settings=CategorySettings(sort_order=order),
            )
            root.children.append(CategoryTreeNode(category=child))

        root.sort()

        assert [c.category.name for c in root.children] == ["First", "Alpha", "Beta"]

    def test_to_dict_nests_children(self):
        """Test nested dictionary output."""
        root = CategoryTreeNode(category=Category(name="Root", slug="root"))
        root.children.append(
            CategoryTreeNode(category=Category(name="Leaf", slug="leaf", level=1, path="root"))
        )

        result = root.to_dict()

        assert result["slug"] == "root"
        assert result["children"][0]["slug"] == "leaf"
        assert result["children"][0]["children"] == []


class TestValueObjects:
    """Tests for small value objects."""

    def test_deletion_info(self):
        category_id = uuid4()
        assert DeletionInfo(category_id, 0, 0).can_delete
        assert not DeletionInfo(category_id, 1, 0).can_delete
        assert not DeletionInfo(category_id, 0, 1).can_delete

    def test_breadcrumb_to_dict(self):
        item = BreadcrumbItem(id=uuid4(), name="Phones", slug="phones", level=1)
        assert item.to_dict()["slug"] == "phones"


class TestCategoryMetrics:
    """Tests for rollup metrics."""

    def test_popularity_score_example(self):
        """3 products, $3,000 revenue and 5 orders score 34."""
        assert compute_popularity_score(3, Decimal("3000"), 5) == 34

    def test_popularity_score_is_capped(self):
        assert compute_popularity_score(100, Decimal("500000"), 100) == 100

    def test_popularity_score_rounds_half_up(self):
        assert compute_popularity_score(0, Decimal("500"), 0) == 1
        assert compute_popularity_score(0, Decimal("499"), 0) == 0

    def test_from_product_stats(self):
        """Test building metrics from collaborator answers."""
        metrics = CategoryMetrics.from_product_stats(
            ProductCounts(total=3, active=2),
            ProductAggregate(
                average_price=Decimal("10.005"),
                total_revenue=Decimal("3000"),
                total_orders=5,
                distinct_manufacturers=2,
            ),
            total_subcategories=4,
        )

        assert metrics.total_products == 3
        assert metrics.active_products == 2
        assert metrics.total_manufacturers == 2
        assert metrics.total_revenue == Decimal("3000")
        assert metrics.average_product_price == Decimal("10.01")
        assert metrics.total_subcategories == 4
        assert metrics.popularity_score == 34

    def test_empty_aggregate(self):
        metrics = CategoryMetrics.from_product_stats(ProductCounts(), ProductAggregate(), 0)
        assert metrics == CategoryMetrics()

    def test_out_of_range_score_rejected(self):
        with pytest.raises(DomainValidationError):
            CategoryMetrics(popularity_score=101)

    def test_negative_count_rejected(self):
        with pytest.raises(DomainValidationError):
            CategoryMetrics(total_products=-1)


class TestAuditEntry:
    """Tests for audit entries and their change variants."""

    def test_action_must_match_changes(self):
        """Test that a created entry cannot carry a status change."""
        with pytest.raises(DomainValidationError):
            AuditEntry(
                category_id=uuid4(),
                action=AuditAction.CREATED,
                performed_by="admin",
                changes=StatusChanges(from_status="active", to_status="inactive"),
            )

    def test_updated_accepts_fields_and_moves(self):
        fields = FieldChanges((FieldChange("name", "A", "B"),))
        moved = MovedChanges(from_parent_id=None, to_parent_id=uuid4(), from_path="", to_path="x")

        for changes in (fields, moved):
            entry = AuditEntry(
                category_id=uuid4(),
                action="updated",
                performed_by="admin",
                changes=changes,
            )
            assert entry.action == AuditAction.UPDATED

    def test_actor_required(self):
        with pytest.raises(DomainValidationError):
            AuditEntry(
                category_id=uuid4(),
                action=AuditAction.CREATED,
                performed_by="",
                changes=CreatedChanges(name="A", slug="a", parent_id=None, status="active"),
            )

    def test_changes_from_dict(self):
        """Test rebuilding a stored variant."""
        parent_id = uuid4()
        stored = MovedChanges(
            from_parent_id=None,
            to_parent_id=parent_id,
            from_path="",
            to_path="gadgets",
            descendants_rewritten=2,
        ).to_dict()

        rebuilt = changes_from_dict(stored)

        assert isinstance(rebuilt, MovedChanges)
        assert rebuilt.to_parent_id == parent_id
        assert rebuilt.descendants_rewritten == 2

    def test_field_changes_wire_format(self):
        data = FieldChanges((FieldChange("name", "Old", "New"),)).to_dict()
        assert data == {"kind": "fields", "changes": [{"field": "name", "from": "Old", "to": "New"}]}

    def test_unknown_kind_rejected(self):
        with pytest.raises(DomainValidationError):
            changes_from_dict({"kind": "mystery"})


class TestErrors:
    """Tests for error codes callers rely on."""

    def test_integrity_error_codes(self):
        assert CategoryIntegrityError(uuid4(), children=1).code == "has_children"
        assert CategoryIntegrityError(uuid4(), products=2).code == "has_products"

    def test_max_depth_message(self):
        error = MaxDepthExceededError(6, 5)
        assert error.message == "max depth exceeded"
        assert isinstance(error, DomainValidationError)


class TestEvents:
    """Tests for event contracts."""

    def test_product_update_without_metric_fields_is_ignored(self):
        change = ProductChange.from_payload(
            "product.updated",
            {"category_id": str(uuid4()), "changed_fields": ["description"]},
        )
        assert not change.affects_metrics()

    def test_product_update_with_price_counts(self):
        change = ProductChange.from_payload(
            "product.updated",
            {"category_id": str(uuid4()), "changed_fields": ["price"]},
        )
        assert change.affects_metrics()

    def test_created_and_deleted_always_count(self):
        for event_type in ("product.created", "product.deleted"):
            change = ProductChange.from_payload(
                event_type, {"category_id": str(uuid4()), "changed_fields": ["description"]}
            )
            assert change.affects_metrics()

    def test_unknown_event_type_rejected(self):
        with pytest.raises(DomainValidationError):
            ProductChange.from_payload("product.exploded", {})

    def test_malformed_id_rejected(self):
        with pytest.raises(DomainValidationError):
            ProductChange.from_payload("product.created", {"category_id": "not-a-uuid"})

    def test_metrics_invalidated_wire_format(self):
        category_id = uuid4()
        event = MetricsInvalidatedEvent(category_id=category_id, reason="category moved")

        data = event.to_dict()

        assert data["event_type"] == "category.metrics_invalidated"
        assert data["aggregate_id"] == str(category_id)
        parsed = MetricsInvalidatedEvent.from_dict(data)
        assert parsed.category_id == category_id
        assert parsed.reason == "category moved"

    def test_metrics_invalidated_requires_category(self):
        with pytest.raises(DomainValidationError):
            MetricsInvalidatedEvent.from_dict({"payload": {}})
