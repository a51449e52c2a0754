"""
Unit tests for slug derivation.
"""
import pytest

from internal.domain.errors import DomainValidationError
from internal.domain.slug import SlugAllocator


@pytest.fixture
def slugs():
    return SlugAllocator()


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Electronics", "electronics"),
        ("Home & Garden", "home-garden"),
        ("  Power   Tools  ", "power-tools"),
        ("Wi-Fi -- Routers", "wi-fi-routers"),
        ("-Cables-", "cables"),
        ("USB 3.0 Hubs", "usb-30-hubs"),
    ],
)
def test_derive(slugs, name, expected):
    """Test slug derivation from display names."""
    assert slugs.derive(name) == expected


def test_derive_drops_non_latin(slugs):
    assert slugs.derive("Кирпич M150") == "m150"


def test_derive_nothing_left(slugs):
    """Test a name without usable characters."""
    with pytest.raises(DomainValidationError):
        slugs.derive("Кирпич")


def test_derive_truncates(slugs):
    slug = slugs.derive("a" * 200)
    assert len(slug) == 120


def test_validate_accepts_underscores(slugs):
    assert slugs.validate("power_tools") == "power_tools"


@pytest.mark.parametrize("slug", ["Power", "power tools", "", "a/b"])
def test_validate_rejects(slugs, slug):
    with pytest.raises(DomainValidationError):
        slugs.validate(slug)


def test_allocate_prefers_explicit_slug(slugs):
    assert slugs.allocate("Electronics", "gadgets") == "gadgets"
    assert slugs.allocate("Electronics") == "electronics"
