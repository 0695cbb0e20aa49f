import pytest

from imgpipe.common.settings import FallbackConfig
from imgpipe.domain.enums.fallback_category import FallbackCategory
from imgpipe.domain.policies.image_paths import category_for_path, is_image_path, matches_prefix, mime_type_for


@pytest.mark.parametrize("path", ["/images/a.jpg", "/images/a.JPEG", "x/y.png", "z.gif", "w.webp"])
def test_is_image_path_true(path):
    assert is_image_path(path)


@pytest.mark.parametrize("path", ["/images/a.txt", "/images/noext", "/images/a.jpg.bak", "/images/a.svg"])
def test_is_image_path_false(path):
    assert not is_image_path(path)


def test_is_image_path_custom_exts():
    assert is_image_path("a.png", ["png"])
    assert not is_image_path("a.jpg", [".png"])


def test_matches_prefix():
    prefixes = ["/images", "uploads/"]
    assert matches_prefix("/images/a.jpg", prefixes)
    assert matches_prefix("uploads/team/b.png", prefixes)
    assert not matches_prefix("/imagesx/a.jpg", prefixes)
    assert not matches_prefix("/static/a.jpg", prefixes)


@pytest.mark.parametrize(
    "path,mime",
    [
        ("a.jpg", "image/jpeg"),
        ("a.jpeg", "image/jpeg"),
        ("a.png", "image/png"),
        ("a.gif", "image/gif"),
        ("a.webp", "image/webp"),
        ("a.bin", "application/octet-stream"),
    ],
)
def test_mime_type_for(path, mime):
    assert mime_type_for(path) == mime


@pytest.mark.parametrize(
    "path,cat",
    [
        ("/images/projects/villa.jpg", FallbackCategory.project),
        ("/uploads/team/anna.jpg", FallbackCategory.team_member),
        ("/images/chi-siamo/hero.jpg", FallbackCategory.about),
        ("/images/misc/x.jpg", FallbackCategory.image),
        ("/images/projects.jpg", FallbackCategory.image),
    ],
)
def test_category_for_path(path, cat):
    assert category_for_path(path, FallbackConfig().segment_categories) is cat


def test_category_for_path_without_mapping():
    assert category_for_path("/images/projects/a.jpg") is FallbackCategory.image
