from pathlib import Path

import pytest

from imgpipe.domain.dataclasses.delivery import Delivery
from imgpipe.domain.entities.cache_entry import CacheEntry
from imgpipe.domain.entities.derivative_spec import DerivativeSpec
from imgpipe.domain.entities.source_asset import SourceAsset
from imgpipe.domain.enums.breakpoint import Breakpoint
from imgpipe.domain.enums.delivery_state import DeliveryState
from imgpipe.domain.enums.image_format import ImageFormat


def test_derivative_spec_validation():
    with pytest.raises(ValueError):
        DerivativeSpec(format=ImageFormat.WEBP, width=0)
    with pytest.raises(ValueError):
        DerivativeSpec(format=ImageFormat.WEBP, quality=101)
    with pytest.raises(ValueError):
        DerivativeSpec(format=ImageFormat.WEBP, effort=7)


def test_derivative_spec_is_hashable_and_describable():
    a = DerivativeSpec(format=ImageFormat.WEBP, width=640, breakpoint=Breakpoint.md)
    b = DerivativeSpec(format=ImageFormat.WEBP, width=640, breakpoint=Breakpoint.md)
    assert a == b and hash(a) == hash(b)
    assert a.describe() == "webp:640x-@md:q80:e4"


def test_source_asset_requires_logical_path(tmp_path):
    with pytest.raises(ValueError):
        SourceAsset(logical_path="", path=tmp_path / "a.jpg", size_bytes=1, mtime=0.0)
    src = SourceAsset(logical_path="/images/a.jpeg", path=tmp_path / "a.jpeg", size_bytes=1, mtime=0.0)
    assert src.stem == "a"
    assert src.declared_format is ImageFormat.JPEG


def test_cache_entry_staleness(tmp_path):
    e = CacheEntry(key="a-md.webp", path=tmp_path / "a-md.webp", size_bytes=10, mtime=100.0)
    assert e.is_older_than(101.0)
    assert not e.is_older_than(100.0)


def test_delivery_requires_terminal_state_and_body():
    with pytest.raises(ValueError):
        Delivery(state=DeliveryState.generating, content_type="image/webp", data=b"x")
    with pytest.raises(ValueError):
        Delivery(state=DeliveryState.responding, content_type="image/webp")


def test_delivery_body_prefers_memory(tmp_path):
    p = tmp_path / "a.webp"
    p.write_bytes(b"on-disk")
    assert Delivery(state=DeliveryState.responding, content_type="image/webp", path=p).body() == b"on-disk"
    d = Delivery(state=DeliveryState.responding, content_type="image/webp", path=p, data=b"mem")
    assert d.body() == b"mem"


def test_image_format_helpers():
    assert ImageFormat.JPEG.extension == "jpg"
    assert ImageFormat.WEBP.mime_type == "image/webp"
    assert ImageFormat.from_pillow("MPO") is ImageFormat.JPEG
    assert ImageFormat.from_pillow("TIFF") is None
    assert ImageFormat.from_extension(".JPG") is ImageFormat.JPEG
    assert ImageFormat.from_extension("bmp") is None
