from PIL import Image

from imgpipe.services.fallback.placeholders import (
    PLACEHOLDERS,
    _hex_to_rgb,
    generate_fallbacks,
    main,
    render_placeholder,
)


def test_hex_to_rgb():
    assert _hex_to_rgb("#EEE") == (238, 238, 238)
    assert _hex_to_rgb("666666") == (102, 102, 102)
    assert _hex_to_rgb("nope") == (0, 0, 0)


def test_render_placeholder_size_and_background():
    im = render_placeholder((400, 300), "No Image Available")
    assert im.size == (400, 300)
    assert im.getpixel((0, 0)) == (238, 238, 238)


def test_generate_fallbacks_writes_every_category(tmp_path, fallback_paths):
    written = generate_fallbacks(tmp_path, fallback_paths)
    assert set(written) == set(fallback_paths)
    for cat, rel in fallback_paths.items():
        p = tmp_path / rel
        with Image.open(p) as im:
            assert im.format == "JPEG"
            assert im.size == PLACEHOLDERS[cat][0]
    # no temp files next to them
    assert sorted(p.name for p in (tmp_path / "images" / "fallback").iterdir()) == sorted(
        (tmp_path / rel).name for rel in fallback_paths.values()
    )


def test_generate_fallbacks_keeps_existing(tmp_path, fallback_paths):
    generate_fallbacks(tmp_path, fallback_paths)
    target = tmp_path / fallback_paths["image"]
    before = target.stat().st_mtime_ns
    assert generate_fallbacks(tmp_path, fallback_paths) == {}
    assert target.stat().st_mtime_ns == before
    assert set(generate_fallbacks(tmp_path, fallback_paths, overwrite=True)) == set(fallback_paths)


def test_main_uses_settings(tmp_path, monkeypatch):
    from imgpipe.common import settings as s
    s.get_settings.cache_clear()
    monkeypatch.setenv("PUBLIC_ROOT", str(tmp_path))
    try:
        assert main([]) == 0
    finally:
        s.get_settings.cache_clear()
    assert (tmp_path / "images" / "fallback" / "image-fallback.jpg").is_file()
