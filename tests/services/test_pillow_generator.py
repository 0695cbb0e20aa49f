import io

import pytest
from PIL import Image

from imgpipe.domain.entities.derivative_spec import DerivativeSpec
from imgpipe.domain.entities.source_asset import SourceAsset
from imgpipe.domain.enums.breakpoint import Breakpoint
from imgpipe.domain.enums.image_format import ImageFormat
from imgpipe.domain.errors import GenerationFailed
from imgpipe.services.derivatives.pillow_generator import PillowDerivativeGenerator, fit_inside
from imgpipe.services.resolver.source_resolver import LocalSourceResolver


def _source(root, rel) -> SourceAsset:
    return LocalSourceResolver(root, {}).resolve(rel)


def _open(data: bytes) -> Image.Image:
    im = Image.open(io.BytesIO(data))
    im.load()
    return im


# ----- fit_inside -------------------------------------------------------------

@pytest.mark.parametrize(
    "size,box,expected",
    [
        ((1600, 900), (640, None), (640, 360)),
        ((900, 1600), (640, None), (640, 1138)),
        ((1600, 900), (None, 300), (533, 300)),
        ((1600, 900), (640, 640), (640, 360)),
        ((300, 200), (640, None), (300, 200)),  # never enlarged
        ((300, 200), (None, None), (300, 200)),
    ],
)
def test_fit_inside(size, box, expected):
    assert fit_inside(size, *box) == expected


def test_fit_inside_rejects_empty_source():
    with pytest.raises(ValueError):
        fit_inside((0, 10), 5)


# ----- generate ---------------------------------------------------------------

def test_resize_and_reencode_to_webp(tmp_path, make_image):
    make_image(tmp_path, "images/hero.jpg", (1600, 900))
    src = _source(tmp_path, "/images/hero.jpg")
    spec = DerivativeSpec(format=ImageFormat.WEBP, width=640, breakpoint=Breakpoint.md)

    out = _open(PillowDerivativeGenerator().generate(src, spec))
    assert out.format == "WEBP"
    assert out.size == (640, 360)


def test_small_source_is_not_upscaled(tmp_path, make_image):
    make_image(tmp_path, "images/icon.png", (120, 80))
    src = _source(tmp_path, "/images/icon.png")
    spec = DerivativeSpec(format=ImageFormat.WEBP, width=1920, breakpoint=Breakpoint.xl)
    assert _open(PillowDerivativeGenerator().generate(src, spec)).size == (120, 80)


def test_jpeg_output_from_transparent_png(tmp_path, make_image):
    make_image(tmp_path, "images/logo.png", (400, 200), mode="RGBA", color=(0, 0, 0, 0))
    src = _source(tmp_path, "/images/logo.png")
    spec = DerivativeSpec(format=ImageFormat.JPEG, width=320, breakpoint=Breakpoint.sm)
    out = _open(PillowDerivativeGenerator().generate(src, spec))
    assert out.format == "JPEG"
    assert out.mode == "RGB"
    assert out.size == (320, 160)
    assert out.getpixel((10, 10)) == pytest.approx((255, 255, 255), abs=2)


def test_webp_keeps_alpha(tmp_path, make_image):
    make_image(tmp_path, "images/logo.png", (400, 200), mode="RGBA", color=(0, 0, 255, 128))
    src = _source(tmp_path, "/images/logo.png")
    out = _open(PillowDerivativeGenerator().generate(src, DerivativeSpec(format=ImageFormat.WEBP)))
    assert out.mode == "RGBA"


def test_exif_orientation_applied(tmp_path, make_image):
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 CW on display
    make_image(tmp_path, "images/phone.jpg", (400, 200), exif=exif)
    src = _source(tmp_path, "/images/phone.jpg")
    assert (src.width, src.height) == (200, 400)

    out = _open(PillowDerivativeGenerator().generate(src, DerivativeSpec(format=ImageFormat.WEBP, width=100)))
    assert out.size == (100, 200)
    assert out.getexif().get(0x0112) in (None, 1)


def test_animated_gif_keeps_frames(tmp_path):
    p = tmp_path / "images" / "spin.gif"
    p.parent.mkdir(parents=True)
    frames = [Image.new("RGB", (200, 200), c) for c in ((255, 0, 0), (0, 255, 0), (0, 0, 255))]
    frames[0].save(p, format="GIF", save_all=True, append_images=frames[1:], duration=80, loop=0)
    src = _source(tmp_path, "/images/spin.gif")

    gen = PillowDerivativeGenerator()
    webp = _open(gen.generate(src, DerivativeSpec(format=ImageFormat.WEBP, width=100)))
    assert webp.size == (100, 100)
    assert getattr(webp, "n_frames", 1) == 3

    # a still target gets the first frame
    jpeg = _open(gen.generate(src, DerivativeSpec(format=ImageFormat.JPEG, width=100)))
    assert jpeg.size == (100, 100)


def test_generate_many_decodes_once_and_keeps_order(tmp_path, make_image):
    make_image(tmp_path, "images/hero.jpg", (1600, 900))
    src = _source(tmp_path, "/images/hero.jpg")
    specs = [
        DerivativeSpec(format=ImageFormat.WEBP),
        DerivativeSpec(format=ImageFormat.WEBP, width=320, breakpoint=Breakpoint.sm),
        DerivativeSpec(format=ImageFormat.WEBP, width=1024, breakpoint=Breakpoint.lg),
    ]
    sizes = [_open(b).size for b in PillowDerivativeGenerator().generate_many(src, specs)]
    assert sizes == [(1600, 900), (320, 180), (1024, 576)]


def test_corrupt_source_raises_generation_failed(tmp_path, make_image):
    good = make_image(tmp_path, "images/ok.jpg", (300, 300))
    broken = tmp_path / "images" / "broken.jpg"
    broken.write_bytes(good.read_bytes()[:200])

    src = _source(tmp_path, "/images/broken.jpg")
    with pytest.raises(GenerationFailed):
        PillowDerivativeGenerator().generate(src, DerivativeSpec(format=ImageFormat.WEBP, width=100))


def test_non_image_raises_generation_failed(tmp_path):
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "fake.jpg").write_bytes(b"definitely not a jpeg")
    src = _source(tmp_path, "/images/fake.jpg")
    assert src.format is None
    with pytest.raises(GenerationFailed):
        PillowDerivativeGenerator().generate(src, DerivativeSpec(format=ImageFormat.WEBP))


def test_oversized_source_rejected(tmp_path, make_image):
    make_image(tmp_path, "images/big.jpg", (64, 64))
    src = _source(tmp_path, "/images/big.jpg")
    with pytest.raises(GenerationFailed) as ei:
        PillowDerivativeGenerator(max_source_bytes=10).generate(src, DerivativeSpec(format=ImageFormat.WEBP))
    assert "limit" in ei.value.message
