from io import BytesIO

import httpx
import pytest
from PIL import Image

from lens_ocr import images
from lens_ocr.models import PixelRect

from lens_pages import page, primary_data, run


def test_check_readable_conditions(tmp_path, monkeypatch):
    missing = tmp_path / "nope.png"
    with pytest.raises(FileNotFoundError, match="File not found"):
        images.check_readable(missing)
    with pytest.raises(IsADirectoryError, match="Found directory"):
        images.check_readable(tmp_path)

    f = tmp_path / "a.png"
    f.write_bytes(b"x")
    images.check_readable(f)
    monkeypatch.setattr(images.os, "access", lambda *a, **kw: False)
    with pytest.raises(PermissionError, match=f"Read permission denied: {f}"):
        images.check_readable(f)


@pytest.mark.parametrize(
    ("fmt", "mime"),
    [("PNG", "image/png"), ("JPEG", "image/jpeg"), ("BMP", "image/bmp"), ("WEBP", "image/webp"),
     ("TIFF", "image/tiff"), ("GIF", "image/gif")],
)
def test_sniff_mime(make_image, fmt, mime):
    assert images.sniff_mime(make_image(fmt=fmt)) == mime


def test_sniff_mime_unknown():
    with pytest.raises(ValueError, match="File type not supported"):
        images.sniff_mime(b"%PDF-1.4 not an image")


def test_image_dimensions(make_image):
    assert images.image_dimensions(make_image((321, 123))) == (321, 123)
    with pytest.raises(ValueError):
        images.image_dimensions(b"")


def test_fit_within_keeps_aspect(make_image):
    out = images.fit_within(make_image((2400, 1200)))
    with Image.open(BytesIO(out)) as im:
        assert im.format == "JPEG"
        assert im.size == (1000, 500)
        assert im.info.get("progressive") or im.info.get("progression")


def test_is_oversized():
    assert images.is_oversized((1001, 10))
    assert images.is_oversized((10, 1001))
    assert not images.is_oversized((1000, 1000))


def test_scan_by_file(lens_factory, make_image, tmp_path):
    path = tmp_path / "shot.png"
    path.write_bytes(make_image((500, 200)))

    lens, rec = lens_factory(lambda r: httpx.Response(200, text=page(primary_data("en"))))
    result = run(lens.scan_by_file(str(path)))

    assert result.segments[0].bounding_box.pixel_coords == PixelRect(x=125, y=38, width=250, height=25)
    (req,) = rec.requests
    assert b'filename="image.png"' in req.content
    assert b"500,200" in req.content


def test_scan_by_file_errors(lens_factory, tmp_path):
    lens, rec = lens_factory(lambda r: httpx.Response(500))
    with pytest.raises(FileNotFoundError):
        run(lens.scan_by_file(str(tmp_path / "missing.png")))
    with pytest.raises(TypeError):
        run(lens.scan_by_file(123))
    assert rec.requests == []


def test_scan_by_buffer_downscales_large_images(lens_factory, make_image):
    lens, rec = lens_factory(lambda r: httpx.Response(200, text=page(primary_data("en"))))
    result = run(lens.scan_by_buffer(make_image((2000, 800))))

    # boxes resolve against the original size, not the resized upload
    assert result.segments[0].bounding_box.image_dimensions == (2000, 800)
    assert result.segments[0].bounding_box.pixel_coords == PixelRect(x=500, y=150, width=1000, height=100)

    (req,) = rec.requests
    assert b'filename="image.jpg"' in req.content
    assert b"Content-Type: image/jpeg" in req.content
    assert b'name="processed_image_dimensions"\r\n\r\n1000,400' in req.content


def test_scan_by_buffer_rejects_gif(lens_factory, make_image):
    lens, rec = lens_factory(lambda r: httpx.Response(500))
    with pytest.raises(ValueError, match="File type not supported"):
        run(lens.scan_by_buffer(make_image(fmt="GIF")))
    assert rec.requests == []


def test_heic_is_readable(make_image):
    heic = make_image((200, 100), fmt="HEIF")
    assert images.sniff_mime(heic) == "image/heic"
    assert images.image_dimensions(heic) == (200, 100)


def test_scan_by_buffer_uploads_heic(lens_factory, make_image):
    lens, rec = lens_factory(lambda r: httpx.Response(200, text=page(primary_data("en"))))
    result = run(lens.scan_by_buffer(make_image((200, 100), fmt="HEIF")))
    assert result.segments[0].bounding_box.image_dimensions == (200, 100)

    (req,) = rec.requests
    assert b'filename="image.heic"' in req.content
    assert b"Content-Type: image/heic" in req.content
    assert b'name="processed_image_dimensions"\r\n\r\n200,100' in req.content
