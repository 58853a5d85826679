import pytest

from lens_ocr import BoundingBox, LensError, LensResult, PixelRect, Segment


def test_pixel_coords_from_center_box():
    bb = BoundingBox([0.5, 0.25, 0.5, 0.125], [1000, 400])
    assert bb.pixel_coords == PixelRect(x=250, y=75, width=500, height=50)


@pytest.mark.parametrize(
    ("box", "dims"),
    [
        ([0.5, 0.5, 0.2, 0.2], [640, 480]),
        ([0.123, 0.877, 0.05, 0.3], [333, 777]),
        ([0.9, 0.1, 0.15, 0.07], [1000, 1000]),
        ([0.01, 0.99, 0.02, 0.02], [7, 13]),
    ],
)
def test_pixel_center_matches_scaled_center(box, dims):
    p = BoundingBox(box, dims).pixel_coords
    cx = p.x + p.width / 2
    cy = p.y + p.height / 2
    assert abs(cx - box[0] * dims[0]) <= 1
    assert abs(cy - box[1] * dims[1]) <= 1


def test_rounds_half_away_from_zero():
    # x = 0.5*3 - 1/2 = 1.0, width 1.0; y = 0.5*5 - 0 = 2.5 -> 3
    p = BoundingBox([0.5, 0.5, 1 / 3, 0.0], [3, 5]).pixel_coords
    assert p.x == 1
    assert p.y == 3
    # negative half rounds away from zero as well
    p = BoundingBox([0.0, 0.0, 0.5, 0.0], [5, 1]).pixel_coords
    assert p.x == -1  # -1.25
    p = BoundingBox([0.0, 0.0, 0.2, 0.0], [5, 1]).pixel_coords
    assert p.x == -1  # -0.5


def test_zero_dimensions_collapse_to_origin():
    p = BoundingBox([0.4, 0.6, 0.2, 0.1], [0, 0]).pixel_coords
    assert (p.x, p.y, p.width, p.height) == (0, 0, 0, 0)


@pytest.mark.parametrize("dims", [None, [], [100], [100, 200, 300]])
def test_bad_dimensions_rejected(dims):
    with pytest.raises(ValueError, match="Image dimensions not set"):
        BoundingBox([0.5, 0.5, 0.1, 0.1], dims)


@pytest.mark.parametrize("box", [None, []])
def test_missing_box_rejected(box):
    with pytest.raises(ValueError, match="Bounding box not set"):
        BoundingBox(box, [10, 10])


def test_segment_and_result_are_immutable():
    seg = Segment.from_region("hi", [0.5, 0.5, 0.5, 0.5], (10, 10))
    res = LensResult("en", (seg,))
    with pytest.raises(AttributeError):
        seg.text = "other"
    with pytest.raises(AttributeError):
        res.language = "de"
    assert res.text == "hi"
    assert res.to_dict()["segments"][0]["boundingBox"]["pixelCoords"] == {
        "x": 3, "y": 3, "width": 5, "height": 5,
    }


def test_lens_error_keeps_response_context():
    err = LensError("boom", 500, {"x": "y"}, "<html>")
    assert err.code == 500
    assert err.headers == {"x": "y"}
    assert err.body == "<html>"
    assert "status=500" in str(err)
