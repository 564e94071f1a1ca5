"""
Tests for square crop planning.

Run with: pytest tests/test_crop_planner.py -v
"""
import pytest

from domain.models import BoundingBox, CropPlan
from services.crop_planner import full_image_plan, plan_crop


def _assert_contained(plan: CropPlan, img_w: int, img_h: int):
    assert plan.width == plan.height
    assert plan.x >= 0 and plan.y >= 0
    assert plan.x + plan.size <= img_w
    assert plan.y + plan.size <= img_h
    assert plan.size <= min(img_w, img_h)


class TestPlanCrop:
    """Face-centered square crop."""

    def test_landscape_face_clamped_to_top(self):
        # 1000x800, face 200px tall -> 600px crop centered on x=500, pushed down to y=0
        plan = plan_crop(BoundingBox(x=400, y=100, width=200, height=200), 1000, 800)
        assert plan == CropPlan(x=200, y=0, width=600, height=600)

    def test_face_top_lands_one_third_down(self):
        plan = plan_crop(BoundingBox(x=450, y=400, width=100, height=100), 1000, 1000)
        assert plan == CropPlan(x=350, y=300, width=300, height=300)
        assert plan.y + plan.size / 3 == 400

    def test_crop_size_limited_by_image(self):
        plan = plan_crop(BoundingBox(x=100, y=100, width=400, height=500), 1000, 800)
        assert plan.size == 800
        _assert_contained(plan, 1000, 800)

    def test_face_in_top_left_corner(self):
        plan = plan_crop(BoundingBox(x=0, y=0, width=50, height=50), 1000, 800)
        assert plan == CropPlan(x=0, y=0, width=150, height=150)
        # face top sits at the crop's top edge rather than one third down
        assert 0 < plan.y + plan.size / 3

    def test_face_in_bottom_right_corner_shifts_inward(self):
        plan = plan_crop(BoundingBox(x=950, y=750, width=50, height=50), 1000, 800)
        assert plan == CropPlan(x=850, y=650, width=150, height=150)

    def test_rounds_half_up(self):
        # center x = 10.5, crop 6 -> x = 7.5
        plan = plan_crop(BoundingBox(x=10, y=20, width=1, height=2), 100, 100)
        assert plan == CropPlan(x=8, y=18, width=6, height=6)

    def test_containment_over_many_boxes(self):
        sizes = [(1000, 800), (800, 1000), (333, 777), (64, 64), (1920, 1080)]
        for img_w, img_h in sizes:
            for fx in (0.0, 0.1, 0.45, 0.8):
                for fy in (0.0, 0.2, 0.6, 0.9):
                    for frac in (0.05, 0.2, 0.5):
                        w = max(1, int(img_w * frac))
                        h = max(1, int(img_h * frac))
                        x = min(int(img_w * fx), img_w - w)
                        y = min(int(img_h * fy), img_h - h)
                        plan = plan_crop(BoundingBox(x=x, y=y, width=w, height=h), img_w, img_h)
                        _assert_contained(plan, img_w, img_h)

    def test_rejects_empty_image(self):
        with pytest.raises(ValueError):
            plan_crop(BoundingBox(x=0, y=0, width=1, height=1), 0, 100)


class TestNoFacePlan:
    def test_no_face_spans_full_square_image(self):
        plan = plan_crop(BoundingBox.none(), 500, 500)
        assert plan.full_image
        assert plan.box() == (0, 0, 500, 500)

    def test_no_face_plan_is_not_squared(self):
        plan = full_image_plan(640, 480)
        assert (plan.width, plan.height) == (640, 480)

    def test_no_face_ignores_stale_coordinates(self):
        plan = plan_crop(BoundingBox(x=10, y=10, width=5, height=5, no_face=True), 300, 200)
        assert plan == full_image_plan(300, 200)
