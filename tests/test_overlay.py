"""
Test cases for overlay drawing
"""

import pytest
import numpy as np
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from face_registry.embedding_generator import Detection
from face_registry.matcher import MatchResult
from face_registry.overlay import (
    MATCHED_COLOR,
    UNKNOWN_COLOR,
    annotate_frame,
    draw_status,
)


class TestOverlay:
    """Test cases for annotate_frame."""

    @pytest.fixture
    def frame(self):
        return np.zeros((200, 200, 3), dtype=np.uint8)

    @pytest.fixture
    def detection(self):
        return Detection(
            box=(60, 140, 140, 60),
            embedding=np.zeros(4),
            landmarks={'nose_tip': [(100, 100)]}
        )

    def test_frame_is_not_modified(self, frame, detection):
        annotated = annotate_frame(frame, [detection], [MatchResult("Alice", 0.3, True)])
        assert annotated is not frame
        assert frame.sum() == 0
        assert annotated.sum() > 0

    def test_box_color_follows_acceptance(self, frame, detection):
        accepted = annotate_frame(frame, [detection], [MatchResult("Alice", 0.3, True)])
        rejected = annotate_frame(frame, [detection], [MatchResult("unknown", 0.9, False)])

        # Bottom edge of the box, away from the label
        assert tuple(accepted[140, 100]) == MATCHED_COLOR
        assert tuple(rejected[140, 100]) == UNKNOWN_COLOR

    def test_no_detections_returns_copy(self, frame):
        annotated = annotate_frame(frame, [])
        assert np.array_equal(annotated, frame)

    def test_missing_matches_still_draws_boxes(self, frame, detection):
        annotated = annotate_frame(frame, [detection, detection], None, draw_landmarks=False)
        assert annotated.sum() > 0

    def test_draw_status(self, frame):
        draw_status(frame, ["Faces: 1", "Identifying..."])
        assert frame.sum() > 0
