"""
Overlay Drawing

Draws detected faces, landmarks and match labels onto preview frames.
"""

import cv2
import numpy as np
from typing import List, Optional, Sequence, Tuple

from .embedding_generator import Detection
from .matcher import MatchResult

FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_SCALE = 0.6
FONT_THICKNESS = 2

MATCHED_COLOR = (0, 255, 0)     # Green for recognized faces
UNKNOWN_COLOR = (0, 0, 255)     # Red for unrecognized faces
UNMATCHED_COLOR = (255, 128, 0)  # Blue when no matching was requested
LANDMARK_COLOR = (0, 255, 255)


def draw_text_with_background(frame: np.ndarray, text: str, position: Tuple[int, int],
                              text_color: tuple, bg_color: tuple):
    """Draw text with background rectangle."""
    text_size = cv2.getTextSize(text, FONT, FONT_SCALE, FONT_THICKNESS)[0]
    x, y = position

    cv2.rectangle(frame, (x - 2, y - text_size[1] - 2),
                  (x + text_size[0] + 2, y + 2), bg_color, -1)
    cv2.putText(frame, text, position, FONT, FONT_SCALE, text_color, FONT_THICKNESS)


def annotate_frame(frame: np.ndarray, detections: Sequence[Detection],
                   matches: Optional[Sequence[MatchResult]] = None,
                   draw_landmarks: bool = True) -> np.ndarray:
    """
    Annotate a frame with detection boxes and match labels.

    Args:
        frame: BGR frame
        detections: Faces found in the frame
        matches: One match per detection (optional)
        draw_landmarks: Whether to draw landmark points

    Returns:
        Annotated copy of the frame
    """
    annotated = frame.copy()
    matches = list(matches or [])

    for i, detection in enumerate(detections):
        top, right, bottom, left = detection.box
        match = matches[i] if i < len(matches) else None

        if match is None:
            color = UNMATCHED_COLOR
            label_text = "face"
        else:
            color = MATCHED_COLOR if match.accepted else UNKNOWN_COLOR
            label_text = str(match)

        cv2.rectangle(annotated, (left, top), (right, bottom), color, 2)

        label_size = cv2.getTextSize(label_text, FONT, FONT_SCALE, FONT_THICKNESS)[0]
        label_top = max(0, top - label_size[1] - 10)
        cv2.rectangle(annotated, (left, label_top), (left + label_size[0], top), color, -1)
        cv2.putText(annotated, label_text, (left, max(label_size[1], top - 5)),
                    FONT, FONT_SCALE, (255, 255, 255), FONT_THICKNESS)

        if draw_landmarks:
            for points in detection.landmarks.values():
                for x, y in points:
                    cv2.circle(annotated, (int(x), int(y)), 1, LANDMARK_COLOR, -1)

    return annotated


def draw_status(frame: np.ndarray, lines: List[str]):
    """Draw status lines in the top-left corner."""
    y = 30
    for line in lines:
        draw_text_with_background(frame, line, (10, y), (255, 255, 255), (0, 0, 0))
        y += 25
