"""
Pose estimation module using MediaPipe.
"""

import mediapipe as mp
import cv2
import numpy as np

from rom_processor.config import PoseConfig
from rom_processor.landmarks import Landmark


class PoseEstimator:
    """Wrapper for MediaPipe Pose estimation."""

    def __init__(
            self,
            model_complexity: int = 1,
            min_detection_confidence: float = 0.5,
            min_tracking_confidence: float = 0.5
    ):
        """
        Initialize pose estimator.

        Args:
            model_complexity: 0=lite, 1=full, 2=heavy
            min_detection_confidence: Minimum detection confidence [0.0-1.0]
            min_tracking_confidence: Minimum tracking confidence [0.0-1.0]
        """
        self.mp_pose = mp.solutions.pose
        self.mp_drawing = mp.solutions.drawing_utils
        self.mp_drawing_styles = mp.solutions.drawing_styles

        self.pose = self.mp_pose.Pose(
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence
        )

    @classmethod
    def from_config(cls, config: PoseConfig) -> "PoseEstimator":
        """Build from the `pose` section of the app config."""
        return cls(
            model_complexity=config.model_complexity,
            min_detection_confidence=config.min_detection_confidence,
            min_tracking_confidence=config.min_tracking_confidence,
        )

    def estimate(self, frame: np.ndarray):
        """
        Estimate pose from BGR frame.

        Args:
            frame: BGR image from OpenCV

        Returns:
            MediaPipe pose results (pose_landmarks is None if no pose detected)
        """
        # MediaPipe needs RGB
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return self.pose.process(rgb_frame)

    def draw_skeleton(self, frame: np.ndarray, results) -> np.ndarray:
        """Draw pose skeleton on frame (in place) and return it."""
        if results is not None and results.pose_landmarks:
            self.mp_drawing.draw_landmarks(
                frame,
                results.pose_landmarks,
                self.mp_pose.POSE_CONNECTIONS,
                landmark_drawing_spec=self.mp_drawing_styles.get_default_pose_landmarks_style()
            )
        return frame

    @staticmethod
    def get_landmarks(results, width: int = 1, height: int = 1) -> list[Landmark] | None:
        """
        Extract landmarks scaled to pixel space.

        MediaPipe returns x, y normalized to the image; z uses roughly the
        same scale as x. Visibility becomes the landmark confidence.

        Args:
            results: MediaPipe pose results
            width: Frame width in pixels (1 keeps normalized coordinates)
            height: Frame height in pixels

        Returns:
            List of 33 landmarks or None if no pose detected
        """
        if results is None or not results.pose_landmarks:
            return None

        return [
            Landmark(
                x=lm.x * width,
                y=lm.y * height,
                z=lm.z * width,
                confidence=lm.visibility,
            )
            for lm in results.pose_landmarks.landmark
        ]

    def release(self):
        """Release resources."""
        self.pose.close()
