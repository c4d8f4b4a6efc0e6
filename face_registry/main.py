"""
Main Application Module

Interactive webcam workstation: register faces with a multi-field form and
identify them later, with an optional live overlay preview.
"""

import asyncio
import cv2
import numpy as np
import logging
import argparse
import sys
from typing import Dict, Any, Optional, List, Awaitable, Callable

from .camera import OpenCVCamera
from .config import load_config
from .embedding_backends import create_embedder
from .embedding_generator import Detection
from .errors import CameraUnavailable, EmbedderLoadFailure, NoFaceDetected, ValidationError
from .matcher import MatchResult
from .overlay import annotate_frame, draw_status
from .recognizer import FaceRegistry, Outcome
from .session import CaptureSession

logger = logging.getLogger(__name__)

WINDOW_NAME = 'Face Registry'


def setup_logging(config: Dict[str, Any]):
    """Configure root logging from the ``logging`` config section."""
    logging_config = config.get('logging', {})
    handlers = [logging.StreamHandler(sys.stdout)]
    if logging_config.get('file'):
        handlers.append(logging.FileHandler(logging_config['file']))

    logging.basicConfig(
        level=getattr(logging, str(logging_config.get('level', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


class FaceRegistryApp:
    """Main face registry application."""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the application.

        Args:
            config: Configuration dictionary
        """
        self.config = config
        self.session_config = config.get('session', {})
        self.show_overlay = self.session_config.get('overlay_enabled', True)

        self.embedder = create_embedder(config)
        self.camera = OpenCVCamera(config)
        self.registry = FaceRegistry(config, self.embedder)
        self.session = CaptureSession(
            self.camera, self.embedder,
            overlay_interval=self.session_config.get('overlay_interval', 0.1)
        )
        self.status_line = ""

        logger.info("Face registry application initialized")

    def _show_preview(self, frame: np.ndarray, detections: List[Detection],
                      matches: List[MatchResult]):
        annotated = annotate_frame(frame, detections, matches)
        draw_status(annotated, [f"Faces: {len(detections)}", self.status_line])
        cv2.imshow(WINDOW_NAME, annotated)
        cv2.waitKey(1)

    async def _prompt(self, text: str) -> str:
        return (await asyncio.to_thread(input, text)).strip()

    async def _run_capture(self, action: Callable[[], Awaitable[Outcome]]) -> Optional[Outcome]:
        """Open the camera, let the user capture (and retry), always release."""
        try:
            await self.session.start()
        except CameraUnavailable as e:
            print(e.message)
            return None

        try:
            if self.show_overlay:
                await self.session.start_overlay(
                    self._show_preview, self.registry.matcher, self.registry.store
                )
            while True:
                cmd = await self._prompt("Press Enter to capture, 'c' to cancel: ")
                if cmd.lower() == 'c':
                    print("Cancelled")
                    return None

                outcome = await action()
                print(outcome)
                if outcome.title != "No face detected":
                    return outcome
        finally:
            await self.session.cancel()
            cv2.destroyAllWindows()

    async def register(self):
        """Handle the registration form."""
        attributes = {}
        for field in self.registry.required_fields:
            attributes[field] = await self._prompt(f"{field.replace('_', ' ').title()}: ")

        try:
            self.registry.validate_registration(attributes)
        except ValidationError as e:
            print(e.message)
            return

        self.status_line = f"Registering {attributes[self.registry.label_field]}"
        await self._run_capture(
            lambda: self.registry.capture_and_register(self.session, attributes)
        )

    async def identify(self):
        self.status_line = "Identifying..."
        await self._run_capture(lambda: self.registry.capture_and_identify(self.session))

    def list_people(self):
        people = self.registry.list_all_people()
        print(f"Registered people ({len(people)}):")
        for person in people:
            details = ", ".join(f"{k}: {v}" for k, v in person['attributes'].items())
            print(f"  {person['label']} ({details})")

    async def run(self, labeled_images: Optional[str] = None) -> int:
        """Run the interactive loop."""
        # A load failure is logged by the registry; the app keeps running
        await self.registry.initialize()

        if labeled_images and self.registry.features_enabled:
            try:
                await self.registry.load_labeled_images(labeled_images)
            except (NoFaceDetected, ValidationError, OSError) as e:
                logger.error(f"Error loading labeled images: {e}")

        print("\n=== Face Registry ===")
        print("Commands:")
        print("  'r' - Register a face")
        print("  'i' - Identify a face")
        print("  'l' - List registered people")
        print("  'p' - Print statistics")
        print("  'q' - Quit\n")

        try:
            while True:
                cmd = (await self._prompt("> ")).lower()

                if cmd == 'q':
                    break
                elif cmd == 'r':
                    await self.register()
                elif cmd == 'i':
                    await self.identify()
                elif cmd == 'l':
                    self.list_people()
                elif cmd == 'p':
                    print(f"Statistics: {self.registry.get_recognition_statistics()}")
        except (KeyboardInterrupt, EOFError):
            logger.info("Interrupted by user")
        finally:
            await self.session.cancel()
            logger.info("Application cleanup completed")

        return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Face Registry')
    parser.add_argument('--config', '-c', default='config/config.yaml',
                        help='Configuration file path')
    parser.add_argument('--camera', type=int,
                        help='Camera device ID')
    parser.add_argument('--labeled-images', '-l', type=str,
                        help='Directory of <label>.jpg reference images')
    parser.add_argument('--threshold', '-t', type=float,
                        help='Maximum match distance')
    parser.add_argument('--no-overlay', action='store_true',
                        help='Disable the live overlay preview')

    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.camera is not None:
        config['camera']['device'] = args.camera
    if args.threshold is not None:
        config['recognition']['distance_threshold'] = args.threshold
    if args.no_overlay:
        config['session']['overlay_enabled'] = False

    setup_logging(config)

    try:
        app = FaceRegistryApp(config)
    except (EmbedderLoadFailure, ValueError) as e:
        logger.error(f"Application error: {e}")
        return 1

    return asyncio.run(app.run(args.labeled_images))


if __name__ == '__main__':
    sys.exit(main())
