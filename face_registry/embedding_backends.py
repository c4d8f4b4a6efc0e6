"""
Embedding Backends

Library-backed Embedder implementations: dlib ResNet through face_recognition
and FaceNet through facenet-pytorch.
"""

import numpy as np
import logging
from typing import Dict, Any, List
import face_recognition
from facenet_pytorch import MTCNN, InceptionResnetV1
import torch
from PIL import Image

from .embedding_generator import Detection, Embedder
from .errors import EmbedderLoadFailure

logger = logging.getLogger(__name__)


class FaceRecognitionEmbedder(Embedder):
    """dlib ResNet embeddings through the face_recognition library."""

    embedding_size = 128

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.detector_model = self.config.get('detector_model', 'hog')
        self.upsample = self.config.get('upsample', 1)
        self.num_jitters = self.config.get('num_jitters', 1)
        self.with_landmarks = self.config.get('landmarks', True)

    def _load_model(self):
        # face_recognition loads its dlib models lazily; a dry run surfaces missing model files
        blank = np.zeros((32, 32, 3), dtype=np.uint8)
        face_recognition.face_locations(blank, model=self.detector_model)

    def _detect_faces(self, rgb_image: np.ndarray) -> List[Detection]:
        locations = face_recognition.face_locations(
            rgb_image,
            number_of_times_to_upsample=self.upsample,
            model=self.detector_model
        )
        if not locations:
            return []

        encodings = face_recognition.face_encodings(
            rgb_image,
            known_face_locations=locations,
            num_jitters=self.num_jitters
        )
        if self.with_landmarks:
            landmarks = face_recognition.face_landmarks(rgb_image, face_locations=locations)
        else:
            landmarks = [{} for _ in locations]

        return [
            Detection(box=tuple(int(v) for v in location),
                      embedding=np.asarray(encoding, dtype=np.float64),
                      landmarks=points)
            for location, encoding, points in zip(locations, encodings, landmarks)
        ]


class FacenetEmbedder(Embedder):
    """FaceNet (InceptionResnetV1, VGGFace2 weights) embeddings with MTCNN alignment."""

    embedding_size = 512
    LANDMARK_NAMES = ('left_eye', 'right_eye', 'nose_tip', 'mouth_left', 'mouth_right')

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.device = torch.device('cuda' if torch.cuda.is_available() and
                                   self.config.get('use_gpu', False)
                                   else 'cpu')
        self.pretrained = self.config.get('pretrained', 'vggface2')
        self.min_face_size = self.config.get('min_face_size', 20)
        self.model = None
        self.mtcnn = None

    def _load_model(self):
        self.model = InceptionResnetV1(pretrained=self.pretrained).eval().to(self.device)
        self.mtcnn = MTCNN(
            image_size=160, margin=0, min_face_size=self.min_face_size,
            thresholds=[0.6, 0.7, 0.7], factor=0.709, post_process=True,
            keep_all=True, device=self.device
        )
        logger.info(f"FaceNet model loaded on {self.device}")

    def _detect_faces(self, rgb_image: np.ndarray) -> List[Detection]:
        pil_image = Image.fromarray(rgb_image)

        boxes, _, points = self.mtcnn.detect(pil_image, landmarks=True)
        if boxes is None or len(boxes) == 0:
            return []

        faces = self.mtcnn.extract(pil_image, boxes, None)
        if faces is None:
            return []
        if faces.dim() == 3:
            faces = faces.unsqueeze(0)

        with torch.no_grad():
            embeddings = self.model(faces.to(self.device)).cpu().numpy()

        detections = []
        for box, embedding, face_points in zip(boxes, embeddings, points):
            x1, y1, x2, y2 = (int(round(v)) for v in box)
            landmarks = {
                name: [(int(round(x)), int(round(y)))]
                for name, (x, y) in zip(self.LANDMARK_NAMES, face_points)
            }
            detections.append(Detection(
                box=(y1, x2, y2, x1),
                embedding=embedding.astype(np.float64),
                landmarks=landmarks
            ))
        return detections


EMBEDDERS = {
    'face_recognition': FaceRecognitionEmbedder,
    'facenet': FacenetEmbedder,
}


def create_embedder(config: Dict[str, Any]) -> Embedder:
    """
    Build the embedder named by ``embedding.model``.

    Raises:
        EmbedderLoadFailure: For an unknown model name
    """
    model_name = config.get('embedding', {}).get('model', 'face_recognition')
    embedder_class = EMBEDDERS.get(str(model_name).lower())
    if embedder_class is None:
        raise EmbedderLoadFailure(f"Unsupported embedding model: {model_name}")
    logger.info(f"Using embedding model: {model_name}")
    return embedder_class(config)

