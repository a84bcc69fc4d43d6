"""Core signature and face matching functionality"""
from .face_detection import (
    DetectionConfig,
    EmbeddingProvider,
    FaceRecognitionProvider,
    extract_descriptor
)
from .matching import aggregate_faces, aggregate_signatures, euclidean_distance
from .signature import compare_signatures, format_similarity
from .verification import VerificationService

__all__ = [
    'DetectionConfig',
    'EmbeddingProvider',
    'FaceRecognitionProvider',
    'extract_descriptor',
    'aggregate_faces',
    'aggregate_signatures',
    'euclidean_distance',
    'compare_signatures',
    'format_similarity',
    'VerificationService'
]
