"""Utility functions for image processing"""
from .image import (
    decode_base64_image,
    decode_image,
    normalize_face,
    normalize_signature
)

__all__ = [
    'decode_base64_image',
    'decode_image',
    'normalize_face',
    'normalize_signature'
]
