from photosweep.analysis.classifier import PhotoClassifier, PhotoLabels
from photosweep.analysis.features import (
    FeatureExtractor,
    Fingerprint,
    PhotoFeatures,
    compute_fingerprint,
    compute_sharpness,
)
from photosweep.analysis.similarity import SimilarityAnalyzer, SimilarityCluster

__all__ = [
    "FeatureExtractor",
    "Fingerprint",
    "PhotoClassifier",
    "PhotoFeatures",
    "PhotoLabels",
    "SimilarityAnalyzer",
    "SimilarityCluster",
    "compute_fingerprint",
    "compute_sharpness",
]
