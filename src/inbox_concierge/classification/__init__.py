"""Rule store, classification engine and reclassification convergence."""

from .buckets import DEFAULT_BUCKET_LABELS, DEFAULT_CATEGORIES, BucketIdentity, canonical_key
from .engine import ClassificationEngine, ClassificationMemory
from .reconcile import Reconciler
from .rules import RuleChange, RuleStore

__all__ = [
    "BucketIdentity",
    "ClassificationEngine",
    "ClassificationMemory",
    "DEFAULT_BUCKET_LABELS",
    "DEFAULT_CATEGORIES",
    "Reconciler",
    "RuleChange",
    "RuleStore",
    "canonical_key",
]
