"""Question-type classifier adapter."""

from taxonomy_pipeline.classify.bangsoal import BangsoalClassifier
from taxonomy_pipeline.classify.client import Classifier, ClassifierResult

__all__ = ["BangsoalClassifier", "Classifier", "ClassifierResult"]
