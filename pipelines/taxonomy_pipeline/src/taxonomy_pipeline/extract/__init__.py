"""OCR extraction: provider client, answer-choice parsing, URL-keyed cache."""

from taxonomy_pipeline.extract.cache import ContentCache
from taxonomy_pipeline.extract.choices import choices_to_options, extract_choices
from taxonomy_pipeline.extract.mathpix import MathpixClient, OcrClient, escape_option_markers, normalize_image_url

__all__ = [
    "ContentCache",
    "MathpixClient",
    "OcrClient",
    "choices_to_options",
    "escape_option_markers",
    "extract_choices",
    "normalize_image_url",
]
