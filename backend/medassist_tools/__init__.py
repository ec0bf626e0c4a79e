from .capabilities import Capabilities, probe_capabilities
from .extraction import (
    PLACEHOLDER_MARKER,
    ExtractionCascade,
    ExtractionResult,
    UploadIOError,
    build_placeholder,
    file_family,
    has_signal,
    is_placeholder_text,
)
from .ocr import OcrEngine, OcrResult
from .preprocessing import ImagePreprocessor, PreprocessingOptions
from .registry import StrategyDefinition, StrategyRegistry
from .uploads import UploadRejected, normalize_upload_filename, store_upload, validate_upload

__all__ = [
    "PLACEHOLDER_MARKER",
    "Capabilities",
    "ExtractionCascade",
    "ExtractionResult",
    "ImagePreprocessor",
    "OcrEngine",
    "OcrResult",
    "PreprocessingOptions",
    "StrategyDefinition",
    "StrategyRegistry",
    "UploadIOError",
    "UploadRejected",
    "build_placeholder",
    "file_family",
    "has_signal",
    "is_placeholder_text",
    "normalize_upload_filename",
    "probe_capabilities",
    "store_upload",
    "validate_upload",
]
