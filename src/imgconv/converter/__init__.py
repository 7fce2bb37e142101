"""Converter module for imgconv.

画像形式変換機能を提供するモジュール。
HEIC/HEIF、TIFFなどの表示できない形式を統一されたインターフェースで変換する。
"""

from imgconv.converter.base import (
    JPEG_FORMAT,
    PNG_FORMAT,
    BaseConverter,
    ConversionResult,
    FormatDescriptor,
    OutputHandle,
    ProgressEvent,
    ProgressSink,
    RawImageBlob,
)
from imgconv.converter.errors import (
    ConversionError,
    ConversionFailedError,
    ConversionTimeoutError,
    DecodeError,
    EncodeError,
    UnsupportedSampleLayoutError,
)
from imgconv.converter.heic import HeicConverter, PillowHeifDecoder
from imgconv.converter.image import OutputFormat, QualityPreset, TiffConverter
from imgconv.converter.manager import (
    ConversionManager,
    ConversionStatus,
    ConversionSummary,
    ConversionTask,
    Detection,
    DetectionOutcome,
    create_manager,
    get_default_manager,
)
from imgconv.converter.registry import ConversionRegistry
from imgconv.converter.samples import SampleBuffer, SampleFormat, decode_samples

__all__ = [
    "BaseConverter",
    "ConversionError",
    "ConversionFailedError",
    "ConversionManager",
    "ConversionRegistry",
    "ConversionResult",
    "ConversionStatus",
    "ConversionSummary",
    "ConversionTask",
    "ConversionTimeoutError",
    "DecodeError",
    "Detection",
    "DetectionOutcome",
    "EncodeError",
    "FormatDescriptor",
    "HeicConverter",
    "JPEG_FORMAT",
    "OutputFormat",
    "OutputHandle",
    "PNG_FORMAT",
    "PillowHeifDecoder",
    "ProgressEvent",
    "ProgressSink",
    "QualityPreset",
    "RawImageBlob",
    "SampleBuffer",
    "SampleFormat",
    "TiffConverter",
    "UnsupportedSampleLayoutError",
    "create_manager",
    "decode_samples",
    "get_default_manager",
]
