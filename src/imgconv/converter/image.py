"""TIFF画像変換モジュール

TIFF画像をデコードし、どの環境でも表示できるJPEG（またはPNG）に変換する。
TIFFを描画できる環境は機能検出ではなく固定の許可リストで判定する。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from enum import Enum

from imgconv.capabilities import PlatformCapabilities
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
    emit_progress,
)
from imgconv.converter.errors import ConversionError, EncodeError
from imgconv.converter.samples import decode_samples
from imgconv.converter.surface import PillowSurfaceEncoder, SurfaceEncoder
from imgconv.converter.tiff import TiffDecoder
from imgconv.messages import IdentityMessages, MessageProvider

logger = logging.getLogger(__name__)

TIFF_FORMATS = frozenset(
    {
        FormatDescriptor(mime_type="image/tiff", extension="tiff"),
        FormatDescriptor(mime_type="image/tif", extension="tif"),
    }
)

# TIFFをネイティブに描画できる環境
DEFAULT_NATIVE_TIFF_ENVIRONMENTS = ("safari",)


class QualityPreset(Enum):
    """JPEG出力時の品質プリセット

    TIFF変換の既定はMAXIMUM（最大品質）とする。
    """

    MAXIMUM = 100
    HIGH = 95
    MEDIUM = 85
    LOW = 70


class OutputFormat(Enum):
    """画像出力形式

    TiffConverterの出力形式を定義する列挙型。
    """

    JPEG = "jpeg"
    PNG = "png"

    @property
    def descriptor(self) -> FormatDescriptor:
        """対応するFormatDescriptorを返す"""
        return JPEG_FORMAT if self is OutputFormat.JPEG else PNG_FORMAT


class TiffConverter(BaseConverter):
    """TIFF変換クラス

    先頭IFDのみをデコードし、正規化RGBAを経由してエンコードする。

    Attributes:
        output_format: 出力形式（JPEGまたはPNG）
        quality: JPEG出力時の品質値（1-100）
    """

    def __init__(
        self,
        capabilities: PlatformCapabilities,
        native_environments: Iterable[str] = DEFAULT_NATIVE_TIFF_ENVIRONMENTS,
        output_format: OutputFormat = OutputFormat.JPEG,
        quality: QualityPreset | int = QualityPreset.MAXIMUM,
        encoder: SurfaceEncoder | None = None,
        messages: MessageProvider | None = None,
        decoder: TiffDecoder | None = None,
    ) -> None:
        """TiffConverterを初期化する

        Args:
            capabilities: 実行環境の描画能力
            native_environments: TIFFをネイティブに描画できる環境名の許可リスト
            output_format: 出力形式（デフォルトはJPEG）
            quality: JPEG品質（プリセットまたは1-100の整数）
            encoder: サーフェスエンコーダー（Noneの場合はPillowを使用）
            messages: 進捗メッセージ提供元
            decoder: TIFFデコーダー（Noneの場合は既定の上限ピクセル数で生成）
        """
        self._capabilities = capabilities
        self._native_environments = frozenset(env.lower() for env in native_environments)
        self._output_format = output_format
        if isinstance(quality, QualityPreset):
            self._quality = quality.value
        else:
            self._quality = quality
        self._encoder = encoder or PillowSurfaceEncoder()
        self._messages = messages or IdentityMessages()
        self._decoder = decoder or TiffDecoder()

    @property
    def name(self) -> str:
        return "TIFF"

    @property
    def supported_formats(self) -> frozenset[FormatDescriptor]:
        return TIFF_FORMATS

    @property
    def output_format(self) -> OutputFormat:
        """出力形式を返す"""
        return self._output_format

    @property
    def quality(self) -> int:
        """JPEG品質値を返す"""
        return self._quality

    async def should_convert(self, blob: RawImageBlob) -> bool:
        """実行環境が許可リストに含まれない場合にTrueを返す"""
        return self._capabilities.name.lower() not in self._native_environments

    async def convert(
        self,
        blob: RawImageBlob,
        source_locator: str,
        progress: ProgressSink | None = None,
    ) -> ConversionResult:
        """TIFF画像を変換する

        Args:
            blob: 変換元のBlob
            source_locator: 変換元の所在
            progress: 進捗通知先

        Returns:
            変換結果

        Raises:
            DecodeError: TIFFコンテナが不正、IFDが存在しない、または画像が大きすぎる場合
            UnsupportedSampleLayoutError: 未対応のビット深度・チャンネル構成の場合
            EncodeError: エンコーダーが結果を返さなかった場合
        """
        emit_progress(
            progress,
            ProgressEvent(
                is_converting=True,
                message=self._messages.translate("loading.tiff.converting"),
                format_hint="tiff",
                loaded_bytes=blob.size,
                total_bytes=blob.size,
                progress_percent=0,
            ),
        )

        try:
            rgba, width, height = await asyncio.to_thread(self._decode, blob.data)
        except ConversionError as e:
            logger.error(f"TIFF変換に失敗しました: {source_locator}: {e}")
            raise

        emit_progress(
            progress,
            ProgressEvent(
                is_converting=True,
                message=self._messages.translate("loading.tiff.decoded"),
                format_hint="tiff",
                progress_percent=50,
            ),
        )

        target = self._output_format.descriptor
        emit_progress(
            progress,
            ProgressEvent(
                is_converting=True,
                message=self._messages.translate(
                    "loading.tiff.encoding", format=target.extension.upper()
                ),
                format_hint="tiff",
                progress_percent=75,
            ),
        )

        encoded = await asyncio.to_thread(self._encode, rgba, width, height, target)
        if not encoded:
            logger.error(f"TIFF変換に失敗しました: {source_locator}: エンコード結果がありません")
            raise EncodeError(f"Failed to convert TIFF to {target.mime_type}", format_name="TIFF")

        return ConversionResult(
            output_handle=OutputHandle(encoded, target),
            converted_size_bytes=len(encoded),
            original_size_bytes=blob.size,
            output_format=target,
        )

    def _decode(self, data: bytes) -> tuple[bytes, int, int]:
        """先頭IFDを正規化RGBAにデコードする

        Returns:
            (RGBAバイト列, 幅, 高さ) のタプル
        """
        buffer = self._decoder.decode(data)
        return decode_samples(buffer), buffer.width, buffer.height

    def _encode(
        self,
        rgba: bytes,
        width: int,
        height: int,
        target: FormatDescriptor,
    ) -> bytes | None:
        """正規化RGBAをサーフェスに描画してエンコードする"""
        surface = self._encoder.create_surface(width, height)
        try:
            self._encoder.write_pixels(surface, rgba)
            return self._encoder.encode(surface, target, self._quality)
        finally:
            surface.close()
