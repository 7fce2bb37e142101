"""HEIC/HEIF変換モジュール

HEIC/HEIF画像をJPEGに変換するConverterと、その外部デコード機能を提供する。
デコードバックエンド（pillow-heif）は初回デコード時に読み込む。
"""

from __future__ import annotations

import asyncio
import functools
import io
import logging
from dataclasses import dataclass
from typing import Protocol

from PIL import Image

from imgconv.capabilities import PlatformCapabilities
from imgconv.converter.base import (
    JPEG_FORMAT,
    BaseConverter,
    ConversionResult,
    FormatDescriptor,
    OutputHandle,
    ProgressEvent,
    ProgressSink,
    RawImageBlob,
    emit_progress,
)
from imgconv.converter.errors import ConversionFailedError, DecodeError
from imgconv.messages import IdentityMessages, MessageProvider

logger = logging.getLogger(__name__)

HEIC_FORMATS = frozenset(
    {
        FormatDescriptor(mime_type="image/heic", extension="heic"),
        FormatDescriptor(mime_type="image/heif", extension="heif"),
    }
)


@dataclass(frozen=True)
class HeicDecodeResult:
    """HEICデコード結果

    Attributes:
        handle: 変換後データへのハンドル
        converted_size_bytes: 変換後のサイズ（バイト）
        output_format: 出力フォーマット
        original_size_bytes: 変換前のサイズ（バイト）
    """

    handle: OutputHandle
    converted_size_bytes: int
    output_format: FormatDescriptor
    original_size_bytes: int


class HeicDecodeCapability(Protocol):
    """HEICデコード機能のインターフェース"""

    def is_natively_supported(self) -> bool:
        """実行環境がHEICをネイティブに描画できるかを返す"""
        ...

    def decode(self, blob: RawImageBlob, source_locator: str) -> HeicDecodeResult:
        """HEIC画像をデコードし、表示可能な形式に変換する"""
        ...


@functools.cache
def _load_heif_backend() -> None:
    """pillow-heifを読み込み、PillowにHEIFオープナーを登録する

    成功時のみ結果がキャッシュされるため、失敗した場合は次回呼び出しで再試行する。

    Raises:
        DecodeError: pillow-heifがインストールされていない場合
    """
    try:
        from pillow_heif import register_heif_opener
    except ImportError as e:
        raise DecodeError(
            "pillow-heif がインストールされていません", format_name="HEIC", cause=e
        ) from e

    register_heif_opener()
    logger.debug("HEIFデコードバックエンドを読み込みました")


class PillowHeifDecoder:
    """pillow-heifによるHEICデコード機能

    Attributes:
        quality: 出力JPEGの品質（1〜100）
    """

    def __init__(self, capabilities: PlatformCapabilities, quality: int = 95) -> None:
        """PillowHeifDecoderを初期化する

        Args:
            capabilities: 実行環境の描画能力
            quality: 出力JPEGの品質
        """
        self._capabilities = capabilities
        self.quality = quality

    def is_natively_supported(self) -> bool:
        """実行環境がHEIC/HEIFをネイティブに描画できるかを返す"""
        return self._capabilities.natively_renders(
            "image/heic"
        ) and self._capabilities.natively_renders("image/heif")

    def decode(self, blob: RawImageBlob, source_locator: str) -> HeicDecodeResult:
        """HEIC画像をJPEGに変換する

        Args:
            blob: 変換元のBlob
            source_locator: 変換元の所在（ログ出力用）

        Returns:
            デコード結果

        Raises:
            DecodeError: バックエンドが利用できない、またはデコードに失敗した場合
        """
        _load_heif_backend()

        buffer = io.BytesIO()
        try:
            with Image.open(io.BytesIO(blob.data)) as image:
                image.load()
                rgb = image if image.mode == "RGB" else image.convert("RGB")
                rgb.save(buffer, "JPEG", quality=self.quality)
        except (OSError, ValueError) as e:
            raise DecodeError(
                f"HEIC画像のデコードに失敗しました: {source_locator}: {e}",
                format_name="HEIC",
                cause=e,
            ) from e

        data = buffer.getvalue()
        return HeicDecodeResult(
            handle=OutputHandle(data, JPEG_FORMAT),
            converted_size_bytes=len(data),
            output_format=JPEG_FORMAT,
            original_size_bytes=blob.size,
        )


class HeicConverter(BaseConverter):
    """HEIC/HEIF変換クラス

    実行環境がHEICをネイティブに描画できない場合のみ変換を行う。
    変換処理そのものは外部デコード機能に委譲する。
    """

    def __init__(
        self,
        decoder: HeicDecodeCapability,
        messages: MessageProvider | None = None,
    ) -> None:
        """HeicConverterを初期化する

        Args:
            decoder: HEICデコード機能
            messages: 進捗メッセージ提供元（Noneの場合はキーをそのまま使用）
        """
        self._decoder = decoder
        self._messages = messages or IdentityMessages()

    @property
    def name(self) -> str:
        return "HEIC"

    @property
    def supported_formats(self) -> frozenset[FormatDescriptor]:
        return HEIC_FORMATS

    async def should_convert(self, blob: RawImageBlob) -> bool:
        """実行環境がHEICを描画できない場合にTrueを返す"""
        return not self._decoder.is_natively_supported()

    async def convert(
        self,
        blob: RawImageBlob,
        source_locator: str,
        progress: ProgressSink | None = None,
    ) -> ConversionResult:
        """HEIC画像を変換する

        Args:
            blob: 変換元のBlob
            source_locator: 変換元の所在
            progress: 進捗通知先

        Returns:
            変換結果

        Raises:
            ConversionFailedError: デコードに失敗した場合
        """
        emit_progress(
            progress,
            ProgressEvent(
                is_converting=True,
                message=self._messages.translate("loading.heic.converting"),
                format_hint="heic",
                loaded_bytes=blob.size,
                total_bytes=blob.size,
                progress_percent=100,
            ),
        )

        try:
            result = await asyncio.to_thread(self._decoder.decode, blob, source_locator)
        except Exception as e:
            logger.error(f"HEIC変換に失敗しました: {source_locator}: {e}")
            raise ConversionFailedError(
                f"HEIC conversion failed: {e}", format_name="HEIC", cause=e
            ) from e

        return ConversionResult(
            output_handle=result.handle,
            converted_size_bytes=result.converted_size_bytes,
            original_size_bytes=result.original_size_bytes,
            output_format=result.output_format,
        )
