"""描画サーフェスとエンコーダーモジュール

正規化RGBAバイト列をサーフェスに書き込み、JPEG/PNG等にエンコードする。
既定の実装はPillowを使用する。
"""

from __future__ import annotations

import io
import logging
from typing import Protocol

from PIL import Image

from imgconv.converter.base import JPEG_FORMAT, PNG_FORMAT, FormatDescriptor

logger = logging.getLogger(__name__)

# MIMEタイプとPillowの保存形式名の対応
_PIL_FORMATS: dict[str, str] = {
    JPEG_FORMAT.mime_type: "JPEG",
    PNG_FORMAT.mime_type: "PNG",
}


class SurfaceEncoder(Protocol):
    """サーフェス作成・書き込み・エンコードのインターフェース"""

    def create_surface(self, width: int, height: int) -> Image.Image:
        """指定サイズのサーフェスを作成する"""
        ...

    def write_pixels(self, surface: Image.Image, rgba: bytes) -> None:
        """正規化RGBAバイト列をサーフェスに書き込む"""
        ...

    def encode(
        self,
        surface: Image.Image,
        target_format: FormatDescriptor,
        quality: int,
    ) -> bytes | None:
        """サーフェスをエンコードする（失敗時はNone）"""
        ...


class PillowSurfaceEncoder:
    """Pillowによるサーフェスエンコーダー

    JPEGはアルファを持てないため、RGBに変換してから保存する。
    """

    def create_surface(self, width: int, height: int) -> Image.Image:
        """RGBAサーフェスを作成する

        Args:
            width: 幅（ピクセル）
            height: 高さ（ピクセル）

        Returns:
            透明で初期化されたRGBA画像
        """
        return Image.new("RGBA", (width, height))

    def write_pixels(self, surface: Image.Image, rgba: bytes) -> None:
        """正規化RGBAバイト列をサーフェスに書き込む

        Args:
            surface: 書き込み先サーフェス
            rgba: 長さ width * height * 4 のバイト列

        Raises:
            ValueError: バイト列の長さがサーフェスと一致しない場合
        """
        width, height = surface.size
        if len(rgba) != width * height * 4:
            raise ValueError(
                f"ピクセル数が一致しません: 期待値 {width * height * 4}、実際 {len(rgba)}"
            )
        surface.frombytes(rgba)

    def encode(
        self,
        surface: Image.Image,
        target_format: FormatDescriptor,
        quality: int,
    ) -> bytes | None:
        """サーフェスをエンコードする

        Args:
            surface: エンコード対象
            target_format: 出力フォーマット（JPEGまたはPNG）
            quality: JPEG品質（1〜100、PNGでは未使用）

        Returns:
            エンコード済みバイト列。エンコーダーが結果を返さなかった場合はNone
        """
        pil_format = _PIL_FORMATS.get(target_format.mime_type)
        if pil_format is None:
            logger.warning(f"未対応の出力形式です: {target_format.mime_type}")
            return None

        buffer = io.BytesIO()
        try:
            if pil_format == "JPEG":
                image = surface if surface.mode == "RGB" else surface.convert("RGB")
                image.save(buffer, "JPEG", quality=quality)
            else:
                surface.save(buffer, "PNG")
        except (OSError, ValueError) as e:
            logger.warning(f"エンコードに失敗しました ({pil_format}): {e}")
            return None

        encoded = buffer.getvalue()
        return encoded or None
