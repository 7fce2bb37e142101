"""TIFFデコーダーモジュール

tifffileでTIFFコンテナを読み込み、先頭ページのピクセルデータを
SampleBufferとして取り出す機能を提供する。

解凍（LZW/Deflate/PackBits等）とPredictorの復元はtifffileに任せ、
ここでは色空間の解釈とサンプル配置の検証のみを行う。
"""

from __future__ import annotations

import io
import logging

import numpy as np
import tifffile
from PIL import Image

from imgconv.converter.errors import ConversionError, DecodeError, UnsupportedSampleLayoutError
from imgconv.converter.samples import SampleBuffer, SampleFormat

logger = logging.getLogger(__name__)

# タグ番号
TAG_IMAGE_WIDTH = 256
TAG_IMAGE_LENGTH = 257
TAG_PHOTOMETRIC = 262
TAG_STRIP_OFFSETS = 273
TAG_ROWS_PER_STRIP = 278
TAG_STRIP_BYTE_COUNTS = 279
TAG_TILE_WIDTH = 322
TAG_TILE_LENGTH = 323
TAG_TILE_OFFSETS = 324
TAG_TILE_BYTE_COUNTS = 325

# 色空間
PHOTOMETRIC_WHITE_IS_ZERO = 0
PHOTOMETRIC_BLACK_IS_ZERO = 1
PHOTOMETRIC_RGB = 2
PHOTOMETRIC_PALETTE = 3

# 符号なし整数でなければならないタグ（サイズ・オフセット・バイト数）
_INTEGER_TAGS = (
    TAG_IMAGE_WIDTH,
    TAG_IMAGE_LENGTH,
    TAG_STRIP_OFFSETS,
    TAG_ROWS_PER_STRIP,
    TAG_STRIP_BYTE_COUNTS,
    TAG_TILE_WIDTH,
    TAG_TILE_LENGTH,
    TAG_TILE_OFFSETS,
    TAG_TILE_BYTE_COUNTS,
)

# BYTE, SHORT, LONG, IFD, LONG8, IFD8
_INTEGER_FIELD_TYPES = frozenset({1, 3, 4, 13, 16, 18})

_PLANAR_SEPARATE = 2


class TiffDecoder:
    """TIFFデコーダー

    先頭ページのみを対象とし、2ページ目以降は無視する。
    tifffileが送出する例外はすべてDecodeErrorに変換する。
    """

    def __init__(self, max_pixels: int | None = None) -> None:
        """TiffDecoderを初期化する

        Args:
            max_pixels: 許容する最大ピクセル数（Noneの場合はPillowのMAX_IMAGE_PIXELSに従う）
        """
        self._max_pixels = max_pixels

    @property
    def max_pixels(self) -> int | None:
        """許容する最大ピクセル数を返す（Noneは無制限）"""
        if self._max_pixels is not None:
            return self._max_pixels
        return Image.MAX_IMAGE_PIXELS

    def decode(self, data: bytes) -> SampleBuffer:
        """先頭ページのピクセルデータをSampleBufferとして取り出す

        Args:
            data: TIFF形式の画像バイト列

        Returns:
            生サンプル列

        Raises:
            DecodeError: コンテナが不正、ページが存在しない、または画像が大きすぎる場合
            UnsupportedSampleLayoutError: 未対応のサンプル配置の場合
        """
        try:
            with tifffile.TiffFile(io.BytesIO(data)) as tif:
                page_count = len(tif.pages)
                if page_count == 0:
                    raise DecodeError(
                        "Failed to decode TIFF image: IFDが存在しません", format_name="TIFF"
                    )
                if page_count > 1:
                    logger.debug(f"複数のページを検出しました（{page_count}件）。先頭のみを使用します")
                return self._read_page(tif.pages[0])
        except ConversionError:
            raise
        except Exception as e:
            raise DecodeError(
                f"Failed to decode TIFF image: {e}", format_name="TIFF", cause=e
            ) from e

    def _read_page(self, page: tifffile.TiffPage) -> SampleBuffer:
        """1ページ分のピクセルデータを読み取る"""
        self._check_tag_types(page)

        width = page.imagewidth
        height = page.imagelength
        spp = page.samplesperpixel
        if width < 1 or height < 1:
            raise DecodeError(f"画像サイズが不正です: {width}x{height}", format_name="TIFF")

        max_pixels = self.max_pixels
        if max_pixels is not None and width * height > max_pixels:
            raise DecodeError(
                f"画像サイズが上限を超えています: {width}x{height} (上限 {max_pixels}ピクセル)",
                format_name="TIFF",
            )

        photometric = self._photometric(page)
        if photometric == PHOTOMETRIC_PALETTE:
            return self._expand_palette(page, width, height)

        sample_format = SampleFormat.from_tiff(page.bitspersample, int(page.sampleformat))

        if photometric in (PHOTOMETRIC_WHITE_IS_ZERO, PHOTOMETRIC_BLACK_IS_ZERO):
            if spp > 2:
                raise UnsupportedSampleLayoutError(
                    f"グレースケールのチャンネル数が不正です: {spp}", format_name="TIFF"
                )
        elif photometric == PHOTOMETRIC_RGB:
            if spp not in (3, 4):
                raise UnsupportedSampleLayoutError(
                    f"RGBのチャンネル数が不正です: {spp}", format_name="TIFF"
                )
        else:
            raise UnsupportedSampleLayoutError(
                f"未対応の色空間です: Photometric={photometric}", format_name="TIFF"
            )

        pixels = self._pixels(page, width, height, spp)
        if photometric == PHOTOMETRIC_WHITE_IS_ZERO:
            if sample_format is SampleFormat.FLOAT32:
                pixels[..., 0] = 1.0 - pixels[..., 0]
            else:
                pixels[..., 0] = ((1 << sample_format.bits) - 1) - pixels[..., 0]

        return SampleBuffer(
            width=width,
            height=height,
            sample_format=sample_format,
            channel_count=spp,
            data=self._flatten(pixels, sample_format),
        )

    def _check_tag_types(self, page: tifffile.TiffPage) -> None:
        """サイズ・オフセット系のタグが符号なし整数型であることを確認する"""
        for code in _INTEGER_TAGS:
            tag = page.tags.get(code)
            if tag is not None and int(tag.dtype) not in _INTEGER_FIELD_TYPES:
                raise DecodeError(
                    f"タグ{code}の型が不正です: {tag.dtype}", format_name="TIFF"
                )

    def _photometric(self, page: tifffile.TiffPage) -> int:
        """Photometricタグの値を返す（省略時はチャンネル数から推定）"""
        tag = page.tags.get(TAG_PHOTOMETRIC)
        if tag is None:
            return PHOTOMETRIC_RGB if page.samplesperpixel >= 3 else PHOTOMETRIC_BLACK_IS_ZERO
        return int(tag.value)

    def _pixels(self, page: tifffile.TiffPage, width: int, height: int, spp: int) -> np.ndarray:
        """ページをデコードし、(高さ, 幅, チャンネル) 配列に整形する"""
        array = page.asarray()
        if array.size != width * height * spp:
            raise DecodeError(
                f"ピクセル数が画像サイズと一致しません: {array.size}", format_name="TIFF"
            )
        if spp > 1 and int(page.planarconfig) == _PLANAR_SEPARATE:
            return np.moveaxis(array.reshape(spp, height, width), 0, -1).copy()
        return array.reshape(height, width, spp).copy()

    def _flatten(self, pixels: np.ndarray, sample_format: SampleFormat) -> bytes | list:
        """配列をSampleBuffer用のサンプル列に変換する"""
        if sample_format is SampleFormat.UINT8:
            return pixels.astype(np.uint8).tobytes()
        return pixels.reshape(-1).tolist()

    def _expand_palette(
        self,
        page: tifffile.TiffPage,
        width: int,
        height: int,
    ) -> SampleBuffer:
        """パレットインデックスを16ビットRGBサンプルに展開する"""
        if page.samplesperpixel != 1:
            raise UnsupportedSampleLayoutError(
                "パレット画像のチャンネル数が不正です", format_name="TIFF"
            )
        color_map = page.colormap
        if color_map is None:
            raise DecodeError("カラーマップが不正です", format_name="TIFF")

        indices = self._pixels(page, width, height, 1).reshape(-1)
        if indices.max() >= color_map.shape[-1]:
            raise DecodeError("カラーマップの範囲外のインデックスがあります", format_name="TIFF")

        rgb = np.asarray(color_map, dtype=np.uint16)[:, indices].T
        return SampleBuffer(
            width=width,
            height=height,
            sample_format=SampleFormat.UINT16,
            channel_count=3,
            data=rgb.reshape(-1).tolist(),
        )
