"""ピクセルサンプルデコードモジュール

8/16/32ビット（整数・浮動小数点）のサンプル列を、
1ピクセル4バイト（R,G,B,A）の正規化RGBAバイト列に変換する。
I/Oや非同期処理は含まない純粋関数として実装する。

丸めは四捨五入（floor(x + 0.5)）で統一する。
例: 16ビット値32896 -> 128、浮動小数点0.5 -> 128
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from imgconv.converter.errors import UnsupportedSampleLayoutError

# 16ビット -> 8ビットの除数（65535 / 255）
UINT16_DIVISOR = 257

# 32ビット整数 -> 8ビットの除数（4294967295 / 255）
UINT32_DIVISOR = 16843009

# 対応するチャンネル数（1=グレー、2=グレー+アルファ、3=RGB、4=RGBA）
SUPPORTED_CHANNEL_COUNTS = (1, 2, 3, 4)


class SampleFormat(Enum):
    """サンプルのビット深度と数値表現

    値はビット数と数値種別の組を表す。
    """

    UINT8 = (8, "uint")
    UINT16 = (16, "uint")
    UINT32 = (32, "uint")
    FLOAT32 = (32, "float")

    @property
    def bits(self) -> int:
        """1サンプルあたりのビット数を返す"""
        return self.value[0]

    @classmethod
    def from_tiff(cls, bits_per_sample: int, sample_format: int = 1) -> SampleFormat:
        """TIFFタグの値からサンプル形式を決定する

        Args:
            bits_per_sample: BitsPerSampleタグの値
            sample_format: SampleFormatタグの値（1=符号なし整数、3=浮動小数点）

        Returns:
            対応するサンプル形式

        Raises:
            UnsupportedSampleLayoutError: 未対応の組み合わせの場合
        """
        if sample_format == 3 and bits_per_sample == 32:
            return cls.FLOAT32
        if sample_format == 1:
            for member in (cls.UINT8, cls.UINT16, cls.UINT32):
                if member.bits == bits_per_sample:
                    return member
        raise UnsupportedSampleLayoutError(
            f"未対応のサンプル形式です: {bits_per_sample}ビット (SampleFormat={sample_format})"
        )


@dataclass(frozen=True)
class SampleBuffer:
    """フォーマット固有デコーダーが出力する生サンプル列

    生成時にレイアウトを検証するため、生成済みのSampleBufferは
    必ず decode_samples() で変換できる。

    Attributes:
        width: 画像の幅（ピクセル）
        height: 画像の高さ（ピクセル）
        sample_format: サンプル形式
        channel_count: 1ピクセルあたりのチャンネル数
        data: サンプル列（長さは width * height * channel_count）
    """

    width: int
    height: int
    sample_format: SampleFormat
    channel_count: int
    data: Sequence[int] | Sequence[float] | bytes

    def __post_init__(self) -> None:
        if not isinstance(self.sample_format, SampleFormat):
            raise UnsupportedSampleLayoutError(f"未対応のサンプル形式です: {self.sample_format}")
        if self.channel_count not in SUPPORTED_CHANNEL_COUNTS:
            raise UnsupportedSampleLayoutError(f"未対応のチャンネル数です: {self.channel_count}")
        if self.width < 1 or self.height < 1:
            raise UnsupportedSampleLayoutError(
                f"画像サイズが不正です: {self.width}x{self.height}"
            )
        expected = self.width * self.height * self.channel_count
        if len(self.data) != expected:
            raise UnsupportedSampleLayoutError(
                f"サンプル数が一致しません: 期待値 {expected}、実際 {len(self.data)}"
            )

    @property
    def pixel_count(self) -> int:
        """ピクセル数を返す"""
        return self.width * self.height

    @property
    def has_alpha(self) -> bool:
        """アルファチャンネルを持つかどうかを返す"""
        return self.channel_count in (2, 4)


def _clamp(value: int) -> int:
    """0〜255の範囲に丸める"""
    if value < 0:
        return 0
    if value > 255:
        return 255
    return value


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _scale_uint8(value: float) -> int:
    return _clamp(int(value))


def _scale_uint16(value: float) -> int:
    return _clamp(_round_half_up(value / UINT16_DIVISOR))


def _scale_uint32(value: float) -> int:
    return _clamp(_round_half_up(value / UINT32_DIVISOR))


def _scale_float(value: float) -> int:
    if math.isnan(value):
        return 0
    if math.isinf(value):
        return 255 if value > 0 else 0
    return _clamp(_round_half_up(value * 255))


_SCALERS: dict[SampleFormat, Callable[[float], int]] = {
    SampleFormat.UINT8: _scale_uint8,
    SampleFormat.UINT16: _scale_uint16,
    SampleFormat.UINT32: _scale_uint32,
    SampleFormat.FLOAT32: _scale_float,
}


def scale_sample(value: float, sample_format: SampleFormat) -> int:
    """単一サンプルを8ビット値に変換する

    Args:
        value: サンプル値
        sample_format: サンプル形式

    Returns:
        0〜255の値
    """
    return _SCALERS[sample_format](value)


def decode_samples(buffer: SampleBuffer) -> bytes:
    """サンプル列を正規化RGBAバイト列に変換する

    - チャンネル数が3未満の場合、G/BはRの値を複製する（グレースケール展開）
    - アルファはチャンネル数2または4のときのみ最終チャンネルから取り、
      それ以外は255とする
    - すべての出力値は0〜255に収める

    Args:
        buffer: 変換元のサンプル列

    Returns:
        長さ width * height * 4 のRGBAバイト列
    """
    channels = buffer.channel_count
    pixel_count = buffer.pixel_count

    if buffer.sample_format is SampleFormat.UINT8 and isinstance(buffer.data, (bytes, bytearray)):
        values = bytes(buffer.data)
    else:
        scale = _SCALERS[buffer.sample_format]
        values = bytes(scale(v) for v in buffer.data)

    rgba = bytearray(pixel_count * 4)

    if channels >= 3:
        rgba[0::4] = values[0::channels]
        rgba[1::4] = values[1::channels]
        rgba[2::4] = values[2::channels]
    else:
        gray = values[0::channels]
        rgba[0::4] = gray
        rgba[1::4] = gray
        rgba[2::4] = gray

    if buffer.has_alpha:
        rgba[3::4] = values[channels - 1 :: channels]
    else:
        rgba[3::4] = b"\xff" * pixel_count

    return bytes(rgba)
