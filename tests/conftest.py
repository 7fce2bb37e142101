"""共通テストフィクスチャ

テスト用のTIFFバイト列を組み立てるヘルパーを提供する。
不正なタグ型などtifffileでは書き出せないTIFFも作れるよう、IFDを直接組み立てる。
"""

from __future__ import annotations

import io
import struct
from collections.abc import Callable

import pytest
from PIL import Image

# エントリ型: (型番号, structフォーマット文字, バイト数)
_SHORT = (3, "H", 2)
_LONG = (4, "I", 4)


def build_tiff(
    width: int,
    height: int,
    chunks: bytes | list[bytes],
    *,
    bits_per_sample: int = 8,
    samples_per_pixel: int = 1,
    photometric: int | None = 1,
    compression: int = 1,
    byte_order: str = "<",
    rows_per_strip: int | None = None,
    tile_size: tuple[int, int] | None = None,
    predictor: int | None = None,
    sample_format: int | None = None,
    color_map: list[int] | None = None,
    extra_ifd: bool = False,
    field_types: dict[int, int] | None = None,
) -> bytes:
    """単一（またはextra_ifd指定時は2つ）のIFDを持つTIFFを組み立てる

    Args:
        width: 幅
        height: 高さ
        chunks: ストリップ（tile_size指定時はタイル）ごとのピクセルデータ
        bits_per_sample: ビット数
        samples_per_pixel: チャンネル数
        photometric: 色空間（Noneの場合はタグを省略）
        compression: 圧縮方式
        byte_order: "<"（II）または">"（MM）
        rows_per_strip: 1ストリップあたりの行数
        tile_size: タイルの幅と高さ
        predictor: Predictorタグの値
        sample_format: SampleFormatタグの値
        color_map: ColorMapタグの値
        extra_ifd: 先頭IFDの後に同じ内容のIFDを連結するか
        field_types: タグ番号ごとにエントリの型番号だけを差し替える（値の格納形式は変えない）

    Returns:
        TIFFバイト列
    """
    if isinstance(chunks, bytes):
        chunks = [chunks]

    tags: dict[int, tuple[tuple[int, str, int], list[int]]] = {
        256: (_LONG, [width]),
        257: (_LONG, [height]),
        258: (_SHORT, [bits_per_sample] * samples_per_pixel),
        259: (_SHORT, [compression]),
        277: (_SHORT, [samples_per_pixel]),
    }
    if photometric is not None:
        tags[262] = (_SHORT, [photometric])
    if predictor is not None:
        tags[317] = (_SHORT, [predictor])
    if sample_format is not None:
        tags[339] = (_SHORT, [sample_format] * samples_per_pixel)
    if color_map is not None:
        tags[320] = (_SHORT, color_map)

    if tile_size is not None:
        offsets_tag, counts_tag = 324, 325
        tags[322] = (_LONG, [tile_size[0]])
        tags[323] = (_LONG, [tile_size[1]])
    else:
        offsets_tag, counts_tag = 273, 279
        tags[278] = (_LONG, [rows_per_strip or height])
    tags[offsets_tag] = (_LONG, [0] * len(chunks))
    tags[counts_tag] = (_LONG, [len(chunk) for chunk in chunks])

    def ifd_size() -> int:
        return 2 + 12 * len(tags) + 4

    def external_size() -> int:
        return sum(
            field_type[2] * len(values)
            for field_type, values in tags.values()
            if field_type[2] * len(values) > 4
        )

    ifd_count = 2 if extra_ifd else 1
    block = ifd_size() + external_size()
    data_start = 8 + block * ifd_count

    offsets = []
    position = data_start
    for chunk in chunks:
        offsets.append(position)
        position += len(chunk)
    tags[offsets_tag] = (_LONG, offsets)

    magic = b"II" if byte_order == "<" else b"MM"
    output = bytearray(magic + struct.pack(f"{byte_order}HI", 42, 8))

    for index in range(ifd_count):
        ifd_offset = 8 + block * index
        external_offset = ifd_offset + ifd_size()
        next_offset = ifd_offset + block if index + 1 < ifd_count else 0

        entries = bytearray(struct.pack(f"{byte_order}H", len(tags)))
        external = bytearray()
        for tag in sorted(tags):
            (type_id, char, size), values = tags[tag]
            packed = struct.pack(f"{byte_order}{len(values)}{char}", *values)
            if len(packed) > 4:
                value_field = struct.pack(f"{byte_order}I", external_offset + len(external))
                external.extend(packed)
            else:
                value_field = packed.ljust(4, b"\x00")
            if field_types and tag in field_types:
                type_id = field_types[tag]
            entries.extend(struct.pack(f"{byte_order}HHI", tag, type_id, len(values)))
            entries.extend(value_field)
        entries.extend(struct.pack(f"{byte_order}I", next_offset))
        output.extend(entries)
        output.extend(external)

    for chunk in chunks:
        output.extend(chunk)
    return bytes(output)


@pytest.fixture
def tiff_builder() -> Callable[..., bytes]:
    """TIFFバイト列を組み立てる関数を返すフィクスチャ"""
    return build_tiff


@pytest.fixture
def png_bytes() -> bytes:
    """2x2の赤いPNG画像のバイト列"""
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), (255, 0, 0)).save(buffer, "PNG")
    return buffer.getvalue()


@pytest.fixture
def rgb_tiff(tiff_builder: Callable[..., bytes]) -> bytes:
    """2x1のRGB 8ビット無圧縮TIFF（赤, 緑）"""
    return tiff_builder(
        2,
        1,
        bytes([255, 0, 0, 0, 255, 0]),
        samples_per_pixel=3,
        photometric=2,
    )
