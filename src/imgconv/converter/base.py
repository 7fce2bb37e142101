"""Converter基底クラスモジュール

画像フォーマット変換を行うすべてのConverterの基底クラスと共通データ型を定義する。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormatDescriptor:
    """画像フォーマットの識別子

    Registryのキーとして使用される。複数のDescriptorが同一のConverterに
    対応付けられることがある（例: image/heic と image/heif）。

    Attributes:
        mime_type: MIMEタイプ（例: "image/tiff"）
        extension: 拡張子のヒント（ドット無し小文字、例: "tiff"）
    """

    mime_type: str
    extension: str


JPEG_FORMAT = FormatDescriptor(mime_type="image/jpeg", extension="jpg")
PNG_FORMAT = FormatDescriptor(mime_type="image/png", extension="png")


@dataclass(frozen=True)
class RawImageBlob:
    """変換元の画像バイト列

    呼び出し元が所有する不変データ。変換処理中は参照のみ行い、
    変換に失敗しても内容が変更されることはない。

    Attributes:
        data: 画像のバイト列
        declared_mime_type: 呼び出し元が申告したMIMEタイプ（判定には使用しない）
    """

    data: bytes
    declared_mime_type: str | None = None

    @property
    def size(self) -> int:
        """バイト数を返す"""
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path, declared_mime_type: str | None = None) -> RawImageBlob:
        """ファイルからBlobを作成する

        Args:
            path: 画像ファイルのパス
            declared_mime_type: 申告するMIMEタイプ

        Returns:
            ファイル内容を保持するRawImageBlob

        Raises:
            FileNotFoundError: ファイルが存在しない場合
        """
        if not path.exists():
            raise FileNotFoundError(f"ファイルが見つかりません: {path}")
        return cls(data=path.read_bytes(), declared_mime_type=declared_mime_type)


class OutputHandle:
    """変換後のエンコード済みデータへの参照

    所有権は呼び出し元に移り、表示が不要になった時点で release() を呼び出すのは
    呼び出し元の責務である。変換サブシステムはハンドルを保持・解放しない。
    """

    def __init__(self, data: bytes, output_format: FormatDescriptor) -> None:
        self._data: bytes | None = data
        self._size = len(data)
        self._output_format = output_format

    def __enter__(self) -> OutputHandle:
        return self

    def __exit__(self, *args: object) -> None:
        self.release()

    @property
    def output_format(self) -> FormatDescriptor:
        """出力フォーマットを返す"""
        return self._output_format

    @property
    def size(self) -> int:
        """エンコード済みデータのバイト数を返す"""
        return self._size

    @property
    def released(self) -> bool:
        """解放済みかどうかを返す"""
        return self._data is None

    def read(self) -> bytes:
        """エンコード済みデータを返す

        Raises:
            ValueError: 解放済みのハンドルの場合
        """
        if self._data is None:
            raise ValueError("解放済みのハンドルです")
        return self._data

    def save(self, dest: Path) -> Path:
        """エンコード済みデータをファイルに書き出す

        Args:
            dest: 出力先パス

        Returns:
            書き出したファイルのパス
        """
        data = self.read()
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        return dest

    def release(self) -> None:
        """保持しているデータを解放する（複数回呼び出し可）"""
        self._data = None


@dataclass(frozen=True)
class ConversionResult:
    """変換結果を表すデータクラス

    Attributes:
        output_handle: 変換後データへのハンドル（呼び出し元が解放する）
        converted_size_bytes: 変換後のサイズ（バイト）
        original_size_bytes: 変換前のサイズ（バイト）
        output_format: 出力フォーマット
    """

    output_handle: OutputHandle
    converted_size_bytes: int
    original_size_bytes: int
    output_format: FormatDescriptor

    @property
    def compression_ratio(self) -> float:
        """圧縮率を計算する（converted / original）

        Returns:
            圧縮率。original_size_bytesが0の場合は1.0を返す
        """
        if self.original_size_bytes == 0:
            return 1.0
        return self.converted_size_bytes / self.original_size_bytes


@dataclass(frozen=True)
class ProgressEvent:
    """変換進捗イベント

    Attributes:
        is_converting: 変換処理中かどうか
        message: 表示用メッセージ
        format_hint: フォーマットのヒント（例: "heic"）
        loaded_bytes: 読み込み済みバイト数
        total_bytes: 総バイト数
        progress_percent: 進捗率（0〜100）
    """

    is_converting: bool
    message: str
    format_hint: str | None = None
    loaded_bytes: int | None = None
    total_bytes: int | None = None
    progress_percent: int | None = None

    def __post_init__(self) -> None:
        if self.progress_percent is not None and not 0 <= self.progress_percent <= 100:
            raise ValueError(f"進捗率は0〜100の範囲で指定してください: {self.progress_percent}")


# 進捗通知先の型エイリアス
ProgressSink = Callable[[ProgressEvent], None]


def emit_progress(sink: ProgressSink | None, event: ProgressEvent) -> None:
    """進捗イベントを通知する

    通知は投げっぱなしで、通知先で発生した例外は変換を失敗させずに破棄する。

    Args:
        sink: 通知先（Noneの場合は何もしない）
        event: 通知するイベント
    """
    if sink is None:
        return
    try:
        sink(event)
    except Exception as e:
        logger.warning(f"進捗イベントを破棄しました: {e}")


class BaseConverter(ABC):
    """Converterの基底クラス

    すべてのフォーマット変換クラスが継承する抽象基底クラス。
    HEIC変換、TIFF変換等の具象クラスはこのクラスを継承して実装する。
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """ログ出力や削除に使用する識別名を返す"""
        ...

    @property
    @abstractmethod
    def supported_formats(self) -> frozenset[FormatDescriptor]:
        """対応するフォーマットの集合を返す"""
        ...

    @abstractmethod
    async def should_convert(self, blob: RawImageBlob) -> bool:
        """このBlobを変換する必要があるかを判定する

        冪等かつ副作用がないこと。実行環境のネイティブ対応状況を問い合わせてもよい。

        Args:
            blob: 判定対象のBlob

        Returns:
            変換が必要な場合True
        """
        ...

    @abstractmethod
    async def convert(
        self,
        blob: RawImageBlob,
        source_locator: str,
        progress: ProgressSink | None = None,
    ) -> ConversionResult:
        """Blobを変換する

        Args:
            blob: 変換元のBlob
            source_locator: 変換元の所在（URLやファイルパス）
            progress: 進捗通知先

        Returns:
            変換結果

        Raises:
            ConversionError: 変換に失敗した場合
        """
        ...

    @property
    def mime_types(self) -> tuple[str, ...]:
        """対応するMIMEタイプをソートして返す"""
        return tuple(sorted(fmt.mime_type for fmt in self.supported_formats))
