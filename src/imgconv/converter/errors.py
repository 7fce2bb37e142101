"""変換エラー定義モジュール

画像変換処理で送出される例外クラスを定義する。
フォーマット判定段階の結果（判定不可・Converter未登録・変換不要）は
例外ではなく通常の戻り値として扱うため、ここには含めない。
"""


class ConversionError(Exception):
    """画像変換に関する基本例外クラス

    Attributes:
        format_name: 変換対象フォーマット名（例: "TIFF"）
        cause: 根本原因となった例外
    """

    def __init__(
        self,
        message: str,
        *,
        format_name: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.format_name = format_name
        self.cause = cause


class DecodeError(ConversionError):
    """変換元コンテナが不正、またはデコードバックエンドが利用できない場合の例外"""

    pass


class EncodeError(ConversionError):
    """出力エンコーダーが結果を返さなかった場合の例外"""

    pass


class UnsupportedSampleLayoutError(ConversionError):
    """ビット深度・チャンネル数の組み合わせが未対応の場合の例外"""

    pass


class ConversionFailedError(ConversionError):
    """外部デコード機能による変換が失敗した場合の例外"""

    pass


class ConversionTimeoutError(ConversionError):
    """変換が制限時間内に完了しなかった場合の例外"""

    pass
