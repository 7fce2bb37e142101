"""進捗表示およびログ出力のインターフェース定義

このモジュールは、imgconvの変換進捗表示とログ出力のためのインターフェースを定義する。
VerboseLevel (詳細ログレベル)に応じた出力制御を行い、
CLIでの変換進捗をユーザーにわかりやすく表示するために使用される。
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import TextIO

from imgconv.converter.base import ProgressEvent


class VerboseLevel(IntEnum):
    """詳細ログレベル

    ログ出力の詳細度を制御するための列挙型。
    QUIET: エラーのみ出力
    NORMAL: 進捗バーとサマリ出力
    VERBOSE: 変換ファイル一覧も出力（-vオプション）
    DEBUG: ライブラリのログも出力（-vvオプション）
    """

    QUIET = -1
    NORMAL = 0
    VERBOSE = 1
    DEBUG = 2

    @property
    def logging_level(self) -> int:
        """対応する標準loggingのレベルを返す"""
        if self >= VerboseLevel.DEBUG:
            return logging.DEBUG
        if self >= VerboseLevel.VERBOSE:
            return logging.INFO
        if self >= VerboseLevel.NORMAL:
            return logging.WARNING
        return logging.ERROR


@dataclass
class LogConfig:
    """ログ設定

    ログ出力の動作を制御するための設定データクラス。

    Attributes:
        verbose_level: ログの詳細度レベル
        log_file: ログ出力先ファイルパス（Noneの場合はファイル出力なし）
        use_color: カラー出力を使用するか
        use_emoji: emoji表示を使用するか
    """

    verbose_level: VerboseLevel = VerboseLevel.NORMAL
    log_file: Path | None = None
    use_color: bool = True
    use_emoji: bool = True


class ConversionLogger:
    """変換ログ出力クラス

    VerboseLevelに応じてメッセージのフィルタリングを行い、
    進捗表示インスタンスの作成も担当する。

    使用例:
        >>> config = LogConfig(verbose_level=VerboseLevel.VERBOSE)
        >>> logger = ConversionLogger(config)
        >>> logger.info("変換を開始します")
        >>> logger.verbose("photo.tiff を処理中")
    """

    _ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

    def __init__(self, config: LogConfig) -> None:
        """ロガーを初期化する

        Args:
            config: ログ設定
        """
        self._config = config
        self._log_file: TextIO | None = None
        if config.log_file:
            # クラス自体がコンテキストマネージャとして動作し、__exit__でファイルを閉じる
            self._log_file = open(config.log_file, "w", encoding="utf-8")  # noqa: SIM115

    def __enter__(self) -> ConversionLogger:
        return self

    def __exit__(self, *args: object) -> None:
        if self._log_file:
            self._log_file.close()
            self._log_file = None

    @property
    def config(self) -> LogConfig:
        """ログ設定を取得する"""
        return self._config

    def _print(self, message: str, file: TextIO | None = None) -> None:
        if file is None:
            file = sys.stdout
        print(message, file=file)

    def _log_to_file(self, level: str, message: str) -> None:
        """ファイルにログ出力する

        Args:
            level: ログレベル文字列
            message: 出力するメッセージ
        """
        if self._log_file:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            clean_message = self._strip_ansi(message)
            self._log_file.write(f"[{timestamp}] {level}: {clean_message}\n")
            self._log_file.flush()

    def _strip_ansi(self, text: str) -> str:
        return self._ANSI_ESCAPE_PATTERN.sub("", text)

    def info(self, message: str) -> None:
        """情報メッセージを出力する（NORMAL以上）"""
        if self._config.verbose_level >= VerboseLevel.NORMAL:
            self._print(message)
        self._log_to_file("INFO", message)

    def verbose(self, message: str) -> None:
        """詳細メッセージを出力する（VERBOSE以上）"""
        if self._config.verbose_level >= VerboseLevel.VERBOSE:
            self._print(message)
        self._log_to_file("VERBOSE", message)

    def debug(self, message: str) -> None:
        """デバッグメッセージを出力する（DEBUG以上）"""
        if self._config.verbose_level >= VerboseLevel.DEBUG:
            self._print(message)
        self._log_to_file("DEBUG", message)

    def error(self, message: str) -> None:
        """エラーメッセージを出力する（常に出力）"""
        self._print(f"エラー: {message}", file=sys.stderr)
        self._log_to_file("ERROR", message)

    def warning(self, message: str) -> None:
        """警告メッセージを出力する（QUIET以上）"""
        if self._config.verbose_level > VerboseLevel.QUIET:
            self._print(f"警告: {message}")
        self._log_to_file("WARNING", message)

    def configure_library_logging(self) -> None:
        """ライブラリ内部の標準loggingの出力レベルを詳細レベルに合わせる"""
        logging.basicConfig(
            level=self._config.verbose_level.logging_level,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        logging.getLogger("imgconv").setLevel(self._config.verbose_level.logging_level)

    def create_progress(self) -> ConsoleProgressDisplay:
        """進捗表示インスタンスを作成する

        QUIETの場合は何も表示しない進捗表示を返す。
        """
        return ConsoleProgressDisplay(
            use_emoji=self._config.use_emoji,
            enabled=self._config.verbose_level >= VerboseLevel.NORMAL,
        )

    def log_conversion(self, source: Path, dest: Path | None, status: str) -> None:
        """ファイル変換をログする（VERBOSE以上）

        Args:
            source: 変換元ファイルパス
            dest: 変換先ファイルパス（変換しなかった場合はNone）
            status: 変換ステータス
        """
        target = dest.name if dest else "-"
        self.verbose(f"変換: {source.name} -> {target} [{status}]")

    def log_summary(self, success: int, skipped: int, failed: int) -> None:
        """変換サマリを出力する（NORMAL以上）

        Args:
            success: 変換成功数
            skipped: 変換不要数
            failed: 変換失敗数
        """
        if failed:
            emoji = "⚠️" if self._config.use_emoji else "[WARN]"
        else:
            emoji = "✅" if self._config.use_emoji else "[OK]"
        self.info(f"{emoji} Conversion complete!")
        self.info(f"   Converted: {success}  Skipped: {skipped}  Failed: {failed}")


class ConsoleProgressDisplay:
    """コンソール進捗表示

    変換中の進捗イベントを受け取り、進捗バーをコンソールに表示する。
    インスタンスはそのまま進捗通知先（ProgressSink）として渡せる。
    """

    BAR_WIDTH = 40

    FORMAT_EMOJI: dict[str, str] = {
        "heic": "\U0001f4f7",
        "tiff": "\U0001f5bc",
    }

    def __init__(self, use_emoji: bool = True, enabled: bool = True) -> None:
        """進捗表示を初期化する

        Args:
            use_emoji: 絵文字を使用するか
            enabled: 表示を行うか
        """
        self._use_emoji = use_emoji
        self._enabled = enabled
        self._last_percent: int | None = None
        self._started = False

    @property
    def last_percent(self) -> int | None:
        """最後に表示した進捗率を返す"""
        return self._last_percent

    def __call__(self, event: ProgressEvent) -> None:
        """進捗イベントを表示する

        Args:
            event: 進捗イベント
        """
        if event.progress_percent is not None:
            self._last_percent = event.progress_percent
        if not self._enabled:
            return

        if not self._started:
            self._started = True
            emoji = self.FORMAT_EMOJI.get(event.format_hint or "", "") if self._use_emoji else ""
            prefix = f"{emoji} " if emoji else ""
            print(f"{prefix}{event.message}")

        percent = self._last_percent or 0
        filled = int(self.BAR_WIDTH * percent / 100)
        bar = "█" * filled + "░" * (self.BAR_WIDTH - filled)
        print(f"\r   [{bar}] {percent}% {event.message}", end="", flush=True)

    def finish(self, success: bool, message: str = "") -> None:
        """変換終了を表示する

        Args:
            success: 変換が成功したか
            message: 終了メッセージ（オプション）
        """
        if not self._enabled or not self._started:
            return
        full_bar = "█" * self.BAR_WIDTH
        if success:
            mark = "✓" if self._use_emoji else "done"
            print(f"\r   [{full_bar}] 100% {mark}")
        else:
            mark = "✗" if self._use_emoji else "failed"
            msg_part = f": {message}" if message else ""
            print(f"\r   [{full_bar}] {mark}{msg_part}")
