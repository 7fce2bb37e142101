"""imgconv - ブラウザで表示できない画像形式を表示可能な形式に変換するライブラリ"""

from imgconv.logger import (
    ConsoleProgressDisplay,
    ConversionLogger,
    LogConfig,
    VerboseLevel,
)

__version__ = "0.1.0"

__all__ = [
    "ConsoleProgressDisplay",
    "ConversionLogger",
    "LogConfig",
    "VerboseLevel",
]
