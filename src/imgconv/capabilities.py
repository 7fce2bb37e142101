"""実行環境の描画能力定義

表示側の実行環境（ブラウザ等）がどの画像形式をネイティブに描画できるかを表す。
各Converterの should_convert() はこのインターフェースに問い合わせるため、
テストでは任意の環境プロファイルを注入できる。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

# どの環境でも表示できるベースライン形式
BASELINE_FORMATS = frozenset({"image/jpeg", "image/png", "image/gif"})


class PlatformCapabilities(Protocol):
    """実行環境の描画能力インターフェース"""

    @property
    def name(self) -> str:
        """環境名を返す（例: "safari"）"""
        ...

    def natively_renders(self, mime_type: str) -> bool:
        """指定形式をネイティブに描画できるかを返す"""
        ...


@dataclass(frozen=True)
class EnvironmentProfile:
    """固定の描画能力を持つ環境プロファイル

    Attributes:
        name: 環境名
        native_formats: ネイティブに描画できるMIMEタイプの集合
    """

    name: str
    native_formats: frozenset[str] = field(default_factory=lambda: BASELINE_FORMATS)

    def natively_renders(self, mime_type: str) -> bool:
        """指定形式をネイティブに描画できるかを返す

        Args:
            mime_type: 判定対象のMIMEタイプ

        Returns:
            ネイティブに描画できる場合True
        """
        return mime_type.lower() in self.native_formats


_COMMON_FORMATS = BASELINE_FORMATS | {"image/webp", "image/bmp", "image/x-icon", "image/avif"}

KNOWN_ENVIRONMENTS: dict[str, EnvironmentProfile] = {
    "generic": EnvironmentProfile(name="generic"),
    "chrome": EnvironmentProfile(name="chrome", native_formats=_COMMON_FORMATS),
    "edge": EnvironmentProfile(name="edge", native_formats=_COMMON_FORMATS),
    "firefox": EnvironmentProfile(name="firefox", native_formats=_COMMON_FORMATS),
    "safari": EnvironmentProfile(
        name="safari",
        native_formats=_COMMON_FORMATS
        | {"image/heic", "image/heif", "image/tiff", "image/tif", "image/jxl"},
    ),
}

DEFAULT_ENVIRONMENT = "generic"


def get_environment(name: str | None = None) -> EnvironmentProfile:
    """名前から環境プロファイルを取得する

    Args:
        name: 環境名（Noneの場合は既定の環境）

    Returns:
        環境プロファイル

    Raises:
        KeyError: 未知の環境名の場合
    """
    key = (name or DEFAULT_ENVIRONMENT).lower()
    if key not in KNOWN_ENVIRONMENTS:
        known = ", ".join(sorted(KNOWN_ENVIRONMENTS))
        raise KeyError(f"未知の環境です: {name}（利用可能: {known}）")
    return KNOWN_ENVIRONMENTS[key]
