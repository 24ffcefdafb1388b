# FILE: src/manga_importer/shared/settings.py

import tomllib
from pathlib import Path
from typing import Any, cast

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .enums import ImageQuality
from .exceptions import SettingsError


# --- TOMLファイル読み込みロジック ---
def load_toml_config(toml_file: Path) -> dict[str, Any]:
    """指定されたTOMLファイルを読み込みます。"""
    if not toml_file.is_file():
        return {}
    try:
        with toml_file.open('rb') as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise SettingsError(
            f"設定ファイル '{toml_file}' の解析に失敗しました: {e}"
        ) from e


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """ユーザー指定のTOML設定ファイルを読み込むためのカスタムソース。"""

    def __init__(self, settings_cls: type[BaseSettings], config_file: Path | None):
        super().__init__(settings_cls)
        self.config_file = config_file
        self._toml_config: dict[str, Any] = (
            load_toml_config(self.config_file) if self.config_file else {}
        )

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        """このカスタムソースはフィールドごとの値取得をサポートしないため、__call__に処理を委ねます。"""
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """設定ファイル全体を辞書として一度に返します。"""
        return self._toml_config


class PyProjectTomlSource(PydanticBaseSettingsSource):
    """pyproject.tomlから[tool.manga_importer]セクションを読み込むソース。"""

    def __init__(self, settings_cls: type[BaseSettings]):
        super().__init__(settings_cls)
        self._config = self._load_pyproject_toml()

    def _load_pyproject_toml(self) -> dict[str, Any]:
        pyproject_path = Path.cwd() / 'pyproject.toml'
        config = load_toml_config(pyproject_path)
        return cast(dict[str, Any], config.get('tool', {}).get('manga_importer', {}))

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._config


# --- 設定モデル定義 ---


class CircuitBreakerSettings(BaseModel):
    """サーキットブレーカーに関する設定。"""

    fail_max: int = Field(
        default=5,
        description='何回連続で失敗したらサーキットをOpen状態にするか。',
    )
    reset_timeout: int = Field(
        default=60,
        description='サーキットがOpenしてからHalf-Open状態に移行するまでの秒数。',
    )


class DownloaderSettings(BaseModel):
    """ダウンロード処理に関する設定。遅延はすべてリクエスト後に挿入されます。"""

    user_agent: str = Field(
        default=(
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
            '(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36'
        ),
        description='HTMLソースへのリクエストに使用するユーザーエージェント。',
    )
    api_user_agent: str = Field(
        default='MangaImporter/1.0',
        description='REST APIソースへのリクエストに使用するユーザーエージェント。',
    )
    request_timeout: float = Field(
        default=60.0, description='1リクエストあたりのタイムアウト(秒)。'
    )
    api_retries: int = Field(
        default=3,
        description='リクエストが失敗した場合のリトライ回数。',
    )
    catalog_delay: float = Field(
        default=0.5, description='章一覧・ギャラリーページ取得後の遅延(秒)。'
    )
    page_delay: float = Field(default=0.3, description='画像取得後の遅延(秒)。')
    fast_page_delay: float = Field(
        default=0.2, description='CDN配信の画像取得後の遅延(秒)。'
    )
    chapter_delay: float = Field(default=1.0, description='章と章の間の遅延(秒)。')
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings
    )

    @field_validator('catalog_delay', 'page_delay', 'fast_page_delay', 'chapter_delay')
    @classmethod
    def validate_delay_is_not_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError('遅延時間に負の値は指定できません。')
        return value


class StorageSettings(BaseModel):
    """ダウンロードした画像の保存先に関する設定。"""

    uploads_root: Path = Field(
        default=Path('./uploads'),
        description='カバーとページ画像を保存するルートディレクトリ。',
    )
    covers_dir_name: str = Field(default='covers')
    pages_dir_name: str = Field(default='pages')
    placeholder_cover: str = Field(
        default='/images/placeholder.jpg',
        description='カバー画像の取得に失敗した場合に使用する参照パス。',
    )
    default_image_extension: str = Field(default='.jpg')


class ImportSettings(BaseModel):
    """インポート要求のデフォルト値。"""

    default_range: str = 'all'
    default_language: str = 'en'
    default_quality: ImageQuality = ImageQuality.FULL
    strict_selection: bool = Field(
        default=False,
        description=(
            '範囲指定が空集合に展開された場合に全章へフォールバックせず、'
            'EmptySelectionErrorを送出するかどうか。'
        ),
    )


class SourceSettings(BaseModel):
    """各ソースのベースURL。ミラーやテスト用に差し替え可能。"""

    mangadex_api_url: str = 'https://api.mangadex.org'
    mangadex_uploads_url: str = 'https://uploads.mangadex.org'
    mangadex_feed_page_size: int = 500
    weebcentral_url: str = 'https://weebcentral.com'
    mangalivre_url: str = 'https://mangalivre.blog'


class Settings(BaseSettings):
    """
    アプリケーションの階層的設定管理クラス。
    以下の優先順位で設定を読み込みます:
    1. Pythonコードからの直接初期化
    2. --config で指定されたカスタムTOMLファイル
    3. 環境変数 (例: MANGA_IMPORTER_STORAGE__UPLOADS_ROOT=...)
    4. .env ファイル
    5. pyproject.toml内の [tool.manga_importer] セクション
    6. モデルで定義されたデフォルト値
    """

    downloader: DownloaderSettings = Field(default_factory=DownloaderSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)
    sources: SourceSettings = Field(default_factory=SourceSettings)
    log_level: str = 'INFO'

    def __init__(self, **values: object):
        # _config_file は settings_customise_sources で TOML ソースに渡される
        config_file_path = values.pop('_config_file', None)
        if config_file_path:
            values['_config_file'] = Path(cast(Path | str, config_file_path))

        try:
            super().__init__(**values)  # type: ignore [arg-type]
        except (ValidationError, ValueError) as e:
            raise SettingsError(f'設定の検証に失敗しました:\n{e}') from e

    model_config = SettingsConfigDict(
        env_nested_delimiter='__',
        env_prefix='MANGA_IMPORTER_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        init_kwargs = getattr(init_settings, 'init_kwargs', None) or getattr(
            init_settings, 'init_data', {}
        )
        config_file_path = init_kwargs.get('_config_file')
        if config_file_path and not isinstance(config_file_path, Path):
            config_file_path = Path(config_file_path)

        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls, config_file_path),
            env_settings,
            dotenv_settings,
            PyProjectTomlSource(settings_cls),
        )
