# whitelist.py
"""
このファイルは Vulture が検出した「デッドコード」の誤検知を
抑制するためのホワイトリストです。

Pydanticモデルのフィールド、Typerのコマンド、Protocolのメソッド定義など、
Vulture が静的解析で「未使用」と判断してしまう項目をここで定義することで、
Vulture のレポートから除外します。
"""

# --- Pydanticモデルのフィールド (mangadex.py) ---
# 'model_config' は Pydantic v2 の設定用フィールド
model_config
volume
translated_language
limit
result

# --- Pydanticモデルのフィールド (domain.py) ---
catalog_failures
selected_count

# --- 設定項目 (settings.py) ---
mangadex_feed_page_size

# --- 定数 (constants.py) ---
CHAPTER_FOLDER_TEMPLATE

# --- Protocol / 動的ディスパッチ ---
is_cancelled

# --- Typerコマンド (cli.py) ---
main_callback
import_title
sources
