# FILE: src/manga_importer/utils/url_parser.py
import posixpath
import re
from urllib.parse import urlparse

EXTENSION_REGEX = re.compile(r'^\.[A-Za-z0-9]{1,5}$')


def extension_from_url(url: str, default: str) -> str:
    """URLのパス部分から拡張子を取り出します。取れない場合は ``default`` を返します。"""
    path = urlparse(url).path
    ext = posixpath.splitext(path)[1]
    return ext.lower() if EXTENSION_REGEX.match(ext) else default
