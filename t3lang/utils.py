# t3lang/utils.py
"""
本模块包含项目范围内的通用工具函数：TYPO3 文件命名约定与语言代码校验。
"""

import os
import re

from langcodes import Language
from langcodes.tag_parser import LanguageTagError

from t3lang.types import DEFAULT_LANGUAGE

# TYPO3 命名约定: [lang].[basename].xlf 或 [basename].xlf
T3_FILE_PATTERN = re.compile(r"^([a-z]{2})\.(.+)\.xlf$")
XLIFF_SUFFIXES = (".xlf", ".xliff")

# 语言子标签应该由 2-3 个字母组成 (BCP 47)
LANGUAGE_SUBTAG_PATTERN = re.compile(r"^[a-zA-Z]{2,3}$")


def is_xliff_file(path: str) -> bool:
    return path.endswith(XLIFF_SUFFIXES)


def parse_t3_file_name(file_name: str) -> tuple[str, str]:
    """从 TYPO3 文件名中解析出 (language, base_name)。"""
    match = T3_FILE_PATTERN.match(file_name)
    if match:
        return match.group(1), match.group(2)

    for suffix in XLIFF_SUFFIXES:
        if file_name.endswith(suffix):
            return DEFAULT_LANGUAGE, file_name[: -len(suffix)]

    return DEFAULT_LANGUAGE, file_name


def build_t3_file_name(language: str, base_name: str) -> str:
    """parse_t3_file_name 的逆操作。"""
    if language == DEFAULT_LANGUAGE:
        return f"{base_name}.xlf"
    return f"{language}.{base_name}.xlf"


def sort_languages(languages: list[str]) -> list[str]:
    """'default' 永远排在最前，其余按字母顺序。"""
    return sorted(languages, key=lambda lang: (lang != DEFAULT_LANGUAGE, lang))


def group_id_for(directory: str, base_name: str) -> str:
    return os.path.join(directory, base_name)


def validate_lang_code(code: str) -> None:
    """使用 `langcodes` 库校验语言代码是否符合 BCP 47 规范。"""
    try:
        lang = Language.get(code)
        if not lang.language or not LANGUAGE_SUBTAG_PATTERN.match(lang.language):
            raise LanguageTagError(
                f"Tag '{code}' lacks a valid 2-3 letter language subtag."
            )
    except LanguageTagError as e:
        raise ValueError(f"提供的语言代码 '{code}' 格式无效。原因: {e}") from e
