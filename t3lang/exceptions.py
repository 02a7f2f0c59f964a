# t3lang/exceptions.py
"""
本模块定义了 t3lang 项目中所有自定义的、语义化的异常类型。

单个文件的错误（加载、保存）永远不会中断跨文件的批量操作，
批量操作的结果以报告对象的形式返回给调用方。
"""

from typing import Optional


class T3LangError(Exception):
    """
    所有 t3lang 自定义异常的通用基类。
    捕获此异常可以处理所有源自本项目的预期错误。
    """
    pass


class ConfigurationError(T3LangError):
    """表示在加载或验证配置时发生的错误。"""
    pass


class ParseError(T3LangError):
    """编解码器在解析格式错误的 XLIFF 文本时应抛出此异常。"""
    pass


class FileOperationError(T3LangError):
    """与某个具体文件路径相关的错误的基类。"""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(message or path)


class LoadError(FileOperationError):
    """
    表示文件无法读取或无法解析。
    该文件会被跳过，同组的其他文件照常加载。
    """
    pass


class SaveError(FileOperationError):
    """
    表示写入失败或序列化失败。
    未保存的修改保持原样，以便用户重试。
    """
    pass


class ConflictError(FileOperationError):
    """表示对一个不存在待决冲突的路径请求了冲突决策。"""
    pass


class GroupNotFoundError(T3LangError, KeyError):
    """
    表示访问了一个工作区中不存在的翻译分组。
    继承自 KeyError 是为了保持与字典查找行为的一致性。
    """
    pass


class FileNotCachedError(T3LangError, KeyError):
    """表示操作需要一个尚未加载到文档缓存中的文件。"""
    pass


class UnitNotFoundError(T3LangError, KeyError):
    """表示在文件的工作视图中找不到指定的翻译单元。"""
    pass
