# t3lang/cli/__init__.py
"""
t3lang CLI 模块入口。
"""
