"""
웹 API 모듈
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
