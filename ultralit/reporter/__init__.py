"""
이메일 본문 생성 모듈
"""

from .generator import ContentRenderer

__all__ = ["ContentRenderer"]
