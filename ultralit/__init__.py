"""
Ultralit - 마이크로러닝 구독 및 일일 콘텐츠 발송
"""

__version__ = "1.0.0"
