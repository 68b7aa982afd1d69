"""
HTML 이메일 본문 생성기
"""

import logging
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class ContentRenderer:
    """OTP 및 일일 콘텐츠 이메일 HTML 생성기"""

    def __init__(self, template_dir: str = None):
        """
        Args:
            template_dir: 템플릿 디렉토리 경로
        """
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR

        # Jinja2 환경 설정
        self._env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
        )

        # 커스텀 필터 등록
        self._env.filters['paragraphs'] = self._paragraphs

    @staticmethod
    def _paragraphs(text: str) -> list[str]:
        """빈 줄 기준 문단 분리"""
        if not text:
            return []
        return [p.strip() for p in text.split("\n\n") if p.strip()]

    def render_otp_email(self, name: str, code: str, expiry_minutes: int) -> str:
        """
        로그인 OTP 이메일 HTML 생성

        Args:
            name: 수신자 이름
            code: 6자리 코드
            expiry_minutes: 만료 시간(분)

        Returns:
            HTML 문자열
        """
        template = self._env.get_template("otp_email.html")
        return template.render(
            name=name,
            code=code,
            expiry_minutes=expiry_minutes,
            year=datetime.now().year,
        )

    def render_content_email(
        self,
        name: str,
        title: str,
        body: str,
        description: str = None,
        day_number: int = None
    ) -> str:
        """
        일일 콘텐츠 이메일 HTML 생성

        Args:
            name: 수신자 이름
            title: 콘텐츠 제목
            body: 콘텐츠 본문
            description: 요약 (선택)
            day_number: 일차 (선택)

        Returns:
            HTML 문자열
        """
        template = self._env.get_template("content_email.html")
        html = template.render(
            name=name,
            title=title,
            body=body,
            description=description,
            day_number=day_number,
            year=datetime.now().year,
        )
        logger.debug(f"콘텐츠 이메일 생성: {title} (day {day_number})")
        return html
