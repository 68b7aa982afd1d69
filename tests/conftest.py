"""
공용 테스트 픽스처
"""

import sys
import time
from datetime import datetime, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ultralit.database import (
    Database,
    UserRepository,
    TopicRepository,
    ContentRepository,
)
from ultralit.mailer import CodeNotifier, ContentDispatcher, SendResult
from ultralit.notifier.alert import ConsoleAlertNotifier


class FakeClock:
    """수동으로 진행시키는 시계"""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingCodeNotifier(CodeNotifier):
    """전달된 OTP 코드를 기록"""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_code(self, contact, code, expiry_minutes):
        if self.fail:
            return SendResult(recipient=contact.email, success=False, error_message="smtp down")
        self.sent.append((contact.email, code))
        return SendResult(recipient=contact.email, success=True)

    def last_code(self, email: str) -> str:
        return [code for address, code in self.sent if address == email][-1]


class RecordingDispatcher(ContentDispatcher):
    """발송 내역을 기록하고, 지정한 이메일은 실패 처리"""

    def __init__(self):
        self.sent = []
        self.failing_emails = set()
        self.raise_for = set()
        self.delay_seconds = 0.0

    def send(self, contact, payload):
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if contact.email in self.raise_for:
            raise RuntimeError("provider exploded")
        if contact.email in self.failing_emails:
            return SendResult(recipient=contact.email, success=False, error_message="mailbox full")
        self.sent.append((contact.email, payload.title, payload.day_number))
        return SendResult(recipient=contact.email, success=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    """인메모리 SQLite 데이터베이스 (기본 요금제 포함)"""
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def code_notifier():
    return RecordingCodeNotifier()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def alerts():
    return ConsoleAlertNotifier()


@pytest.fixture
def make_user(db):
    """사용자 생성 헬퍼"""

    def _make(email: str = "learner@example.com", name: str = "Learner"):
        with db.session() as session:
            return UserRepository.create(session, name=name, email=email).id

    return _make


@pytest.fixture
def make_topic(db):
    """토픽과 일차별 콘텐츠 생성 헬퍼"""

    def _make(name: str = "Topic", days: int = 0):
        with db.session() as session:
            topic = TopicRepository.create(session, name=name)
            for day in range(1, days + 1):
                ContentRepository.create(
                    session,
                    topic_id=topic.id,
                    day_number=day,
                    title=f"{name} day {day}",
                    content_text=f"Lesson {day} of {name}",
                )
            return topic.id

    return _make


@pytest.fixture
def catalog(make_topic):
    """ID 1~7 토픽 카탈로그: 5번은 3일, 7번은 1일, 나머지는 2일 분량"""
    days_by_id = {1: 2, 2: 2, 3: 2, 4: 2, 5: 3, 6: 2, 7: 1}
    return {make_topic(f"Topic {i}", days=days_by_id[i]): days_by_id[i] for i in range(1, 8)}
