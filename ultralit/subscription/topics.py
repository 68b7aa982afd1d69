"""
토픽 ID 목록 정리
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


@dataclass
class TopicSelection:
    """정리된 토픽 ID 와 건너뛴 항목"""
    topic_ids: list[int] = field(default_factory=list)
    skipped: list[Any] = field(default_factory=list)


def _to_topic_id(value: Any):
    # {"id": 5} 또는 {"topic_id": 5} 형태의 항목
    if isinstance(value, Mapping):
        value = value.get("id") or value.get("topic_id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isdecimal() and int(text) > 0:
            return int(text)
    return None


def parse_topic_ids(values: Iterable[Any]) -> TopicSelection:
    """
    사용자 입력 토픽 목록을 양의 정수 ID 로 정리

    정수, 숫자 문자열, id/topic_id 키를 가진 객체를 받는다.
    순서를 유지하며 중복을 제거하고, 숫자가 아닌 항목은 skipped 로 돌려준다.
    """
    selection = TopicSelection()
    if values is None:
        return selection
    if isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
        selection.skipped.append(values)
        return selection

    seen = set()
    for value in values:
        topic_id = _to_topic_id(value)
        if topic_id is None:
            selection.skipped.append(value)
            continue
        if topic_id not in seen:
            seen.add(topic_id)
            selection.topic_ids.append(topic_id)

    return selection
