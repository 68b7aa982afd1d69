"""
토픽 및 일차별 콘텐츠 적재 스크립트

JSON 형식:
    [
      {
        "name": "Python Basics",
        "description": "...",
        "topic_type": "tech",
        "days": [
          {"title": "Variables", "description": "...", "content": "..."},
          ...
        ]
      }
    ]

사용법:
    python scripts/seed_catalog.py --file data/catalog.json
"""

import argparse
import json
import sys
from pathlib import Path

# 프로젝트 루트를 Python path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from ultralit.config import settings
from ultralit.database import init_db, TopicRepository, ContentRepository


def main():
    parser = argparse.ArgumentParser(description="Ultralit 토픽/콘텐츠 적재")
    parser.add_argument("--file", required=True, help="카탈로그 JSON 파일 경로")

    args = parser.parse_args()

    catalog_path = Path(args.file)
    if not catalog_path.exists():
        print(f"파일을 찾을 수 없습니다: {catalog_path}")
        sys.exit(1)

    catalog = json.loads(catalog_path.read_text(encoding="utf-8"))

    # 데이터베이스 초기화
    db = init_db(settings.database_url)

    with db.session() as session:
        for entry in catalog:
            topic = TopicRepository.create(
                session,
                name=entry["name"],
                description=entry.get("description"),
                topic_type=entry.get("topic_type"),
            )

            # 일차는 1부터 빈틈없이 부여
            for day_number, day in enumerate(entry.get("days", []), start=1):
                ContentRepository.create(
                    session,
                    topic_id=topic.id,
                    day_number=day_number,
                    title=day["title"],
                    content_text=day.get("content", ""),
                    description=day.get("description"),
                )

            print(f"토픽 추가: [{topic.id}] {topic.name} ({len(entry.get('days', []))}일)")


if __name__ == "__main__":
    main()
