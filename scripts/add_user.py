"""
사용자 추가 스크립트

사용법:
    python scripts/add_user.py --email user@example.com --name "홍길동" --type individual
"""

import argparse
import sys
from pathlib import Path

# 프로젝트 루트를 Python path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from ultralit.auth import Registrar
from ultralit.config import settings
from ultralit.database import init_db, UserType
from ultralit.exceptions import UltralitError


def main():
    parser = argparse.ArgumentParser(description="Ultralit 사용자 추가")
    parser.add_argument("--email", required=True, help="이메일 주소")
    parser.add_argument("--name", required=True, help="사용자 이름")
    parser.add_argument("--phone", help="전화번호")
    parser.add_argument("--country", help="국가")
    parser.add_argument(
        "--type",
        choices=["individual", "corporate"],
        default="individual",
        help="사용자 유형 (기본값: individual)"
    )

    args = parser.parse_args()

    type_map = {
        "individual": UserType.INDIVIDUAL,
        "corporate": UserType.CORPORATE,
    }

    # 데이터베이스 초기화
    db = init_db(settings.database_url)

    try:
        profile = Registrar(db).register(
            name=args.name,
            email=args.email,
            phone=args.phone,
            country=args.country,
            user_type=type_map[args.type].value,
        )
    except UltralitError as e:
        print(f"사용자 추가 실패 ({e.code.value}): {e.message}")
        sys.exit(1)

    print(f"사용자 추가 완료:")
    print(f"  - ID: {profile.id}")
    print(f"  - 이메일: {profile.email}")
    print(f"  - 이름: {profile.name}")


if __name__ == "__main__":
    main()
