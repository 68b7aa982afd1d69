"""
Ultralit 메인 실행 파일

마이크로러닝 일일 콘텐츠 발송 스케줄러
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv

from .config import settings
from .database import init_db, get_db
from .mailer import EmailContentDispatcher
from .notifier.alert import get_notifier, build_cycle_summary_alert
from .scheduler import DeliveryScheduler

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """콘솔 + 파일 로깅 설정"""
    log_dir = settings.BASE_DIR / "logs"
    log_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "ultralit.log", encoding="utf-8"),
        ],
    )


def build_scheduler() -> DeliveryScheduler:
    """기본 데이터베이스와 이메일 발송기로 스케줄러 구성"""
    return DeliveryScheduler(
        get_db(),
        EmailContentDispatcher(),
        alert_notifier=get_notifier(),
    )


def run_delivery_job():
    """
    일일 발송 작업 실행

    대기 중인 콘텐츠를 발송하고, 실패가 있으면 요약 알림을 보낸다.
    """
    logger.info("=" * 50)
    logger.info("Ultralit 일일 발송 시작")
    logger.info("=" * 50)

    try:
        result = build_scheduler().run_delivery_cycle()

        for warning in result.advisory_warnings:
            logger.warning(f"  {warning}")

        if result.failures:
            get_notifier().send_alert(
                build_cycle_summary_alert(result.total, result.sent, result.failed)
            )

        logger.info("=" * 50)
        logger.info(f"일일 발송 완료: 대기 {result.total}건, 성공 {result.sent}건, 실패 {result.failed}건")
        logger.info("=" * 50)
        return result

    except Exception as e:
        logger.exception(f"일일 발송 중 오류 발생: {e}")
        return None


def print_stats() -> None:
    """스케줄러 통계 출력"""
    stats = build_scheduler().get_scheduler_stats()

    print(f"발송 대기: {stats.pending}건")
    print(f"오늘 발송: {stats.sent_today}건")
    print("최근 발송:")
    for item in stats.recent:
        delivered = item.delivered_on.strftime("%Y-%m-%d %H:%M") if item.delivered_on else "-"
        print(f"  [{delivered}] {item.email} - Day {item.day_number}: {item.title}")


def run_scheduler():
    """스케줄러 실행"""
    logger.info("Ultralit 스케줄러 시작")

    scheduler = BlockingScheduler()

    # 매일 지정 시간에 실행
    trigger = CronTrigger(
        hour=settings.schedule_hour,
        minute=settings.schedule_minute
    )

    scheduler.add_job(
        run_delivery_job,
        trigger=trigger,
        id="daily_delivery",
        name="Daily Content Delivery",
    )

    logger.info(
        f"스케줄 설정: 매일 {settings.schedule_hour:02d}:{settings.schedule_minute:02d}에 실행"
    )

    try:
        scheduler.start()
    except KeyboardInterrupt:
        logger.info("스케줄러 종료")
        scheduler.shutdown()


def main():
    """메인 함수"""
    import argparse

    parser = argparse.ArgumentParser(description="Ultralit - 마이크로러닝 콘텐츠 발송")
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="즉시 한 번 발송 (스케줄러 없이)"
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="발송 통계 출력"
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="웹 API 서버 실행"
    )

    args = parser.parse_args()

    # 환경 변수 로드
    load_dotenv()
    setup_logging()

    # 데이터베이스 초기화
    logger.info("데이터베이스 초기화...")
    init_db(settings.database_url)

    if args.stats:
        print_stats()
    elif args.serve:
        from .web import run_server
        run_server()
    elif args.run_once:
        logger.info("즉시 실행 모드")
        run_delivery_job()
    else:
        run_scheduler()


if __name__ == "__main__":
    main()
