"""
패턴 체크 1회 실행 (crontab용)

사용법:
    pattern-check                 # CRON_SECRET으로 전체 패턴 체크
    pattern-check --user alice    # 특정 사용자 패턴만 체크
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from pattern_alerts.database import close_db, get_session_factory, init_db
from pattern_alerts.exceptions import AuthorizationError
from pattern_alerts.services.pattern_check_scheduler import CheckTrigger, PatternCheckScheduler


def build_trigger(user_id: Optional[str], cron_secret: str) -> CheckTrigger:
    if user_id:
        return CheckTrigger(user_id=user_id)
    return CheckTrigger(cron_secret=cron_secret)


async def run_once(
    user_id: Optional[str] = None,
    scheduler: Optional[PatternCheckScheduler] = None
) -> Dict[str, Any]:
    if scheduler is not None:
        return await scheduler.run_check(build_trigger(user_id, scheduler.settings.cron_secret))

    await init_db()
    try:
        scheduler = PatternCheckScheduler(get_session_factory())
        return await scheduler.run_check(build_trigger(user_id, scheduler.settings.cron_secret))
    finally:
        await close_db()


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Run one pattern check")
    parser.add_argument("--user", help="check only this user's patterns")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        summary = asyncio.run(run_once(args.user))
    except AuthorizationError:
        print("❌ CRON_SECRET이 설정되지 않았습니다. .env 파일을 확인하세요.", file=sys.stderr)
        return 1

    print(json.dumps(summary, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
