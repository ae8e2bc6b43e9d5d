"""
Script quản lý recommender từ command line.

Usage:
    # Tạo recommender context-free
    python backend/scripts/manage_recommender.py create movierec \
        --users users --items items --ratings ratings \
        --user-key uid --item-key iid --rating-value score --method itemcoscf

    # Tạo recommender theo context
    python backend/scripts/manage_recommender.py create seasonrec ... --context season

    # Xóa recommender
    python backend/scripts/manage_recommender.py drop movierec

    # Liệt kê
    python backend/scripts/manage_recommender.py list

Database URL lấy từ --database-url hoặc DATABASE_URL env var.
"""
import sys
import asyncio
import io
import logging
import argparse
from pathlib import Path

# Fix encoding cho Windows console
if sys.platform == "win32":
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Thêm backend vào path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

from app.config import settings
from app.recommender.errors import RecommenderError
from app.web.schemas.recommender import CreateRecommenderRequest
from app.web.services.recommender_service import RecommenderService
from app.web.utils.database import build_engine, get_sessionmaker

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create / drop / list recommenders")
    parser.add_argument("--database-url", help="Database connection string (hoặc dùng DATABASE_URL env var)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log chi tiết (DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="CREATE RECOMMENDER")
    create.add_argument("name")
    create.add_argument("--users", required=True, help="User table")
    create.add_argument("--items", required=True, help="Item table")
    create.add_argument("--ratings", required=True, help="Rating table")
    create.add_argument("--user-key", required=True)
    create.add_argument("--item-key", required=True)
    create.add_argument("--rating-value", required=True)
    create.add_argument("--method", required=True, help="itemcoscf | itempearcf | usercoscf | userpearcf | svd")
    create.add_argument("--context", nargs="*", default=[], help="Context attributes (cột trong user table)")

    drop = sub.add_parser("drop", help="DROP RECOMMENDER")
    drop.add_argument("name")

    sub.add_parser("list", help="Liệt kê recommenders")
    return parser


async def run(args) -> int:
    engine = build_engine(args.database_url or settings.database_url)
    session_factory = get_sessionmaker(engine)
    try:
        async with session_factory() as session:
            async with session.begin():
                if args.command == "create":
                    request = CreateRecommenderRequest(
                        name=args.name,
                        users_from=args.users,
                        items_from=args.items,
                        events_from=args.ratings,
                        user_key=args.user_key,
                        item_key=args.item_key,
                        event_value=args.rating_value,
                        method=args.method,
                        context_attributes=args.context,
                    )
                    result = await RecommenderService.create_recommender(session, request)
                    print(f"✅ {result.status}: {result.recommender} ({len(result.cells)} cells)")
                    for cell in result.cells:
                        print(f"   - {', '.join(cell.model_names)} | {cell.view_name} | ratings={cell.rating_total} {cell.context or ''}")
                elif args.command == "drop":
                    result = await RecommenderService.drop_recommender(session, args.name)
                    for notice in result.notices:
                        print(f"⚠️  {notice.level}: {notice.message}")
                    print(f"✅ {result.status}: {result.recommender} ({len(result.cells)} cells)")
                else:
                    entries = await RecommenderService.list_recommenders(session)
                    if not entries:
                        print("Chưa có recommender nào")
                    for entry in entries:
                        print(
                            f"{entry.recommender_id:>4}  {entry.name:<24} {entry.method:<10} "
                            f"{entry.rating_table} ({entry.context_attribute_count} context attributes)"
                        )
        return 0
    except RecommenderError as e:
        print(f"❌ {e.level} [{e.code}]: {e.message}")
        return 1
    finally:
        await engine.dispose()


def main():
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
