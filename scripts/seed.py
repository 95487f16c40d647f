"""Initialise the blog database: tables, standard roles and optional demo data."""
import argparse
import asyncio
import random
import time

from sqlalchemy import select

from blogcms.bootstrap import DEMO_ACCOUNTS, init_database
from blogcms.database import Base, async_session, engine
from blogcms.models import User
from blogcms.schemas import ArticleCreate, CommentCreate, TagCreate
from blogcms.services import article_service, comment_service, tag_service

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "testing", "security", "devops"]


async def seed_content(num_articles: int) -> None:
    """Create sample tags, published articles and approved comments by the demo accounts."""
    async with async_session() as session:
        result = await session.execute(
            select(User).where(User.username.in_([a[0] for a in DEMO_ACCOUNTS]))
        )
        users = result.scalars().all()

        tag_ids = []
        for name in TAGS:
            tag = await tag_service.create_tag(session, TagCreate(name=name))
            tag_ids.append(tag["id"])
        print(f"  Created {len(tag_ids)} tags")

        total_comments = 0
        for i in range(num_articles):
            topic = random.choice(TAGS)
            article = await article_service.create_article(
                session,
                ArticleCreate(
                    title=f"Article {i}: Notes on {topic}",
                    content=f"This is the full content of article {i} about {topic}. " * 10,
                    excerpt=f"Short notes on {topic}.",
                    is_published=random.random() > 0.1,
                    tag_ids=random.sample(tag_ids, k=random.randint(1, 3)),
                ),
                author_id=random.choice(users).id,
            )
            for _ in range(random.randint(0, 3)):
                comment = await comment_service.create_comment(
                    session,
                    CommentCreate(content=f"Comment on article {i}.", article_id=article["id"]),
                    user_id=random.choice(users).id,
                )
                await comment_service.approve_comment(session, comment["id"])
                total_comments += 1

        await session.commit()
        print(f"  Created {num_articles} articles, {total_comments} comments")


async def seed(reset: bool = False, demo: bool = False, articles: int = 0) -> None:
    start = time.perf_counter()

    if reset:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        print("  Dropped all tables")

    await init_database(engine, async_session, seed_demo=demo or articles > 0)
    print("  Tables and standard roles ready")

    if articles > 0:
        await seed_content(articles)

    await engine.dispose()
    print(f"\nSeeding complete in {time.perf_counter() - start:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Initialise the blog database")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    parser.add_argument("--demo", action="store_true", help="Create the admin/moderator/user demo accounts")
    parser.add_argument(
        "--articles", type=int, default=0,
        help="Also create N sample articles with tags and comments (implies --demo)",
    )
    args = parser.parse_args()
    asyncio.run(seed(reset=args.reset, demo=args.demo, articles=args.articles))


if __name__ == "__main__":
    main()
