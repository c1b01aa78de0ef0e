"""Populate the database with demo users, articles, comments, follows and favorites."""
import asyncio
import argparse
import random
import time

from sqlalchemy import select

from app.database import async_session, commit_session, create_tables, dispose_engine
from app.models import User
from app.schemas import ArticleCreate, CommentCreate, UserRegister
from app.services import article_service, comment_service, profile_service, user_service

TAGS = ["dragons", "python", "fastapi", "postgresql", "testing", "performance",
        "security", "training", "welcome", "coffee", "travel", "books"]

DEMO_PASSWORD = "password123"


async def seed(small: bool = False, reset: bool = True, rng_seed: int = 42):
    rng = random.Random(rng_seed)
    num_users = 5 if small else 25
    articles_per_user = 3 if small else 20
    max_comments = 2 if small else 6

    print(f"Seeding: {num_users} users, {num_users * articles_per_user} articles")
    start = time.perf_counter()

    await create_tables(drop_first=reset)

    async with async_session() as session:
        for i in range(num_users):
            await user_service.register_user(session, UserRegister(
                username=f"user{i:03d}",
                email=f"user{i:03d}@example.com",
                password=DEMO_PASSWORD,
            ))
        result = await session.execute(select(User).order_by(User.id))
        users: list[User] = list(result.scalars().all())
        print(f"  Created {len(users)} users (password: {DEMO_PASSWORD})")

        # Follows
        follow_count = 0
        for user in users:
            for target in rng.sample(users, k=min(3, len(users))):
                if target.id != user.id:
                    await profile_service.follow_user(session, target.username, user)
                    follow_count += 1
        print(f"  Created {follow_count} follows")

        # Articles are created one author at a time; tag upserts make
        # concurrent creation safe, sequential keeps the output readable.
        slugs: list[str] = []
        for user in users:
            for n in range(articles_per_user):
                topic = rng.choice(TAGS)
                article = await article_service.create_article(session, user, ArticleCreate(
                    title=f"Notes on {topic} #{n}",
                    description=f"{user.username} writes about {topic}",
                    body=f"This is article {n} by {user.username} about {topic}. " * 10,
                    tagList=rng.sample(TAGS, k=rng.randint(1, 3)),
                ))
                slugs.append(article["slug"])
        print(f"  Created {len(slugs)} articles")

        comment_count = 0
        favorite_count = 0
        for slug in slugs:
            for _ in range(rng.randint(0, max_comments)):
                author = rng.choice(users)
                await comment_service.add_comment(session, slug, author, CommentCreate(
                    body=f"Thanks for sharing! ({author.username})",
                ))
                comment_count += 1
            for fan in rng.sample(users, k=rng.randint(0, min(3, len(users)))):
                await article_service.favorite_article(session, slug, fan)
                favorite_count += 1

        await commit_session(session)
    await dispose_engine()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Comments: {comment_count}")
    print(f"  Favorites: {favorite_count}")


def main():
    parser = argparse.ArgumentParser(description="Seed the Conduit database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset")
    parser.add_argument("--keep", action="store_true", help="Do not drop existing tables first")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, reset=not args.keep, rng_seed=args.seed))


if __name__ == "__main__":
    main()
