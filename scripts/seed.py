"""Seed the blog database with users, follows, articles, comments and favorites.

Counters (followers/following, favorites, comments) are computed from the
generated join rows so the seeded data satisfies the same invariants the
toggles maintain.
"""
import argparse
import asyncio
import random
import time
from collections import Counter
from datetime import datetime, timedelta, timezone

from sqlalchemy import insert

from app.database import Base, async_session, engine
from app.models import Article, Comment, Favorite, Follow, Role, Tag, User, article_tags
from app.security import hash_password
from app.slugs import slugify

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

SEED_PASSWORD = "Password123"


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_articles = 100 if small else 10000
    max_comments_per_article = 2 if small else 5

    print(f"Seeding: {num_users} users, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # One hash for every seeded account; hashing is deliberately slow.
    password_hash = hash_password(SEED_PASSWORD)

    async with async_session() as session:
        tags = [Tag(name=name, slug=slugify(name)) for name in TAGS]
        session.add_all(tags)
        await session.flush()
        print(f"  Created {len(tags)} tags")

        users = [
            User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                password_hash=password_hash,
                bio=f"I am test user number {i}. I write about technology.",
                role=Role.ADMIN if i == 0 else Role.USER,
            )
            for i in range(num_users)
        ]
        session.add_all(users)
        await session.flush()
        user_ids = [u.id for u in users]
        print(f"  Created {len(users)} users (user_0000 is an admin, password {SEED_PASSWORD!r})")

        follow_pairs = {
            (a, b)
            for a in user_ids
            for b in random.sample(user_ids, k=min(5, len(user_ids)))
            if a != b
        }
        await session.execute(
            insert(Follow), [{"follower_id": a, "following_id": b} for a, b in follow_pairs]
        )
        followers = Counter(b for _, b in follow_pairs)
        following = Counter(a for a, _ in follow_pairs)
        for user in users:
            user.followers_count = followers[user.id]
            user.following_count = following[user.id]
        print(f"  Created {len(follow_pairs)} follows")

        batch_size = 500
        total_comments = 0
        for batch_start in range(0, num_articles, batch_size):
            batch_end = min(batch_start + batch_size, num_articles)
            articles = []
            for i in range(batch_start, batch_end):
                topic = random.choice(TAGS)
                title = f"Article {i}: How to optimize {topic} applications"
                articles.append(Article(
                    title=title,
                    slug=slugify(title),
                    description=f"A guide to optimizing {topic} applications for production.",
                    body=f"This is the full content of article {i}. " * 20,
                    is_published=random.random() > 0.1,  # 90% published
                    created_at=datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365)),
                    author_id=random.choice(user_ids),
                ))
            session.add_all(articles)
            await session.flush()

            tag_rows, comment_rows, favorite_rows = [], [], []
            for article in articles:
                for tag in random.sample(tags, k=random.randint(1, 4)):
                    tag_rows.append({"article_id": article.id, "tag_id": tag.id})
                if not article.is_published:
                    continue

                n_comments = random.randint(0, max_comments_per_article)
                for _ in range(n_comments):
                    comment_rows.append({
                        "article_id": article.id,
                        "author_id": random.choice(user_ids),
                        "body": "Great article! Very helpful for understanding the topic.",
                    })
                fans = random.sample(user_ids, k=random.randint(0, min(5, len(user_ids))))
                favorite_rows.extend({"user_id": u, "article_id": article.id} for u in fans)
                article.comments_count = n_comments
                article.favorites_count = len(fans)

            await session.execute(insert(article_tags), tag_rows)
            if comment_rows:
                await session.execute(insert(Comment), comment_rows)
            if favorite_rows:
                await session.execute(insert(Favorite), favorite_rows)
            await session.flush()
            total_comments += len(comment_rows)

            print(f"  Batch {batch_start}-{batch_end}: articles created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Articles: {num_articles}")
    print(f"  Comments: {total_comments}")
    print(f"  Tags: {len(TAGS)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 articles)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
