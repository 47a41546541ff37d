"""
Database seeder for local development.

Goes through the service layer rather than inserting rows directly, so
slugs, tags and category post counts are produced exactly as the API
produces them.
"""
import asyncio
import argparse
import random
import time

from app.database import engine, async_session, Base
from app.schemas import Actor, CategoryCreate, CommentCreate, PostCreate, UserCreate
from app.services import category_service, comment_service, post_service, user_service

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

CATEGORIES = [
    ("Backend", "Servers, databases and APIs", "#3B82F6"),
    ("Frontend", "Browsers and user interfaces", "#10B981"),
    ("Infrastructure", "Deployments, containers and clouds", "#F59E0B"),
    ("Career", None, "#8B5CF6"),
]


async def seed(small: bool = False):
    num_authors = 5 if small else 25
    num_posts = 50 if small else 1000
    max_comments_per_post = 2 if small else 5

    print(f"Seeding: {num_authors} authors, {num_posts} posts, up to {max_comments_per_post} comments each")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        admin_data = await user_service.create_user(
            session, UserCreate(name="Admin", email="admin@example.com", role="admin")
        )
        admin = Actor(id=admin_data["id"], role="admin")

        authors = []
        for i in range(num_authors):
            user = await user_service.create_user(
                session,
                UserCreate(
                    name=f"Author {i}",
                    email=f"author_{i:03d}@example.com",
                    bio=f"I am test author number {i}. I write about technology.",
                ),
            )
            authors.append(Actor(id=user["id"], role="author"))
        print(f"  Created {len(authors)} authors and 1 admin")

        categories = []
        for name, description, color in CATEGORIES:
            category = await category_service.create_category(
                session, CategoryCreate(name=name, description=description, color=color), admin
            )
            categories.append(category)
        print(f"  Created {len(categories)} categories")

        total_comments = 0
        for i in range(num_posts):
            topic = random.choice(TAGS)
            post = await post_service.create_post(
                session,
                PostCreate(
                    title=f"Post {i}: How to optimize {topic} applications",
                    content=f"This is the full content of post {i}. " * 20,
                    category=random.choice(categories)["slug"],
                    tags=random.sample(TAGS, k=random.randint(1, 4)),
                    is_published=random.random() > 0.1,  # 90% published
                ),
                random.choice(authors),
            )
            for _ in range(random.randint(0, max_comments_per_post)):
                await comment_service.add_comment(
                    session,
                    post["id"],
                    random.choice(authors),
                    CommentCreate(content=f"Great post about {topic}!"),
                )
                total_comments += 1

        await session.commit()

        counts = {c["name"]: c["post_count"] for c in await category_service.list_categories(session)}

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Posts: {num_posts}")
    print(f"  Comments: {total_comments}")
    for name, count in counts.items():
        print(f"  {name}: {count} posts")


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (50 posts)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
