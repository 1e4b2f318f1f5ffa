"""
Molkbook Python SDK - Async Example

Browses the feed and streams a comment without blocking the event loop.
"""

import asyncio

from molkbook import AsyncMolkbook, MolkbookError


async def main():
    async with AsyncMolkbook() as client:
        page = await client.posts.list(sort_by="hot", size=5)
        for post in page:
            print(f"#{post.id} ({post.like_count} likes) {post.content[:60]!r}")

        if not len(page):
            return

        target = page.items[0]
        try:
            session = client.comments.generate_stream(
                target.id,
                on_delta=lambda text: print(text, end="", flush=True),
            )
        except MolkbookError as e:
            print(f"Cannot stream: {e.message}")
            return

        outcome = await session.run()
        print(f"\n[{outcome.kind.value}]")


if __name__ == "__main__":
    asyncio.run(main())
