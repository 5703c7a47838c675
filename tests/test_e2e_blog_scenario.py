"""
End-to-end test: a live blog feed.

  1. A feed watch expands posts two levels deep (post → author → publisher)
  2. A second, shallow watch filters the same collection
  3. A publisher rename arrives on the publishers channel and is visible
     through every post that embeds it
  4. A post is re-pointed at a new author; the update is re-expanded before
     it is merged, and the new author's collection is tracked
  5. Posts are created and deleted; both watches stay consistent
"""

import asyncio

from appstax_live.backend.memory import InMemoryBackend, relation
from appstax_live.model.model import Model


class TestBlogFeedE2E:
    """Full run of two overlapping watches against the in-memory backend."""

    def setup_method(self):
        self.backend = InMemoryBackend()
        self.backend.save("publishers", {"sysObjectId": "pub1", "name": "Press"})
        self.backend.save("authors", {"sysObjectId": "a1", "name": "Ada", "publisher": relation("publishers", "pub1")})
        self.backend.save("authors", {"sysObjectId": "a2", "name": "Grace"})
        self.backend.save("posts", {
            "sysObjectId": "p1", "title": "Engines", "category": "news",
            "sysCreated": "2020-01-01", "author": relation("authors", "a1"),
        })
        self.backend.save("posts", {
            "sysObjectId": "p2", "title": "Compilers", "category": "tech",
            "sysCreated": "2020-02-01", "author": relation("authors", "a1"),
        })
        self.model = Model(client=self.backend, hub=self.backend.hub)
        self.changes = []
        self.model.on("change", self.changes.append)

    def test_full_scenario(self):
        """Full run of the five steps above; exactly nine change events fire."""
        async def scenario():
            feed = self.model.watch("feed", collection="posts", expand=2)
            news = self.model.watch("news", collection="posts", filter="category='news'", order="title")
            await self.model.settle()

            # Step 1-2: both loaded, relations tracked two levels deep
            assert [p.object_id for p in self.model["feed"]] == ["p2", "p1"]
            assert [p.object_id for p in self.model["news"]] == ["p1"]
            assert feed.related_collections == ["authors", "publishers"]
            assert news.related_collections == []
            assert feed.expand_depth("pub1") == 0

            # Step 3: publisher renamed
            self.backend.save("publishers", {"sysObjectId": "pub1", "name": "Big Press"})
            await self.model.settle()
            p2 = self.model.store.get("p2")
            assert p2.object("author").object("publisher")["name"] == "Big Press"

            # Step 4: p2 moves to a new author
            self.backend.save("posts", {"sysObjectId": "p2", "author": relation("authors", "a2")})
            await self.model.settle()
            assert p2.object("author") is self.model.store.get("a2")
            assert feed.expand_depth("a2") == 1

            self.backend.save("authors", {"sysObjectId": "a2", "name": "Grace Hopper"})
            await self.model.settle()
            assert p2.object("author")["name"] == "Grace Hopper"

            # Step 5: create and delete
            self.backend.save("posts", {"sysObjectId": "p3", "title": "Agents", "category": "news", "sysCreated": "2020-03-01"})
            await self.model.settle()
            assert [p.object_id for p in self.model["feed"]] == ["p3", "p2", "p1"]
            assert [p.object_id for p in self.model["news"]] == ["p3", "p1"]
            assert self.model["news"][0] is self.model["feed"][0]

            self.backend.delete("posts", "p1")
            await self.model.settle()
            assert [p.object_id for p in self.model["feed"]] == ["p3", "p2"]
            assert [p.object_id for p in self.model["news"]] == ["p3"]

        asyncio.run(scenario())

        # loads (2) + publisher rename (1) + re-point (1) + author rename (1)
        # + create on both watches (2) + delete on both watches (2)
        assert len(self.changes) == 9
