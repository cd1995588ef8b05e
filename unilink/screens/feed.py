"""
Feed screen: posts, likes and comment threads.

Likes and comments are optimistic. After each successful write the post's
counter is recomputed from the ``post_likes`` / ``comments`` rows, so the
cached counters converge even when several users act at once.
"""
import logging
from typing import Dict, Hashable, List, Optional, Set

from unilink.errors import InputValidationError, UniLinkError
from unilink.merge import NEWEST_FIRST, OLDEST_FIRST, LiveList, is_temp_id, new_temp_id
from unilink.models import Comment, NotificationType, Post, StudentProfile, clean_row, is_organization, parse
from unilink.mutations import Mutation, MutationResult
from unilink.realtime import DELETE, INSERT, UPDATE, ChangeEvent
from unilink.screens.base import Screen
from unilink.session import requires_session
from unilink.social import send_notification
from unilink.supabase_manager import Join

logger = logging.getLogger(__name__)

AUTHOR = {"author": Join("profiles", "user_id")}

GLOBAL = "global"
CAMPUS = "campus"

ORGANIZATION_TAG = "Company Update"
STUDENT_TAG = "General"


class FeedScreen(Screen):
    name = "feed"

    def __init__(self, store, realtime, context=None, notices=None):
        super().__init__(store, realtime, context, notices)
        self.posts: LiveList[Post] = LiveList(NEWEST_FIRST)
        self.comments: Dict[str, LiveList[Comment]] = {}
        self.feed_type = GLOBAL
        self._liked: Set[str] = set()

    # ============================================================================
    # LOADING
    # ============================================================================

    async def load(self) -> None:
        rows = await self._read("posts", self.store.select(
            "posts", joins=AUTHOR, order="created_at", desc=True), default=[])
        if self.user_id:
            liked_rows = await self._read("likes", self.store.select(
                "post_likes", {"user_id": self.user_id}, columns="post_id"), default=[])
            self._liked = {row["post_id"] for row in liked_rows}
        self.posts.reset([self._viewer_state(parse(Post, row)) for row in rows])
        logger.info(f"Loaded {len(rows)} posts")

    async def subscribe(self) -> None:
        await self._subscribe("posts", [INSERT, UPDATE, DELETE], self._on_post_change)

    def _viewer_state(self, post: Post) -> Post:
        return post.model_copy(update={"user_has_liked": post.id in self._liked})

    async def _fetch_post(self, post_id: str) -> Optional[Post]:
        rows = await self.store.select("posts", {"id": post_id}, joins=AUTHOR, limit=1)
        return parse(Post, rows[0]) if rows else None

    # ============================================================================
    # REALTIME
    # ============================================================================

    async def _on_post_change(self, event: ChangeEvent) -> None:
        if event.type == DELETE:
            self.posts.merge_delete(event.old.get("id"))
            return
        if event.type == UPDATE:
            self._apply_pushed_update(parse(Post, event.new))
            return

        # Pushed rows carry no author; re-read with the join.
        try:
            post = await self._fetch_post(event.new["id"]) or parse(Post, event.new)
        except UniLinkError as e:
            logger.warning(f"Could not load author for pushed post {event.new.get('id')}: {e}")
            post = parse(Post, event.new)
        self.posts.merge_insert(self._viewer_state(post))

    def _apply_pushed_update(self, pushed: Post) -> None:
        current = self.posts.get(pushed.id)
        if current is None:
            return
        patch = {
            "content": pushed.content,
            "image_url": pushed.image_url,
            "project_link": pushed.project_link,
            "tag": pushed.tag,
        }
        # Local intent wins while our own writes for this post are queued.
        if not self.coordinator.in_flight(("posts", pushed.id)):
            patch["likes"] = pushed.likes
        if not self.coordinator.in_flight(("posts", pushed.id, "comments")):
            patch["comments_count"] = pushed.comments_count
        self.posts.merge_update(current.model_copy(update=patch))

    # ============================================================================
    # VIEW
    # ============================================================================

    @property
    def campus_available(self) -> bool:
        return isinstance(self.profile, StudentProfile) and bool(self.profile.university)

    def set_feed_type(self, feed_type: str) -> None:
        if feed_type not in (GLOBAL, CAMPUS):
            raise InputValidationError(f"Unknown feed type: {feed_type}")
        self.feed_type = feed_type

    def visible_posts(self) -> List[Post]:
        posts = self.posts.items()
        if self.feed_type == CAMPUS and self.campus_available:
            university = self.profile.university
            posts = [p for p in posts if getattr(p.author, "university", None) == university]
        return posts

    def liked(self, post_id: str) -> bool:
        return post_id in self._liked

    # ============================================================================
    # MUTATIONS
    # ============================================================================

    def _mark_liked(self, post_id: str, liked: bool) -> None:
        if liked:
            self._liked.add(post_id)
        else:
            self._liked.discard(post_id)

    def _patch_post(self, post_id: str, **changes) -> None:
        current = self.posts.get(post_id)
        if current is not None:
            self.posts.put(current.model_copy(update=changes))

    async def _sync_counter(self, post_id: str, source_table: str, column: str) -> Optional[int]:
        """Recount ``source_table`` rows for the post and write the total back to ``posts``."""
        try:
            total = await self.store.count(source_table, {"post_id": post_id})
        except UniLinkError as e:
            logger.warning(f"Could not recount {column} for post {post_id}: {e}")
            return None
        try:
            await self.store.update("posts", {column: total}, {"id": post_id})
        except UniLinkError as e:
            logger.warning(f"Could not store {column}={total} for post {post_id}: {e}")
        return total

    @requires_session
    async def create_post(self, content: str, image_url: Optional[str] = None,
                          project_link: Optional[str] = None) -> MutationResult:
        """
        Publish a post; it is shown at once under a temporary id.

        Args:
            content: Post text (may be empty when an image is attached)
            image_url: Optional URL of an already hosted image
            project_link: Optional link to a project

        Returns:
            MutationResult: value is the stored Post on success
        """
        content = (content or "").strip()
        image_url = (image_url or "").strip()
        if not content and not image_url:
            raise InputValidationError("A post needs text or an image")

        me = self.user_id
        tag = ORGANIZATION_TAG if is_organization(self.profile) else STUDENT_TAG
        placeholder = Post(id=new_temp_id(), user_id=me, content=content, image_url=image_url or None,
                           project_link=project_link or None, tag=tag, author=self.profile)

        def apply():
            temp_id = self.posts.add_placeholder(placeholder)
            return lambda: self.posts.discard(temp_id)

        async def remote():
            stored = await self.store.insert("posts", clean_row({
                "user_id": me,
                "content": content,
                "image_url": placeholder.image_url,
                "project_link": placeholder.project_link,
                "tag": tag,
                "likes": 0,
                "comments_count": 0,
            }))
            return parse(Post, stored).model_copy(update={"author": self.profile})

        def confirm(post: Post):
            self.posts.confirm(placeholder.id, self._viewer_state(post))

        return await self.coordinator.run(Mutation(
            key=("posts", placeholder.id), apply=apply, remote=remote, confirm=confirm,
            label="publish your post",
        ))

    @requires_session
    async def toggle_like(self, post_id: str) -> MutationResult:
        post = self.posts.get(post_id)
        if post is None or is_temp_id(post_id):
            raise InputValidationError("This post cannot be liked yet")

        me = self.user_id
        liking = not post.user_has_liked

        def apply():
            before = self.posts.get(post_id)
            delta = 1 if liking else -1
            self._patch_post(post_id, likes=max(0, before.likes + delta), user_has_liked=liking)
            self._mark_liked(post_id, liking)

            def undo():
                self._patch_post(post_id, likes=before.likes, user_has_liked=before.user_has_liked)
                self._mark_liked(post_id, before.user_has_liked)

            return undo

        async def remote():
            if liking:
                await self.store.insert("post_likes", {"post_id": post_id, "user_id": me})
                await send_notification(self.store, post.user_id, me, NotificationType.LIKE,
                                        "liked your post", self.actor, related_id=post_id)
            else:
                await self.store.delete("post_likes", {"post_id": post_id, "user_id": me})
            return await self._sync_counter(post_id, "post_likes", "likes")

        def confirm(total: Optional[int]):
            if total is not None:
                self._patch_post(post_id, likes=total)

        return await self.coordinator.run(Mutation(
            key=("posts", post_id), apply=apply, remote=remote, confirm=confirm,
            label="update your like",
        ))

    # ============================================================================
    # COMMENTS
    # ============================================================================

    def thread(self, post_id: str) -> LiveList[Comment]:
        if post_id not in self.comments:
            self.comments[post_id] = LiveList(OLDEST_FIRST)
        return self.comments[post_id]

    async def load_comments(self, post_id: str) -> List[Comment]:
        """Fetch a post's comment thread, oldest first."""
        rows = await self._read("comments", self.store.select(
            "comments", {"post_id": post_id}, joins=AUTHOR, order="created_at"), default=[])
        thread = self.thread(post_id)
        thread.reset([parse(Comment, row) for row in rows])
        return thread.items()

    @requires_session
    async def add_comment(self, post_id: str, content: str) -> MutationResult:
        content = (content or "").strip()
        if not content:
            raise InputValidationError("Comment cannot be empty")
        post = self.posts.get(post_id)
        if post is None or is_temp_id(post_id):
            raise InputValidationError("This post cannot be commented on yet")

        me = self.user_id
        thread = self.thread(post_id)
        placeholder = Comment(id=new_temp_id(), post_id=post_id, user_id=me, content=content, author=self.profile)

        def apply():
            thread.add_placeholder(placeholder)
            current = self.posts.get(post_id)
            self._patch_post(post_id, comments_count=current.comments_count + 1)

            def undo():
                latest = self.posts.get(post_id)
                if latest is not None:
                    self._patch_post(post_id, comments_count=max(0, latest.comments_count - 1))

            return undo

        async def remote():
            stored = await self.store.insert("comments", {"post_id": post_id, "user_id": me, "content": content})
            await send_notification(self.store, post.user_id, me, NotificationType.COMMENT,
                                    "commented on your post", self.actor, related_id=post_id)
            total = await self._sync_counter(post_id, "comments", "comments_count")
            return parse(Comment, stored).model_copy(update={"author": self.profile}), total

        def settle(result):
            comment, _ = result
            thread.confirm(placeholder.id, comment)

        def confirm(result):
            _, total = result
            if total is not None:
                self._patch_post(post_id, comments_count=total)

        return await self.coordinator.run(Mutation(
            key=("posts", post_id, "comments"), apply=apply, remote=remote,
            confirm=confirm, settle=settle, discard=lambda: thread.discard(placeholder.id),
            label="post your comment",
        ))

    # ============================================================================
    # RESYNC
    # ============================================================================

    async def resync(self, key: Hashable) -> None:
        post_id = key[1]
        if is_temp_id(post_id):
            return
        post = await self._fetch_post(post_id)
        if post is None:
            self.posts.remove(post_id)
            return
        if self.user_id:
            rows = await self.store.select("post_likes", {"post_id": post_id, "user_id": self.user_id},
                                           columns="post_id", limit=1)
            self._mark_liked(post_id, bool(rows))
        self.posts.put(self._viewer_state(post))
