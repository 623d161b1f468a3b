"""
Reward image cache — filesystem-backed, with per-subject generation coalescing.

Lookup order for a subject:
  1. persisted artifact in the content store → returned, generator untouched
  2. generation already in flight for the slug → await the same task
  3. otherwise start one generation task, register it under the slug and
     await it; the task persists the image on success

The in-flight map (slug -> asyncio.Task) is the only synchronization
primitive. Callers await through asyncio.shield so a waiter that gets
cancelled never cancels the shared generation. Every generation runs under
a timeout; failed, timed-out and cancelled tasks are deregistered so the
slug can be retried.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Optional

from dinodivision.core.errors import (
    ImageGenerationCancelled,
    ImageGenerationError,
    ImageGenerationTimeout,
)
from dinodivision.services.image_store import ImageContentStore, StoredImage, slugify

logger = logging.getLogger("dinodivision.image_cache")

PrefetchStatus = Literal["already-cached", "started", "already-in-flight"]
GenerationStatus = Literal["missing", "generating", "ready"]


@dataclass(frozen=True)
class GeneratedImage:
    """What the image provider hands back: a MIME type and base64 bytes."""

    mime_type: str
    bytes_base64: str


@dataclass(frozen=True)
class CachedImage:
    subject_name: str
    slug: str
    mime_type: str
    image_path: str
    file_path: str
    generated: bool


@dataclass(frozen=True)
class ImageStatus:
    subject_name: str
    status: GenerationStatus
    image_path: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "subjectName": self.subject_name,
            "status": self.status,
            "imagePath": self.image_path,
        }


GenerateFn = Callable[[str], Awaitable[GeneratedImage]]


class ImageGenerationCache:
    def __init__(
        self,
        store: ImageContentStore,
        generate: GenerateFn,
        timeout_seconds: Optional[float] = 90.0,
    ):
        self.store = store
        self._generate = generate
        self.timeout_seconds = timeout_seconds
        self._in_flight: dict[str, asyncio.Task] = {}

    # ── queries ──────────────────────────────────────────────────────────

    def is_generating(self, subject_name: str) -> bool:
        return slugify(subject_name) in self._in_flight

    def status(self, subject_name: str) -> ImageStatus:
        slug = slugify(subject_name)
        if slug in self._in_flight:
            return ImageStatus(subject_name, "generating")
        stored = self.store.find(slug)
        if stored is not None:
            return ImageStatus(subject_name, "ready", self.store.public_path(stored))
        return ImageStatus(subject_name, "missing")

    # ── resolution ───────────────────────────────────────────────────────

    async def get(self, subject_name: str) -> CachedImage:
        """
        Return the artifact for a subject, generating it at most once.

        Raises:
            ImageGenerationError (or its Timeout/Cancelled subclasses).
        """
        slug = slugify(subject_name)
        stored = self.store.find(slug)
        if stored is not None:
            return self._cached(subject_name, stored, generated=False)

        task = self._in_flight.get(slug)
        if task is None:
            task = self._start(slug, subject_name)
        else:
            logger.debug("[image_cache.get] joining in-flight generation for %s", slug)
        return await self._await_shared(task, subject_name)

    def prefetch(self, subject_name: str) -> PrefetchStatus:
        """Kick off generation without waiting. Needs a running event loop."""
        slug = slugify(subject_name)
        if self.store.exists(slug):
            return "already-cached"
        if slug in self._in_flight:
            return "already-in-flight"
        self._start(slug, subject_name)
        logger.info("[image_cache.prefetch] started generation for %s", slug)
        return "started"

    # ── cancellation ─────────────────────────────────────────────────────

    def cancel(self, subject_name: str) -> bool:
        task = self._in_flight.get(slugify(subject_name))
        if task is None or task.done():
            return False
        return task.cancel()

    def cancel_all(self) -> int:
        cancelled = 0
        for task in list(self._in_flight.values()):
            if not task.done() and task.cancel():
                cancelled += 1
        return cancelled

    async def aclose(self) -> None:
        """Cancel everything in flight and wait for the tasks to unwind."""
        tasks = list(self._in_flight.values())
        self.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── internals ────────────────────────────────────────────────────────

    def _cached(self, subject_name: str, stored: StoredImage, generated: bool) -> CachedImage:
        return CachedImage(
            subject_name=subject_name,
            slug=stored.slug,
            mime_type=stored.mime_type,
            image_path=self.store.public_path(stored),
            file_path=self.store.public_path(stored, cache_bust=False),
            generated=generated,
        )

    def _start(self, slug: str, subject_name: str) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(slug, subject_name), name=f"reward-image:{slug}")
        self._in_flight[slug] = task
        task.add_done_callback(lambda t: self._release(slug, t))
        return task

    def _release(self, slug: str, task: asyncio.Task) -> None:
        if self._in_flight.get(slug) is task:
            del self._in_flight[slug]
        if task.cancelled():
            logger.info("[image_cache] generation for %s cancelled", slug)
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("[image_cache] generation for %s failed: %s", slug, exc)

    async def _run(self, slug: str, subject_name: str) -> CachedImage:
        try:
            image = await asyncio.wait_for(
                self._generate(subject_name), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise ImageGenerationTimeout(
                f"Image generation for {subject_name!r} timed out after {self.timeout_seconds}s"
            ) from None
        except ImageGenerationError:
            raise
        except Exception as exc:
            raise ImageGenerationError(
                f"Image generation for {subject_name!r} failed: {exc}"
            ) from exc

        try:
            stored = await asyncio.to_thread(
                self.store.write, slug, image.mime_type, image.bytes_base64
            )
        except (ValueError, OSError) as exc:
            raise ImageGenerationError(
                f"Generated image for {subject_name!r} could not be stored: {exc}"
            ) from exc

        logger.info("[image_cache] stored %s", stored.file_name)
        return self._cached(subject_name, stored, generated=True)

    async def _await_shared(self, task: asyncio.Task, subject_name: str) -> CachedImage:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise ImageGenerationCancelled(
                    f"Image generation for {subject_name!r} was cancelled"
                ) from None
            raise
