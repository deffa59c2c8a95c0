"""Registry of live bullets and their expiry timers.

Expiry timers run on the host clock: a bullet's lifetime is a wall-clock
duration that is already scaled for the playback rate. The owner calls
``advance(host_ms)`` once per tick to retire finished bullets.
"""

from __future__ import annotations

from collections.abc import Iterator
import logging

from danmaku.core.bullets.models import (
    ActiveBullet,
    BulletSnapshot,
    BulletState,
    LanePoolKind,
)
from danmaku.core.timing.tasks import TaskQueue

logger = logging.getLogger(__name__)


class DuplicateBulletError(KeyError):
    """Raised when a comment id already has a live bullet."""

    pass


class BulletRegistry:
    """Live bullets keyed by comment id, at most one per id.

    Pause, resume and rate changes are applied to every bullet at once so
    that their remaining durations stay consistent with the virtual clock.

    Example:
        >>> registry = BulletRegistry()
        >>> registry.spawn(bullet, host_ms=0.0)
        True
        >>> registry.advance(bullet.duration_ms)
        [bullet.id]
    """

    def __init__(self) -> None:
        self._bullets: dict[int, ActiveBullet] = {}
        self._expiry = TaskQueue("bullet-expiry")
        self._running = True
        self._expired_ids: list[int] = []
        self.expired_total = 0

    def __len__(self) -> int:
        return len(self._bullets)

    def __contains__(self, comment_id: object) -> bool:
        return comment_id in self._bullets

    def __iter__(self) -> Iterator[ActiveBullet]:
        return iter(list(self._bullets.values()))

    @property
    def running(self) -> bool:
        return self._running

    def get(self, comment_id: int) -> ActiveBullet | None:
        return self._bullets.get(comment_id)

    def in_pool(self, pool: LanePoolKind) -> list[ActiveBullet]:
        return [b for b in self._bullets.values() if b.pool == pool]

    def in_row(self, pool: LanePoolKind, row: int) -> list[ActiveBullet]:
        return [b for b in self._bullets.values() if b.pool == pool and b.row == row]

    def count(self, state: BulletState) -> int:
        return sum(1 for b in self._bullets.values() if b.state == state)

    def _register(self, bullet: ActiveBullet) -> None:
        if bullet.id in self._bullets:
            raise DuplicateBulletError(f"Comment {bullet.id} already has a live bullet")
        self._bullets[bullet.id] = bullet

    def reserve(self, bullet: ActiveBullet) -> None:
        """Register a bullet whose spawn is deferred.

        The bullet holds its row (for collision checks) but has no timer
        until ``activate()``.

        Raises:
            DuplicateBulletError: If the id is already live.
        """
        bullet.state = BulletState.SCHEDULED
        self._register(bullet)

    def spawn(self, bullet: ActiveBullet, host_ms: float, start_offset_ms: float = 0.0) -> bool:
        """Register and start a bullet in one step.

        Returns:
            False if the offset consumed the whole lifetime; the bullet is
            then not registered.

        Raises:
            DuplicateBulletError: If the id is already live.
        """
        self._register(bullet)
        return self.activate(bullet.id, host_ms, start_offset_ms)

    def activate(self, comment_id: int, host_ms: float, start_offset_ms: float = 0.0) -> bool:
        """Move a registered bullet to SPAWNED, optionally skipping into its motion.

        Args:
            comment_id: Bullet to start.
            host_ms: Host time of the spawn.
            start_offset_ms: Host ms of motion already elapsed (catch-up).

        Returns:
            True if the bullet is now on screen; False if it was retired
            because the offset covers its whole lifetime.
        """
        bullet = self._bullets[comment_id]
        if bullet.state != BulletState.SCHEDULED:
            return bullet.state == BulletState.SPAWNED

        offset = max(0.0, start_offset_ms)
        if offset >= bullet.duration_ms:
            logger.debug(f"Bullet {comment_id} offset {offset:.0f}ms exceeds lifetime")
            self._retire(comment_id)
            return False

        bullet.state = BulletState.SPAWNED
        bullet.anchor_progress = offset / bullet.duration_ms
        bullet.remaining_ms = bullet.duration_ms - offset
        bullet.run_started_ms = None
        if self._running:
            self._start(bullet, host_ms)
        return True

    def _start(self, bullet: ActiveBullet, host_ms: float) -> None:
        bullet.run_started_ms = host_ms
        bullet_id = bullet.id
        self._expiry.schedule(
            host_ms + bullet.remaining_ms, lambda: self._retire(bullet_id), key=bullet_id
        )

    def _retire(self, comment_id: int) -> None:
        bullet = self._bullets.pop(comment_id, None)
        if bullet is None:
            return
        self._expiry.cancel_key(comment_id)
        bullet.state = BulletState.EXPIRED
        bullet.run_started_ms = None
        self._expired_ids.append(comment_id)
        self.expired_total += 1

    def remove(self, comment_id: int) -> bool:
        """Retire a bullet early (e.g. a cancelled deferred spawn)."""
        if comment_id not in self._bullets:
            return False
        self._retire(comment_id)
        return True

    def advance(self, host_ms: float) -> list[int]:
        """Retire every bullet whose lifetime has ended by ``host_ms``.

        Returns:
            Ids retired since the previous call, including early removals.
        """
        if self._running:
            self._expiry.run_due(host_ms)
        expired, self._expired_ids = self._expired_ids, []
        return expired

    def pause(self, host_ms: float) -> None:
        """Freeze every running bullet at its current progress."""
        if not self._running:
            return
        self._running = False
        for bullet in self._bullets.values():
            if bullet.is_running:
                bullet.settle(host_ms)
                bullet.run_started_ms = None
        self._expiry.cancel_all()

    def resume(self, host_ms: float) -> None:
        """Restart every spawned bullet with its remaining duration."""
        if self._running:
            return
        self._running = True
        for bullet in self._bullets.values():
            if bullet.state == BulletState.SPAWNED:
                self._start(bullet, host_ms)

    def rescale(self, old_rate: float, new_rate: float, host_ms: float) -> None:
        """Apply a playback rate change.

        Remaining and total durations scale by ``old_rate / new_rate``, so
        positions are continuous and bullets keep pace with the video.
        """
        if old_rate <= 0 or new_rate <= 0 or old_rate == new_rate:
            return
        factor = old_rate / new_rate
        for bullet in self._bullets.values():
            running = bullet.is_running
            bullet.settle(host_ms)
            bullet.remaining_ms *= factor
            bullet.duration_ms *= factor
            if running:
                self._start(bullet, host_ms)
        logger.debug(f"Rescaled {len(self._bullets)} bullets by {factor:.3f}")

    def skip(self, delta_ms: float, host_ms: float) -> list[int]:
        """Move every spawned bullet ``delta_ms`` host ms further along.

        Applied when the video position is corrected forward, so bullets on
        screen stay where the corrected video time puts them. Scheduled
        bullets are untouched; their offset is taken when they activate.

        Returns:
            Ids of bullets whose lifetime ended within the skipped span.
        """
        if delta_ms <= 0:
            return []
        finished: list[int] = []
        for bullet in list(self._bullets.values()):
            if bullet.state != BulletState.SPAWNED:
                continue
            running = bullet.is_running
            bullet.settle(host_ms)
            if bullet.remaining_ms <= delta_ms:
                self._retire(bullet.id)
                finished.append(bullet.id)
                continue
            gained = delta_ms / bullet.remaining_ms * (1.0 - bullet.anchor_progress)
            bullet.anchor_progress += gained
            bullet.remaining_ms -= delta_ms
            if running:
                self._start(bullet, host_ms)
        return finished

    def reset(self) -> int:
        """Drop every bullet and timer. Returns how many bullets were live."""
        live = len(self._bullets)
        self._expiry.cancel_all()
        for bullet in self._bullets.values():
            bullet.state = BulletState.EXPIRED
            bullet.run_started_ms = None
        self._bullets.clear()
        self._expired_ids.clear()
        return live

    def close(self) -> None:
        self.reset()
        self._expiry.close()

    def snapshot(self, host_ms: float, screen_width: float) -> tuple[BulletSnapshot, ...]:
        """Snapshots of on-screen bullets in spawn order."""
        return tuple(
            BulletSnapshot.of(b, host_ms, screen_width)
            for b in self._bullets.values()
            if b.state == BulletState.SPAWNED
        )
