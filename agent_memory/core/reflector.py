"""Reflection pass: expiry, compaction and capacity control for one memory key."""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..config import EngineSettings
from ..errors import CapabilityUnavailable
from ..models import MemoryRecord, ReflectionReport
from ..storage import MemoryStore
from ..utils import days, days_between, now_utc
from .capabilities import MemoryCapabilities

logger = logging.getLogger(__name__)


class MemoryReflector:
    """
    Garbage collector for long-term memory.

    A pass over one (user, agent) key runs, in order:

    1. Expiry: records older than their salience-scaled TTL are expired;
       records past ``stale_fraction`` of it are marked stale.
    2. Compaction: active records are grouped transitively by similarity at
       or above the merge threshold; each group of two or more becomes one
       summary record and its members are expired. Rounds repeat until no
       group is left, so a second pass finds nothing to do.
    3. Capacity: the lowest-salience non-summary records are expired while
       the key holds more than the agent's ``max_memories_per_user``.
    4. Purge (optional): long-expired records are physically deleted.

    If the model is unavailable, compaction is skipped and reported; the
    rest of the pass still runs. Every record transition is a single document
    write, so stopping early on a timeout never leaves a half-written record.
    """

    def __init__(
        self,
        memory_store: MemoryStore,
        capabilities: MemoryCapabilities,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        """
        Initialize the reflector.

        Args:
            memory_store: Store holding the records
            capabilities: Similarity and condensation
            settings: Engine tunables
            clock: Source of the current time
        """
        self.store = memory_store
        self.capabilities = capabilities
        self.settings = settings or EngineSettings()
        self.clock = clock

    def effective_ttl_days(self, record: MemoryRecord, base_ttl_days: float) -> float:
        """TTL scaled by salience; summaries start from a longer base."""
        base = base_ttl_days
        if record.kind == "summary":
            base *= self.settings.summary_ttl_multiplier
        return base * (0.5 + record.salience)

    def reflect(
        self, user_id: str, agent_id: str, timeout: Optional[float] = None
    ) -> ReflectionReport:
        """
        Run one reflection pass over a key.

        Args:
            user_id: Owner of the key
            agent_id: Agent of the key
            timeout: Seconds the caller is willing to wait, lock wait included

        Returns:
            ReflectionReport; ``timed_out`` is set when the deadline cut the
            pass short and ``compaction_skipped`` when the model was unavailable
        """
        report = ReflectionReport()
        deadline = time.monotonic() + timeout if timeout is not None else None
        lock_wait = self.settings.lock_timeout_seconds
        if timeout is not None:
            lock_wait = min(lock_wait, timeout)

        with self.store.locked(user_id, agent_id, timeout=lock_wait):
            now = self.clock()
            config = self.store.get_agent_config(agent_id)
            base_ttl = config.retention_days or self.settings.base_ttl_days

            records = self._expire(user_id, agent_id, now, base_ttl, report, deadline)
            if not report.timed_out:
                records = self._compact(user_id, agent_id, records, now, report, deadline)
            if not report.timed_out:
                self._enforce_capacity(
                    records, config.max_memories_per_user, now, report
                )
            if not report.timed_out and self.settings.purge_after_days is not None:
                cutoff = now - days(self.settings.purge_after_days)
                report.purged = self.store.purge_expired(user_id, agent_id, cutoff)

        logger.info(
            "Reflection for user=%s agent=%s: expired=%d compacted=%d stale=%d%s%s",
            user_id,
            agent_id,
            report.expired,
            report.compacted,
            report.stale,
            " (compaction skipped)" if report.compaction_skipped else "",
            " (timed out)" if report.timed_out else "",
        )
        return report

    @staticmethod
    def _past(deadline: Optional[float]) -> bool:
        return deadline is not None and time.monotonic() >= deadline

    def _expire(
        self,
        user_id: str,
        agent_id: str,
        now: datetime,
        base_ttl: float,
        report: ReflectionReport,
        deadline: Optional[float],
    ) -> List[MemoryRecord]:
        survivors = []
        for record in self.store.list_active(user_id, agent_id):
            if self._past(deadline):
                report.timed_out = True
                logger.warning("Reflection deadline reached during expiry")
                break
            age = days_between(record.last_reinforced_at, now)
            ttl = self.effective_ttl_days(record, base_ttl)
            if age > ttl:
                self.store.mark_expired(record, "ttl", now)
                report.expired += 1
                logger.debug("Expired memory %s (age %.1fd > ttl %.1fd)", record.id, age, ttl)
                continue
            if record.state == "active" and age > ttl * self.settings.stale_fraction:
                record.state = "stale"
                self.store.put(record)
                report.stale += 1
            survivors.append(record)
        return survivors

    def _group(self, records: List[MemoryRecord]) -> List[List[MemoryRecord]]:
        """Transitive similarity groups of size two or more (union-find)."""
        parent = list(range(len(records)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        threshold = self.settings.merge_threshold
        for i in range(len(records)):
            for j in range(i + 1, len(records)):
                if self.capabilities.similarity(records[i].content, records[j].content) >= threshold:
                    root_i, root_j = find(i), find(j)
                    if root_i != root_j:
                        parent[root_j] = root_i

        groups: Dict[int, List[MemoryRecord]] = {}
        for i, record in enumerate(records):
            groups.setdefault(find(i), []).append(record)
        return [g for g in groups.values() if len(g) >= 2]

    def _compact(
        self,
        user_id: str,
        agent_id: str,
        records: List[MemoryRecord],
        now: datetime,
        report: ReflectionReport,
        deadline: Optional[float],
    ) -> List[MemoryRecord]:
        while True:
            try:
                self.capabilities.prepare([r.content for r in records])
                groups = self._group(records)
            except CapabilityUnavailable as e:
                report.compaction_skipped = True
                logger.warning("Compaction skipped for user=%s agent=%s: %s", user_id, agent_id, e)
                return records
            if not groups:
                return records

            for group in groups:
                if self._past(deadline):
                    report.timed_out = True
                    logger.warning("Reflection deadline reached during compaction")
                    return records
                try:
                    content = self.capabilities.condense([r.content for r in group])
                except CapabilityUnavailable as e:
                    report.compaction_skipped = True
                    logger.warning(
                        "Compaction skipped for user=%s agent=%s: %s", user_id, agent_id, e
                    )
                    return records

                summary = MemoryRecord.create(
                    user_id=user_id,
                    agent_id=agent_id,
                    kind="summary",
                    content=content,
                    salience=max(r.salience for r in group),
                    timestamp=now,
                    compacted_from=[r.id for r in group],
                )
                self.store.put(summary)
                for member in group:
                    self.store.mark_expired(member, "compacted", now)

                member_ids = {r.id for r in group}
                records = [r for r in records if r.id not in member_ids] + [summary]
                report.compacted += 1
                report.expired += len(group)
                logger.info("Compacted %d memories into summary %s", len(group), summary.id)

    def _enforce_capacity(
        self,
        records: List[MemoryRecord],
        capacity: int,
        now: datetime,
        report: ReflectionReport,
    ) -> None:
        overflow = len(records) - capacity
        if capacity <= 0 or overflow <= 0:
            return
        evictable = sorted(
            (r for r in records if r.kind != "summary"),
            key=lambda r: (r.salience, r.last_reinforced_at),
        )
        for record in evictable[:overflow]:
            self.store.mark_expired(record, "capacity", now)
            report.expired += 1
        logger.info("Capacity cap %d: expired %d memories", capacity, min(overflow, len(evictable)))
