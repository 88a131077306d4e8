"""Offline write queue and its replay driver.

See :class:`~apicache.offline.queue.OfflineWriteQueue` for the durable
FIFO and :class:`~apicache.offline.replay.Replayer` for draining it.
"""

from apicache.offline.queue import OfflineWriteQueue
from apicache.offline.replay import Replayer, replay_pending

__all__ = ["OfflineWriteQueue", "Replayer", "replay_pending"]
