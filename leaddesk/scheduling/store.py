"""In-process store for booking negotiations.

Negotiations are conversational state only, so they live in memory rather
than in the database. Each one gets its own ``asyncio.Lock`` so that a
duplicate click or a network retry on the same negotiation is processed
after the first request finished, never interleaved with it.
"""
from __future__ import annotations

import asyncio
import datetime as _dt
import logging
import uuid
from collections import OrderedDict
from typing import Dict

from leaddesk.core.exceptions import NotFoundError
from leaddesk.scheduling.booking import Negotiation

logger = logging.getLogger(__name__)


class NegotiationStore:
    """Negotiations keyed by id, oldest first. Entries never expire on their own."""

    def __init__(self) -> None:
        self._items: OrderedDict[uuid.UUID, Negotiation] = OrderedDict()
        self._locks: Dict[uuid.UUID, asyncio.Lock] = {}

    def add(self, negotiation: Negotiation) -> Negotiation:
        self._items[negotiation.id] = negotiation
        self._locks[negotiation.id] = asyncio.Lock()
        return negotiation

    def get(self, negotiation_id: uuid.UUID) -> Negotiation:
        negotiation = self._items.get(negotiation_id)
        if negotiation is None:
            raise NotFoundError(
                "Booking negotiation not found",
                details={"negotiation_id": str(negotiation_id)},
            )
        return negotiation

    def lock(self, negotiation_id: uuid.UUID) -> asyncio.Lock:
        """Per-negotiation lock; raises NotFoundError for unknown ids."""
        self.get(negotiation_id)
        return self._locks[negotiation_id]

    def purge_older_than(self, cutoff: _dt.datetime) -> int:
        """Drop negotiations not touched since ``cutoff`` (abandoned conversations).

        Returns the number removed. Locked (in-flight) negotiations are kept.
        """
        stale = [
            nid for nid, n in self._items.items()
            if n.updated_at < cutoff and not self._locks[nid].locked()
        ]
        for nid in stale:
            self._items.pop(nid, None)
            self._locks.pop(nid, None)
        if stale:
            logger.info("NegotiationStore: purged %d abandoned negotiations", len(stale))
        return len(stale)

    @property
    def size(self) -> int:
        return len(self._items)
