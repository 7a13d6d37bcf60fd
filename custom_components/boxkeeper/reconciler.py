"""Persistence reconciliation for Boxkeeper.

The reconciler owns every gateway call made by the collection store. It issues
single upserts and removals, and runs ordered sequences of upserts one at a
time, capturing a per-step outcome so that partial failure is an inspectable
result instead of a side effect of iteration.

No call here raises for a failed write. Failures are logged and reported as
``None`` / ``False`` / a failed step; callers decide what to do locally.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, Literal, Protocol, TypeVar

from .const import DOMAIN

LOGGER = logging.getLogger(__name__)

EntityT = TypeVar("EntityT")


@dataclass(frozen=True)
class GatewayResult(Generic[EntityT]):
    """Outcome of a single gateway call.

    On a successful upsert ``entity`` is the committed entity echoed back by
    the gateway, including any id it assigned.
    """

    status: Literal["success", "error"]
    entity: EntityT | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, entity: EntityT | None = None) -> GatewayResult[EntityT]:
        return cls("success", entity)

    @classmethod
    def error(cls) -> GatewayResult[EntityT]:
        return cls("error", None)


class EntityGateway(Protocol[EntityT]):
    """Persistence collaborator for one entity kind."""

    async def async_upsert(self, entity: EntityT) -> GatewayResult[EntityT]: ...

    async def async_remove(self, entity_id: str) -> GatewayResult[EntityT]: ...


@dataclass(frozen=True)
class StepOutcome(Generic[EntityT]):
    """Result of one step of a persisted sequence."""

    requested: EntityT
    committed: EntityT | None

    @property
    def ok(self) -> bool:
        return self.committed is not None


@dataclass
class SequenceOutcome(Generic[EntityT]):
    """Ordered per-step results of a persisted sequence."""

    steps: list[StepOutcome[EntityT]] = field(default_factory=list)

    @property
    def committed(self) -> list[EntityT]:
        return [step.committed for step in self.steps if step.committed is not None]

    @property
    def failed(self) -> list[EntityT]:
        return [step.requested for step in self.steps if step.committed is None]

    @property
    def partial(self) -> bool:
        """True when at least one step was not confirmed."""

        return any(not step.ok for step in self.steps)


class Reconciler(Generic[EntityT]):
    """Run gateway calls for one entity kind, strictly one at a time per call chain."""

    def __init__(self, gateway: EntityGateway[EntityT], *, kind: str) -> None:
        self._gateway = gateway
        self._kind = kind

    @property
    def kind(self) -> str:
        return self._kind

    async def async_persist_one(self, entity: EntityT) -> EntityT | None:
        """Upsert ``entity`` and return the committed entity, or ``None`` on failure."""

        entity_id = getattr(entity, "id", None)
        try:
            result = await self._gateway.async_upsert(entity)
        except Exception:
            LOGGER.warning(
                "Gateway upsert raised",
                exc_info=True,
                extra={"domain": DOMAIN, "op": f"{self._kind}_upsert", "entity_id": entity_id},
            )
            return None
        if not result.ok or result.entity is None:
            LOGGER.warning(
                "Gateway upsert failed",
                extra={"domain": DOMAIN, "op": f"{self._kind}_upsert", "entity_id": entity_id},
            )
            return None
        return result.entity

    async def async_remove_one(self, entity_id: str) -> bool:
        """Remove an entity by id. Returns True only when the gateway confirms."""

        try:
            result = await self._gateway.async_remove(entity_id)
        except Exception:
            LOGGER.warning(
                "Gateway remove raised",
                exc_info=True,
                extra={"domain": DOMAIN, "op": f"{self._kind}_remove", "entity_id": entity_id},
            )
            return False
        if not result.ok:
            LOGGER.warning(
                "Gateway remove failed",
                extra={"domain": DOMAIN, "op": f"{self._kind}_remove", "entity_id": entity_id},
            )
            return False
        return True

    async def async_persist_sequence(
        self,
        entities: Iterable[EntityT],
        *,
        on_commit: Callable[[EntityT], None] | None = None,
    ) -> SequenceOutcome[EntityT]:
        """Upsert ``entities`` in order, awaiting each before issuing the next.

        A failed step does not stop the sequence. ``on_commit`` runs right
        after each confirmed step, so local state can follow confirmations in
        the same order they were made.
        """

        outcome: SequenceOutcome[EntityT] = SequenceOutcome()
        for entity in entities:
            committed = await self.async_persist_one(entity)
            outcome.steps.append(StepOutcome(requested=entity, committed=committed))
            if committed is not None and on_commit is not None:
                on_commit(committed)

        if outcome.partial:
            LOGGER.warning(
                "Sequence completed with %s of %s steps unconfirmed",
                len(outcome.failed),
                len(outcome.steps),
                extra={
                    "domain": DOMAIN,
                    "op": f"{self._kind}_persist_sequence",
                    "failed_ids": [getattr(e, "id", None) for e in outcome.failed],
                },
            )
        return outcome
