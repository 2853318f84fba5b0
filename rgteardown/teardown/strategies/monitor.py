"""Removal strategy for data collection rules and their associations."""

from __future__ import annotations

import logging
from dataclasses import replace

from ...cloud.errors import ErrorKind
from ...cloud.ids import association_target, group_of
from ...models.outcome import RemovalOutcome
from ...models.resource import ResourceDescriptor
from ..retry import Technique
from .base import RemovalContext, RemovalStrategy, StepLog

logger = logging.getLogger(__name__)

ASSOCIATION_PATH = "providers/Microsoft.Insights/dataCollectionRuleAssociations"


class DataCollectionRuleStrategy(RemovalStrategy):
    """Delete every association of a data collection rule, then the rule.

    Each association is removed by name and target first, then by a raw REST
    DELETE on the constructed association URL, then by its full resource ID.
    The target is always taken from the association's own ID.
    Targets in a protected group are left alone and keep the rule in place;
    targets in any other group need a cross-group approval.
    """

    @property
    def name(self) -> str:
        return "dcr"

    def remove(self, descriptor: ResourceDescriptor, context: RemovalContext) -> RemovalOutcome:
        client = context.client
        rule_group = group_of(descriptor.id) or descriptor.group
        log = StepLog(descriptor.id, self.name)

        associations = self.read(context, lambda: client.list_rule_associations(descriptor.name, rule_group))

        # Any rejection of the CLI shape moves on to the next technique
        policy = replace(context.policy, fallback_on=context.policy.fallback_on | {ErrorKind.FATAL})

        for association in associations:
            target = association_target(association.id)
            if not target:
                log.record(
                    RemovalOutcome.failed(association.id, "association ID has no target resource", 0, "parse"),
                    f"association {association.name}",
                )
                continue

            blocked = self.foreign_block(
                context,
                target,
                "delete data collection rule association on a resource in another resource group",
                [f"data collection rule: {descriptor.id}", f"association: {association.name}"],
            )
            if blocked:
                return RemovalOutcome.skipped(
                    descriptor.id, f"association {association.name} retained: {blocked}", log.attempts
                )

            outcome = self.run(
                context,
                association.id,
                "association-delete",
                lambda a=association, t=target: client.delete_rule_association(a.name, t),
                Technique(
                    "rest-delete",
                    lambda a=association, t=target: client.rest("DELETE", f"{t}/{ASSOCIATION_PATH}/{a.name}"),
                ),
                Technique("delete-by-id", lambda a=association: client.delete_resource(a.id)),
                policy=policy,
            )
            log.record(outcome, f"association {association.name}")

        if log.failed:
            return log.fail()

        if associations:
            logger.info(f"Removed {len(associations)} association(s) of rule {descriptor.name}")
        return log.finish(self.delete(context, descriptor.id))
