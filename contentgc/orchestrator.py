# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Deletion Orchestrator - Per-node deletion state machine.

Every candidate moves through an explicit state machine:

    MATCHED -> NOT_LINKED -> DELETABLE
    MATCHED -> DELETABLE                          (link checks disabled)
    MATCHED -> LINKED -> DELETABLE                (skipIfReferenced = false)
    MATCHED -> LINKED -> UNLINKING -> VERIFIED_CLEAR -> DELETABLE
    MATCHED -> LINKED -> UNLINKING -> STILL_LINKED
    MATCHED -> LINKED -> SKIPPED                  (over quota)
    MATCHED -> LINK_CHECK_FAILED                  (kept, referenced status unknown)
    MATCHED -> LINK_CHECK_FAILED -> DELETABLE     (skipIfReferenced = false)
    DELETABLE -> DELETED | DELETE_FAILED
    DELETABLE -> SKIPPED                          (over quota, or referenced since evaluation)

DELETED, DELETE_FAILED, STILL_LINKED and SKIPPED are terminal. A node is
only ever deleted from DELETABLE, so a node still referenced after an
unlink attempt can never be deleted when its rule asked to skip
referenced nodes.
"""

import asyncio
from typing import Dict, FrozenSet, Iterable, List

import structlog
from ulid import ULID

from contentgc.client.api import ContentGraphAPI
from contentgc.client.backoff import BackoffClient
from contentgc.config import ContentGCConfig, GCMode
from contentgc.exceptions import (
    SYSTEMIC_ERRORS,
    InvalidTransitionError,
    NotFoundError,
    RemoteAPIError,
)
from contentgc.links.resolver import LinkResolver
from contentgc.models import Candidate, CandidateState, Node
from contentgc.policy.engine import PolicyEngine
from contentgc.policy.rules import RuleSet
from contentgc.reporting.aggregate import DeletionReport, generate_report

logger = structlog.get_logger()

QUOTA_SKIP_REASON = "Exceeded max deletions per run limit"

S = CandidateState

ALLOWED_TRANSITIONS: Dict[CandidateState, FrozenSet[CandidateState]] = {
    S.MATCHED: frozenset({S.NOT_LINKED, S.LINKED, S.LINK_CHECK_FAILED, S.DELETABLE}),
    S.NOT_LINKED: frozenset({S.DELETABLE}),
    S.LINKED: frozenset({S.DELETABLE, S.UNLINKING, S.SKIPPED}),
    S.LINK_CHECK_FAILED: frozenset({S.DELETABLE}),
    S.UNLINKING: frozenset({S.VERIFIED_CLEAR, S.STILL_LINKED}),
    S.VERIFIED_CLEAR: frozenset({S.DELETABLE}),
    S.DELETABLE: frozenset({S.DELETED, S.DELETE_FAILED, S.SKIPPED}),
    S.DELETED: frozenset(),
    S.DELETE_FAILED: frozenset(),
    S.STILL_LINKED: frozenset(),
    S.SKIPPED: frozenset(),
}


def transition(candidate: Candidate, new_state: CandidateState) -> None:
    """
    Move a candidate to ``new_state``.

    Raises:
        InvalidTransitionError: If the current state cannot reach ``new_state``
    """
    if new_state not in ALLOWED_TRANSITIONS[candidate.state]:
        raise InvalidTransitionError(
            f"Illegal transition {candidate.state.value} -> {new_state.value}",
            details={"node_id": candidate.node_id, "rule_id": candidate.rule_id},
        )
    candidate.state = new_state


class DeletionOrchestrator:
    """
    Evaluates nodes against the rules and carries out the resulting plan.

    Args:
        config: Package configuration
        api: Remote graph backend
        rule_set: Deletion rules for this run
        backoff: Shared retry wrapper (built from ``config`` if omitted)
        run_id: Run identifier (a new ULID if omitted)
    """

    def __init__(
        self,
        config: ContentGCConfig,
        api: ContentGraphAPI,
        rule_set: RuleSet,
        backoff: BackoffClient | None = None,
        run_id: str | None = None,
    ):
        self.config = config
        self.api = api
        self.rule_set = rule_set
        self.backoff = backoff or BackoffClient(config)
        self.run_id = run_id or str(ULID())
        self.engine = PolicyEngine(
            rule_set,
            treat_incomplete_links_as_empty=config.treat_incomplete_links_as_empty,
        )
        self.resolver = LinkResolver(api, self.backoff, config)
        self._environment = config.environment
        self._safe_mode = self._resolve_safe_mode(config.environment)

    def _resolve_safe_mode(self, environment: str) -> bool:
        if self.config.safe_mode is not None:
            return self.config.safe_mode
        return self.rule_set.environment_settings(environment).safe_mode

    def _batches(self, items: List) -> Iterable[List]:
        size = self.config.max_concurrent_ops
        for start in range(0, len(items), size):
            yield items[start:start + size]

    # ------------------------------------------------------------------
    # Evaluation (read-only)
    # ------------------------------------------------------------------

    async def evaluate_candidates(
        self, nodes: Iterable[Node], environment: str | None = None
    ) -> List[Candidate]:
        """
        Turn a batch of nodes into candidates with a deletion decision.

        Nothing is written to the backend. The returned list preserves the
        order in which nodes were supplied.

        Args:
            nodes: Nodes to evaluate, in discovery order
            environment: Environment the nodes belong to (config default)

        Returns:
            One Candidate per node matched by a rule
        """
        environment = environment or self.config.environment
        self._environment = environment
        settings = self.rule_set.environment_settings(environment)
        safe_mode = self._safe_mode = self._resolve_safe_mode(environment)
        quota = (
            self.config.max_deletions_per_run
            if self.config.max_deletions_per_run is not None
            else settings.max_deletions_per_run
        )

        nodes = list(nodes)
        logger.info(
            "evaluation_started",
            run_id=self.run_id,
            environment=environment,
            nodes=len(nodes),
            safe_mode=safe_mode,
            max_deletions=quota,
        )

        candidates: List[Candidate] = []
        for index, batch in enumerate(self._batches(nodes)):
            if index:
                await self.backoff.pause(self.config.batch_delay)
            results = await asyncio.gather(
                *(self._evaluate_node(node, environment, safe_mode) for node in batch)
            )
            candidates.extend(c for c in results if c is not None)

        self._apply_quota(candidates, quota)

        logger.info(
            "evaluation_completed",
            run_id=self.run_id,
            candidates=len(candidates),
            will_delete=sum(1 for c in candidates if c.will_delete),
            pending_unlink=sum(1 for c in candidates if c.pending_unlink),
        )
        return candidates

    async def _evaluate_node(self, node: Node, environment: str, safe_mode: bool) -> Candidate | None:
        match = self.engine.match_node(node, environment)
        if match is None:
            return None

        rule = match.rule
        candidate = Candidate(
            node=node,
            rule_id=rule.id,
            rule_name=rule.name,
            reasons=match.reasons,
            safety_checks=rule.safety_checks,
        )
        logger.debug(
            "candidate_matched",
            node_id=node.id,
            rule_id=rule.id,
            reasons=match.reasons,
        )

        if not (safe_mode and rule.safety_checks.check_links):
            self._mark_deletable(candidate)
            return candidate

        try:
            linked_by = await self.resolver.find_inbound_links(node.id, node.kind)
        except SYSTEMIC_ERRORS:
            raise
        except Exception as e:
            self._link_check_failed(candidate, e)
            return candidate

        if not linked_by:
            transition(candidate, S.NOT_LINKED)
            self._mark_deletable(candidate)
            return candidate

        transition(candidate, S.LINKED)
        candidate.is_linked = True
        candidate.linked_by = linked_by

        if rule.safety_checks.skip_if_referenced:
            candidate.pending_unlink = True
            candidate.will_delete = False
            candidate.skip_reason = f"Referenced by {len(linked_by)} node(s)"
            logger.info(
                "candidate_referenced",
                node_id=node.id,
                rule_id=rule.id,
                reason=candidate.skip_reason,
                linked_by=[linked.id for linked in linked_by],
            )
        else:
            self._mark_deletable(candidate)
            logger.warning(
                "dangling_references_accepted",
                node_id=node.id,
                rule_id=rule.id,
                linked_by=[linked.id for linked in linked_by],
            )
        return candidate

    def _mark_deletable(self, candidate: Candidate) -> None:
        transition(candidate, S.DELETABLE)
        candidate.will_delete = True
        candidate.skip_reason = None

    def _link_check_failed(self, candidate: Candidate, error: Exception) -> None:
        transition(candidate, S.LINK_CHECK_FAILED)
        candidate.is_linked = True
        candidate.error = str(error)

        if candidate.safety_checks.skip_if_referenced:
            candidate.will_delete = False
            candidate.skip_reason = f"Link check failed: {getattr(error, 'message', error)}"
            logger.warning(
                "candidate_skipped",
                node_id=candidate.node_id,
                rule_id=candidate.rule_id,
                reason=candidate.skip_reason,
            )
        else:
            self._mark_deletable(candidate)
            logger.warning(
                "link_check_failed_deleting_anyway",
                node_id=candidate.node_id,
                rule_id=candidate.rule_id,
                error=str(error),
            )

    def _apply_quota(self, candidates: List[Candidate], quota: int) -> None:
        """Reserve deletion slots in discovery order; skip the rest."""
        remaining = quota
        for candidate in candidates:
            if not (candidate.state == S.DELETABLE or candidate.pending_unlink):
                continue
            if remaining > 0:
                remaining -= 1
                continue
            transition(candidate, S.SKIPPED)
            candidate.will_delete = False
            candidate.pending_unlink = False
            candidate.skip_reason = QUOTA_SKIP_REASON
            logger.info(
                "candidate_skipped",
                node_id=candidate.node_id,
                rule_id=candidate.rule_id,
                reason=QUOTA_SKIP_REASON,
            )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_deletions(self, candidates: List[Candidate]) -> DeletionReport:
        """
        Carry out the plan for ``candidates`` and report on it.

        Outside execute mode nothing is mutated. Calling this again with
        candidates that were already deleted is safe: they are re-verified
        and stay DELETED.
        """
        if self.config.mode != GCMode.EXECUTE:
            logger.info(
                "execution_skipped",
                run_id=self.run_id,
                mode=self.config.mode.value,
                candidates=len(candidates),
            )
            return self.report(candidates)

        logger.info("execution_started", run_id=self.run_id, candidates=len(candidates))

        for index, batch in enumerate(self._batches(list(candidates))):
            if index:
                await self.backoff.pause(self.config.batch_delay)
            await asyncio.gather(*(self._process_safely(candidate) for candidate in batch))

        report = self.report(candidates)
        logger.info(
            "execution_completed",
            run_id=self.run_id,
            deleted=report.execution["deleted"],
            delete_failed=report.execution["deleteFailed"],
            unlinked_nodes=report.execution["unlinkedNodes"],
        )
        return report

    def report(self, candidates: List[Candidate]) -> DeletionReport:
        return generate_report(
            candidates,
            environment=self._environment,
            run_id=self.run_id,
            mode=self.config.mode.value,
        )

    async def _process_safely(self, candidate: Candidate) -> None:
        try:
            await self._process(candidate)
        except InvalidTransitionError:
            raise
        except SYSTEMIC_ERRORS:
            raise
        except Exception as e:
            candidate.error = str(e)
            candidate.will_delete = False
            if candidate.state == S.UNLINKING:
                transition(candidate, S.STILL_LINKED)
            elif candidate.state == S.DELETABLE:
                transition(candidate, S.DELETE_FAILED)
            candidate.skip_reason = f"Processing failed: {e}"
            logger.error(
                "candidate_processing_failed",
                node_id=candidate.node_id,
                rule_id=candidate.rule_id,
                error=str(e),
            )

    async def _process(self, candidate: Candidate) -> None:
        if candidate.state == S.DELETED:
            await self._reverify_deleted(candidate)
            return

        just_verified = False
        if candidate.state == S.LINKED and candidate.pending_unlink:
            await self._unlink_and_verify(candidate)
            just_verified = True

        if candidate.state == S.DELETABLE and candidate.will_delete:
            # The plan is a snapshot; references may have appeared since.
            if not just_verified and self._relies_on_link_check(candidate):
                if not await self._confirm_unreferenced(candidate):
                    return
            await self._delete(candidate)

    def _relies_on_link_check(self, candidate: Candidate) -> bool:
        checks = candidate.safety_checks
        return self._safe_mode and checks.check_links and checks.skip_if_referenced

    async def _confirm_unreferenced(self, candidate: Candidate) -> bool:
        """Look up inbound links again right before deleting."""
        try:
            linked_by = await self.resolver.find_inbound_links(candidate.node_id, candidate.node.kind)
        except SYSTEMIC_ERRORS:
            raise
        except RemoteAPIError as e:
            self._skip_referenced(
                candidate, f"Link re-check before delete failed: {e.message}", error=str(e)
            )
            return False

        if linked_by:
            candidate.linked_by = linked_by
            self._skip_referenced(
                candidate, f"Referenced by {len(linked_by)} node(s) since evaluation"
            )
            return False
        return True

    def _skip_referenced(self, candidate: Candidate, reason: str, error: str | None = None) -> None:
        transition(candidate, S.SKIPPED)
        candidate.is_linked = True
        candidate.will_delete = False
        candidate.skip_reason = reason
        if error:
            candidate.error = error
        logger.warning(
            "candidate_skipped",
            node_id=candidate.node_id,
            rule_id=candidate.rule_id,
            reason=reason,
        )

    async def _unlink_and_verify(self, candidate: Candidate) -> None:
        transition(candidate, S.UNLINKING)
        candidate.pending_unlink = False

        try:
            result = await self.resolver.remove_all_inbound_links(candidate.node_id, candidate.node.kind)
        except SYSTEMIC_ERRORS:
            raise
        except RemoteAPIError as e:
            self._still_linked(candidate, f"Unlink failed: {e.message}", error=str(e))
            return

        candidate.unlinked.extend(result.unlinked_from)
        if not result.success:
            failed = ", ".join(f.referencing_id for f in result.errors)
            self._still_linked(candidate, f"Unlink failed for {failed}")
            return

        await self.backoff.pause(self.config.unlink_settle_delay)

        try:
            remaining = await self.resolver.find_inbound_links(candidate.node_id, candidate.node.kind)
        except SYSTEMIC_ERRORS:
            raise
        except RemoteAPIError as e:
            self._still_linked(candidate, f"Re-check after unlink failed: {e.message}", error=str(e))
            return

        if remaining:
            candidate.linked_by = remaining
            self._still_linked(
                candidate, f"Still referenced by {len(remaining)} node(s) after unlink"
            )
            return

        transition(candidate, S.VERIFIED_CLEAR)
        candidate.is_linked = False
        candidate.linked_by = []
        self._mark_deletable(candidate)
        logger.info(
            "candidate_unlinked",
            node_id=candidate.node_id,
            rule_id=candidate.rule_id,
            unlinked_nodes=len(result.unlinked_from),
        )

    def _still_linked(self, candidate: Candidate, reason: str, error: str | None = None) -> None:
        transition(candidate, S.STILL_LINKED)
        candidate.is_linked = True
        candidate.will_delete = False
        candidate.skip_reason = reason
        if error:
            candidate.error = error
        logger.warning(
            "candidate_skipped",
            node_id=candidate.node_id,
            rule_id=candidate.rule_id,
            reason=reason,
        )

    async def _delete_sequence(self, candidate: Candidate) -> None:
        """Unpublish, unarchive, then delete the latest version of the node."""
        node_id, kind = candidate.node_id, candidate.node.kind

        async def fetch() -> Node:
            return await self.api.fetch_node(node_id, kind)

        async def unpublish(node: Node) -> Node:
            return await self.api.unpublish(node) if node.is_published else node

        async def unarchive(node: Node) -> Node:
            return await self.api.unarchive(node) if node.is_archived else node

        latest = await self.backoff.call(fetch, f"fetch_{node_id}")
        if latest.is_published:
            await self.backoff.call_with_fresh_version(fetch, unpublish, f"unpublish_{node_id}")
        if latest.is_archived:
            await self.backoff.call_with_fresh_version(fetch, unarchive, f"unarchive_{node_id}")
        await self.backoff.call_with_fresh_version(fetch, self.api.delete_node, f"delete_{node_id}")

    async def _delete(self, candidate: Candidate) -> None:
        try:
            await self._delete_sequence(candidate)
        except NotFoundError:
            transition(candidate, S.DELETED)
            logger.info(
                "candidate_already_absent",
                node_id=candidate.node_id,
                rule_id=candidate.rule_id,
            )
            return
        except SYSTEMIC_ERRORS:
            raise
        except RemoteAPIError as e:
            transition(candidate, S.DELETE_FAILED)
            candidate.will_delete = False
            candidate.error = str(e)
            candidate.skip_reason = f"Delete failed: {e.message}"
            logger.error(
                "candidate_delete_failed",
                node_id=candidate.node_id,
                rule_id=candidate.rule_id,
                error=str(e),
            )
            return

        transition(candidate, S.DELETED)
        logger.info(
            "candidate_deleted",
            node_id=candidate.node_id,
            rule_id=candidate.rule_id,
            reasons=candidate.reasons,
        )

    async def _reverify_deleted(self, candidate: Candidate) -> None:
        try:
            await self._delete_sequence(candidate)
        except NotFoundError:
            logger.debug("deletion_reverified", node_id=candidate.node_id)
            return
        except SYSTEMIC_ERRORS:
            raise
        except RemoteAPIError as e:
            logger.warning(
                "deletion_reverify_failed",
                node_id=candidate.node_id,
                rule_id=candidate.rule_id,
                error=str(e),
            )
            return
        logger.info("candidate_deleted_again", node_id=candidate.node_id, rule_id=candidate.rule_id)

    async def run(self, nodes: Iterable[Node], environment: str | None = None) -> DeletionReport:
        """Evaluate then execute in one call."""
        candidates = await self.evaluate_candidates(nodes, environment)
        return await self.execute_deletions(candidates)
