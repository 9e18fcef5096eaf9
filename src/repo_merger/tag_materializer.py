"""
Creation of namespaced destination tags.
"""

from __future__ import annotations

import logging
from typing import List

from .collision_resolver import CollisionResolver, Resolution
from .commit_map import NULL_SHA, CommitMap
from .git_manager import GitManager
from .models import (
    GitRepositoryError,
    OutcomeStatus,
    RefKind,
    RefOutcome,
    RemoteRef,
    ValidationError,
)
from .name_mapper import destination_name
from .session import ImportSession


logger = logging.getLogger(__name__)


class TagMaterializer:
    """Creates ``{id}/{tag}`` for every source tag that points at a commit.

    Each tag is fetched on its own into the session's private namespace so a
    single bad tag (one pointing at a tree or blob, or one that cannot be
    fetched) is reported and the rest of the batch still goes through.
    """

    def __init__(
        self,
        git_manager: GitManager,
        resolver: CollisionResolver,
        commit_map: CommitMap,
        rewrite_enabled: bool = False,
    ) -> None:
        self.gm = git_manager
        self.resolver = resolver
        self.commit_map = commit_map
        self.rewrite_enabled = rewrite_enabled

    def materialize(self, session: ImportSession, tags: List[RemoteRef], source_id: str) -> List[RefOutcome]:
        outcomes: List[RefOutcome] = []
        for tag in tags:
            outcomes.append(session.record(self._materialize_one(session, tag, source_id)))
        return outcomes

    def _materialize_one(self, session: ImportSession, tag: RemoteRef, source_id: str) -> RefOutcome:
        try:
            destination = destination_name(source_id, tag.name, RefKind.TAG)
        except ValidationError as e:
            return RefOutcome(RefKind.TAG, tag.name, f"{source_id}/{tag.name}", OutcomeStatus.FAILED, str(e))

        def outcome(status: OutcomeStatus, reason: str = "", target=None) -> RefOutcome:
            return RefOutcome(RefKind.TAG, tag.name, destination, status, reason, target)

        try:
            if self.resolver.resolve(RefKind.TAG, destination) == Resolution.SKIP:
                return outcome(OutcomeStatus.SKIPPED, "already exists")

            private_ref = session.tag_ref(tag.name)
            self.gm.fetch(session.handle, [f"+refs/tags/{tag.name}:{private_ref}"], force=True)
            fetched = self.gm.rev_parse(private_ref)
            peeled = self.gm.rev_parse(f"{private_ref}^{{}}")
            if not fetched or not peeled:
                return outcome(OutcomeStatus.FAILED, "tag could not be resolved after fetch")

            object_type = self.gm.object_type(peeled)
            if object_type != "commit":
                logger.warning(f"Tag {tag.name} points to a {object_type}, not a commit; skipping")
                return outcome(OutcomeStatus.SKIPPED, f"points to a {object_type}, not a commit")

            target = fetched
            if self.rewrite_enabled:
                found, rewritten = self.commit_map.resolve(peeled, self.gm.commit_parents)
                if not found:
                    logger.warning(
                        f"Tag {tag.name} points to {peeled[:8]}, which no rewritten branch reaches; "
                        "keeping the original commit"
                    )
                    target = peeled
                elif rewritten is None:
                    return outcome(OutcomeStatus.FAILED, "tagged commit was pruned during rewrite")
                else:
                    target = rewritten

            self.gm.update_ref(f"refs/tags/{destination}", target, NULL_SHA)
            return outcome(OutcomeStatus.CREATED, target=target)
        except GitRepositoryError as e:
            logger.error(f"Failed to import tag {tag.name}: {e}")
            return outcome(OutcomeStatus.FAILED, str(e))
