"""
Main import orchestration: validation, session, refs, merge.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from .collision_resolver import CollisionResolver, Resolution
from .commit_map import CommitMap
from .git_manager import GitManager
from .history_rewriter import HistoryRewriter, build_rewriter, filter_repo_available
from .merge_integrator import MergeIntegrator
from .models import (
    GitRepositoryError,
    ImportOptions,
    ImportReport,
    MergeConflictError,
    MergeRequest,
    OutcomeStatus,
    RefKind,
    RefOutcome,
    RemoteRef,
    RewriteError,
    RewritePlan,
    RewriteStrategy,
    ValidationError,
)
from .name_mapper import branch_name, destination_name, tag_name, validate_source_id
from .ref_enumerator import RefEnumerator
from .session import ImportSession, make_handle_name
from .tag_materializer import TagMaterializer


logger = logging.getLogger(__name__)


class ImportOrchestrator:
    """Imports every branch and tag of a source repository into the current one."""

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        self.repo_path = repo_path or Path.cwd()
        self.git_manager = GitManager(self.repo_path)
        self.enumerator = RefEnumerator(self.git_manager)
        self.integrator = MergeIntegrator(self.git_manager)
        # Last report produced by run(); kept so callers can render partial results on failure
        self.report: Optional[ImportReport] = None

    def run(self, options: ImportOptions) -> ImportReport:
        """Execute (or plan, in dry-run) one import.

        Raises:
            GitRepositoryError: the destination is not a git repository.
            ValidationError: bad source id or conflicting options.
            RemoteError: the source cannot be read or a requested branch is missing.
            RepoMergeError: a requested branch produced no imported branch.
            MergeError: the merge step failed; MergeConflictError leaves the
                conflicted working tree in place.
        """
        report = ImportReport(
            source_repo=options.source_repo, source_id=options.source_id, dry_run=options.dry_run
        )
        self.report = report

        repo = self.git_manager.repo  # fails fast outside a repository
        logger.info(f"Importing {options.source_repo} as '{options.source_id}' into {repo.working_dir}")

        plan, merge_request = self.validate(options)

        if options.dry_run:
            self._plan(options, plan, merge_request, report)
            return report

        starting_point = self.git_manager.get_current_branch() or self.git_manager.get_head_commit()
        commit_map = CommitMap()
        rewriter = build_rewriter(plan, self.git_manager, commit_map)
        resolver = CollisionResolver(self.git_manager, force=options.force)
        materializer = TagMaterializer(
            self.git_manager, resolver, commit_map, rewrite_enabled=rewriter is not None
        )

        conflicted = False
        imported_anything = False
        try:
            with ImportSession(self.git_manager, options.source_repo, options.source_id, report=report) as session:
                if options.branch:
                    resolver.ensure_branch_on_remote(session, options.branch)

                branches = self.enumerator.list_branches(session)
                if options.branch:
                    branches = [b for b in branches if b.name == options.branch]
                if not branches:
                    logger.info(f"{options.source_repo} has no branches; nothing to import")
                    report.notes.append("Source repository has no branches; nothing was imported")
                    return report

                report.default_branch = self.enumerator.default_branch(session)
                for ref in branches:
                    session.record(self._import_branch(session, ref, resolver, rewriter))

                if options.skip_tags:
                    logger.info("Skipping tags (--skip-tags)")
                else:
                    tags = self.enumerator.list_tags(session)
                    logger.info(f"Found {len(tags)} tag(s) in {options.source_repo}")
                    materializer.materialize(session, tags, options.source_id)

                if options.branch:
                    resolver.check_requested_branch_created(options.branch, report.outcomes)

                imported_anything = True
                if merge_request:
                    source_branch = self.integrator.resolve_source(options.source_id, report.default_branch)
                    report.merge_result = self.integrator.integrate(
                        merge_request, source_branch, options.source_id
                    )
        except MergeConflictError:
            conflicted = True
            raise
        finally:
            if not conflicted:
                self._finish_checkout(options, report, starting_point, imported_anything)
            report.final_branch = self._current_position()

        logger.info(
            f"Import finished: {len(report.created())} created, {len(report.skipped())} skipped, "
            f"{len(report.failed())} failed"
        )
        return report

    def validate(self, options: ImportOptions) -> Tuple[RewritePlan, Optional[MergeRequest]]:
        """Check every option before any remote is contacted; returns (plan, merge_request)."""
        validate_source_id(options.source_id)
        plan = options.rewrite_plan()
        merge_request = options.merge_request()
        if options.branch:
            destination_name(options.source_id, options.branch, RefKind.BRANCH)
        if options.rewrite_history and not plan.enabled:
            logger.warning("--rewrite-history has no effect without --subdirectory")
        if plan.enabled and plan.strategy == RewriteStrategy.FILTER_REPO and not filter_repo_available():
            raise ValidationError(
                "git-filter-repo is required for --rewrite-history (pip install git-filter-repo)"
            )
        return plan, merge_request

    def _import_branch(
        self,
        session: ImportSession,
        ref: RemoteRef,
        resolver: CollisionResolver,
        rewriter: Optional[HistoryRewriter],
    ) -> RefOutcome:
        try:
            destination = destination_name(session.source_id, ref.name, RefKind.BRANCH)
        except ValidationError as e:
            return RefOutcome(
                RefKind.BRANCH, ref.name, branch_name(session.source_id, ref.name), OutcomeStatus.FAILED, str(e)
            )

        source_ref = session.remote_branch_ref(ref.name)
        try:
            if resolver.resolve(RefKind.BRANCH, destination) == Resolution.SKIP:
                return RefOutcome(RefKind.BRANCH, ref.name, destination, OutcomeStatus.SKIPPED, "already exists")

            self.git_manager.create_branch(destination, source_ref)
            if self.git_manager.path_exists_at(source_ref, ".gitmodules"):
                session.report.notes.append(
                    f"{destination} contains submodules; gitlinks were imported unchanged"
                )

            target = self.git_manager.rev_parse(f"refs/heads/{destination}")
            if rewriter is not None:
                try:
                    target = rewriter.rewrite(destination).new_tip
                except RewriteError as e:
                    logger.error(f"Rewrite of {destination} failed: {e}")
                    if self.git_manager.branch_exists(destination):
                        self.git_manager.delete_branch(destination)
                    return RefOutcome(RefKind.BRANCH, ref.name, destination, OutcomeStatus.FAILED, str(e))
            return RefOutcome(RefKind.BRANCH, ref.name, destination, OutcomeStatus.CREATED, target=target)
        except GitRepositoryError as e:
            logger.error(f"Failed to import branch {ref.name}: {e}")
            return RefOutcome(RefKind.BRANCH, ref.name, destination, OutcomeStatus.FAILED, str(e))

    def _plan(
        self,
        options: ImportOptions,
        plan: RewritePlan,
        merge_request: Optional[MergeRequest],
        report: ImportReport,
    ) -> None:
        """Describe the import without touching remotes or refs."""
        handle = make_handle_name(options.source_id)
        actions = report.planned_actions
        actions.append(f"Add remote {handle} -> {options.source_repo}")
        actions.append(f"Fetch branches of {options.source_repo} into refs/remotes/{handle}/ (no tags)")

        where = f" with files moved under {plan.subdirectory}/" if plan.enabled else ""
        if plan.enabled:
            where += f" ({plan.strategy.value} rewrite)"
        if options.branch:
            actions.append(f"Create branch {branch_name(options.source_id, options.branch)}{where}")
        else:
            actions.append(
                f"Create branch {branch_name(options.source_id, '<branch>')} for every source branch{where}"
                " (branch set computed at execution time)"
            )

        if options.skip_tags:
            actions.append("Skip tags")
        else:
            actions.append(
                f"Create tag {tag_name(options.source_id, '<tag>')} for every source tag"
                " (tag set computed at execution time)"
            )

        if options.force:
            actions.append("Overwrite existing branches and tags (--force)")
        if merge_request:
            mode = "squash merge" if merge_request.squash else "merge"
            extra = " without committing" if merge_request.no_commit else ""
            actions.append(
                f"{mode.capitalize()} the imported default branch into {merge_request.target_branch}"
                f" (strategy={merge_request.strategy.value}){extra}"
            )
            if merge_request.graft:
                actions.append("Record a graft linking the merge commit to the imported tip")
        elif plan.preserve_paths:
            actions.append("Check out the imported default branch")
        actions.append(f"Remove remote {handle}")

        for action in actions:
            logger.info(f"[dry-run] {action}")

    def _finish_checkout(
        self, options: ImportOptions, report: ImportReport, starting_point: Optional[str], imported: bool
    ) -> None:
        if imported and options.preserve_paths and not options.merge_to and report.default_branch:
            imported_default = branch_name(options.source_id, report.default_branch)
            if self.git_manager.branch_exists(imported_default):
                try:
                    self.git_manager.checkout_branch(imported_default)
                    report.notes.append(f"Checked out {imported_default} with its original paths")
                    return
                except GitRepositoryError as e:
                    logger.warning(f"Could not check out {imported_default}: {e}")
                    report.notes.append(f"Could not check out {imported_default}; staying on the current branch")

        merge = report.merge_result
        if merge is not None and options.no_commit:
            # Staged merge result must stay on the branch it was prepared for
            report.notes.append(
                f"Merge of {merge.source_branch} is staged on {merge.target_branch}; review and commit it there"
            )
            return

        if starting_point and self._current_position() != starting_point:
            try:
                self.git_manager.checkout_branch(starting_point)
            except GitRepositoryError as e:
                logger.warning(f"Could not return to {starting_point}: {e}")

    def _current_position(self) -> Optional[str]:
        return self.git_manager.get_current_branch() or self.git_manager.get_head_commit()
