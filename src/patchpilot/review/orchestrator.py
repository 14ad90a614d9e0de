"""
Review Orchestrator

Drives one review job end to end:

    pending -> in_progress -> completed | failed

1. Parse, filter and chunk the diff (pure, synchronous)
2. One AI call per chunk, sequentially, to respect provider rate limits
3. Persist comments and the aggregate result
4. Post a single comment-only review to the host, best effort
"""

import time

import structlog

from patchpilot.errors import DiffTooLargeError
from patchpilot.hosts.base import VersionControlHost
from patchpilot.providers.base import AIReviewProvider, ReviewRequest
from patchpilot.storage.base import DataStore

from .chunker import DiffChunker, estimate_chunks_cost, estimate_cost
from .diff_parser import DiffParser
from .file_filter import FileFilter
from .models import (
    FilterConfig,
    ReviewComment,
    ReviewConfig,
    ReviewCostEstimate,
    ReviewJob,
    ReviewJobResult,
    ReviewOutcome,
    ReviewStatus,
    Severity,
    StoredComment,
    map_severity,
)

logger = structlog.get_logger(__name__)

NO_FILES_SUMMARY = "No files to review after filtering"

# Split of total tokens used when pricing a finished review
INPUT_TOKEN_SHARE = 0.7

SEVERITY_MARKERS: dict[Severity, str] = {
    Severity.CRITICAL: "🚨",
    Severity.MAJOR: "⚠️",
    Severity.MINOR: "💡",
    Severity.INFO: "ℹ️",
}


def format_host_comment(comment: ReviewComment) -> str:
    """Render a comment as Markdown for the host's review UI."""
    marker = SEVERITY_MARKERS[comment.severity]
    body = (
        f"{marker} **{comment.severity.value.upper()}** `{comment.category.value}`"
        f"\n\n{comment.message}"
    )
    if comment.suggested_fix:
        body += f"\n\n**Suggested fix:**\n```suggestion\n{comment.suggested_fix}\n```"
    return body


class ReviewOrchestrator:
    """Coordinate parsing, filtering, chunking, AI review and persistence."""

    def __init__(
        self,
        provider: AIReviewProvider,
        data_store: DataStore,
        host: VersionControlHost | None = None,
        parser: DiffParser | None = None,
        file_filter: FileFilter | None = None,
        chunker: DiffChunker | None = None,
        default_model: str = "gpt-4o",
    ):
        """
        Initialize the orchestrator.

        Args:
            provider: AI review provider shared by all jobs
            data_store: Persistence for review records and comments
            host: Version control host to post reviews to, if any
            parser: Diff parser (carries the input size cap)
            file_filter: File filter
            chunker: Diff chunker (carries the token budgets)
            default_model: Model used for pricing when the config names none
        """
        self.provider = provider
        self.data_store = data_store
        self.host = host
        self.parser = parser or DiffParser()
        self.file_filter = file_filter or FileFilter()
        self.chunker = chunker or DiffChunker()
        self.default_model = default_model

    async def process_job(self, job: ReviewJob) -> ReviewJobResult:
        """
        Run a review job.

        Any error before the review is completed marks the record failed and is
        re-raised so the queue can retry the job from scratch.

        Returns:
            ReviewJobResult for the completed or skipped review
        """
        start_time = time.monotonic()
        log = logger.bind(repository_id=job.repository_id, pr_number=job.pr_number)
        log.info("Starting review job")

        review_id = await self.data_store.create_review(job)
        log = log.bind(review_id=review_id)

        try:
            await self.data_store.update_review_status(review_id, ReviewStatus.IN_PROGRESS)

            if job.config is not None and not job.config.auto_review:
                log.info("Automatic review disabled, skipping")
                await self.data_store.update_review_status(review_id, ReviewStatus.SKIPPED)
                return self._result(review_id, ReviewStatus.SKIPPED, start_time)

            try:
                outcome = await self.generate_review(job.diff, job.config)
            except DiffTooLargeError as e:
                # Oversized diffs are skipped, not retried
                log.warning("Diff too large, skipping", size=e.size, limit=e.limit)
                await self.data_store.update_review_status(
                    review_id, ReviewStatus.SKIPPED, str(e)
                )
                return self._result(
                    review_id, ReviewStatus.SKIPPED, start_time, error_message=str(e)
                )

            await self._save_comments(review_id, outcome.comments)
            await self.data_store.complete_review(
                review_id,
                tokens_used=outcome.tokens_used,
                comments_count=len(outcome.comments),
                summary=outcome.summary,
            )
        except Exception as e:
            error_message = str(e) or e.__class__.__name__
            log.error("Review job failed", error=error_message)
            await self._mark_failed(review_id, error_message)
            raise

        await self._post_review(job, outcome.comments)

        result = self._result(
            review_id,
            ReviewStatus.COMPLETED,
            start_time,
            comments_created=len(outcome.comments),
            tokens_used=outcome.tokens_used,
        )
        log.info(
            "Review job completed",
            comments_created=result.comments_created,
            tokens_used=result.tokens_used,
            processing_time_ms=result.processing_time_ms,
        )
        return result

    async def generate_review(
        self, diff: str, config: ReviewConfig | None = None
    ) -> ReviewOutcome:
        """
        Review a raw diff without touching the data store.

        Returns an empty outcome without calling the provider when no file
        survives filtering.
        """
        parsed = self.parser.parse(diff)
        logger.debug(
            "Diff parsed",
            total_files=parsed.total_files,
            total_additions=parsed.total_additions,
            total_deletions=parsed.total_deletions,
        )

        filtered = self.file_filter.filter(parsed, self._filter_config(config))
        logger.debug(
            "Files filtered",
            filtered_files=filtered.total_files,
            original_files=parsed.total_files,
        )

        if filtered.total_files == 0:
            return ReviewOutcome(summary=NO_FILES_SUMMARY)

        chunked = self.chunker.chunk(filtered)
        logger.debug(
            "Diff chunked", total_chunks=chunked.total_chunks, strategy=chunked.strategy.value
        )

        outcome = ReviewOutcome(
            files_reviewed=filtered.total_files, chunks_reviewed=chunked.total_chunks
        )
        for chunk in chunked.chunks:
            logger.debug(
                "Reviewing chunk",
                chunk_id=chunk.id,
                files=len(chunk.files),
                estimated_tokens=chunk.estimated_tokens,
            )
            review = await self.provider.generate_review(
                ReviewRequest(
                    diff=chunk.content,
                    config=config,
                    chunk_id=chunk.id,
                    language=chunk.language,
                )
            )
            outcome.comments.extend(review.comments)
            outcome.tokens_used += review.tokens_used.total

            # Chunks are in priority order, so the first summary is the most relevant
            if not outcome.summary and review.summary:
                outcome.summary = review.summary

        model = (config.ai_model if config else None) or self.default_model
        outcome.cost = estimate_cost(
            outcome.tokens_used * INPUT_TOKEN_SHARE,
            outcome.tokens_used * (1 - INPUT_TOKEN_SHARE),
            model,
        )
        return outcome

    def estimate_review_cost(self, diff: str, model: str | None = None) -> ReviewCostEstimate:
        """Estimate files, chunks, tokens and cost of a diff before reviewing it."""
        parsed = self.parser.parse(diff)
        filtered = self.file_filter.filter(parsed)
        chunked = self.chunker.chunk(filtered)
        cost = estimate_chunks_cost(chunked.chunks, model or self.default_model)
        return ReviewCostEstimate(
            files=filtered.total_files,
            chunks=chunked.total_chunks if filtered.total_files else 0,
            estimated_tokens=cost.input_tokens if filtered.total_files else 0,
            estimated_cost=cost.estimated_cost if filtered.total_files else 0.0,
        )

    def _filter_config(self, config: ReviewConfig | None) -> FilterConfig:
        if config is None:
            return FilterConfig()
        return FilterConfig.from_path_filters(
            config.path_filters,
            max_file_size=config.max_file_size,
            max_files=config.max_files,
        )

    async def _save_comments(self, review_id: int, comments: list[ReviewComment]) -> None:
        for comment in comments:
            await self.data_store.create_review_comment(
                review_id,
                StoredComment(
                    file_path=comment.file,
                    line_start=comment.line,
                    content=comment.message,
                    severity=map_severity(comment.severity),
                    category=comment.category,
                    suggested_fix=comment.suggested_fix,
                ),
            )

    async def _mark_failed(self, review_id: int, error_message: str) -> None:
        try:
            await self.data_store.update_review_status(
                review_id, ReviewStatus.FAILED, error_message
            )
        except Exception as e:
            # The original error is re-raised by the caller
            logger.error(
                "Could not mark review failed", review_id=review_id, error=str(e)
            )

    async def _post_review(self, job: ReviewJob, comments: list[ReviewComment]) -> None:
        """Post one aggregated comment-only review. Failures are logged only."""
        if self.host is None or self.host.platform != job.platform or not comments:
            return

        try:
            repository = self.host.parse_repository(job.pr_url)
            if repository is None:
                logger.warning("Could not parse pull request URL", pr_url=job.pr_url)
                return
            owner, repo = repository

            # Hosts reject inline comments without a line in the new file
            inline = [c for c in comments if c.line > 0]
            body = f"AI Code Review completed. Found {len(comments)} comment(s)."
            for comment in comments:
                if comment.line <= 0:
                    body += f"\n\n**{comment.file}**\n{format_host_comment(comment)}"

            await self.host.create_review(
                owner,
                repo,
                job.pr_number,
                body=body,
                event="COMMENT",
                comments=[
                    {
                        "path": c.file,
                        "line": c.line,
                        "side": "RIGHT",
                        "body": format_host_comment(c),
                    }
                    for c in inline
                ],
            )
        except Exception as e:
            logger.error(
                "Failed to post review", pr_url=job.pr_url, pr_number=job.pr_number, error=str(e)
            )
            return

        logger.info(
            "Posted review",
            owner=owner,
            repo=repo,
            pr_number=job.pr_number,
            comments=len(inline),
            comments_in_body=len(comments) - len(inline),
        )

    @staticmethod
    def _result(
        review_id: int,
        status: ReviewStatus,
        start_time: float,
        comments_created: int = 0,
        tokens_used: int = 0,
        error_message: str | None = None,
    ) -> ReviewJobResult:
        return ReviewJobResult(
            review_id=review_id,
            status=status,
            comments_created=comments_created,
            tokens_used=tokens_used,
            processing_time_ms=int((time.monotonic() - start_time) * 1000),
            error_message=error_message,
        )
