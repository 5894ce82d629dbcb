"""Per-event triage flow: load state, decide, act, persist."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from .classifier import Command, detect_command, detect_disagreement, resolve_category
from .github.client import GitHubClient
from .github.models import Comment, IssueEvent
from .models.llm_client import LLMClient
from .models.openai_responses import OpenAIResponsesClient
from .parsing.fields import FieldMap, merge_fields, parse_issue_fields
from .phases import PhaseName
from .phases.base import Failed, PartialOk, unwrap
from .phases.brief import (
    BriefRequest,
    DuplicateCandidate,
    EngineerBrief,
    RevisionRequest,
    fallback_brief,
)
from .phases.classify import ClassifyRequest
from .phases.extract import ExtractRequest, ExtractResponse
from .phases.followups import FollowUpRequest, FollowUpResponse, fallback_questions
from .reporting.composer import CommentComposer
from .router import PhaseRouter
from .scoring.completeness import CompletenessScorer, ScoringResult
from .scoring.redactor import SecretRedactor
from .scoring.validators import FieldValidator
from .settings import ConfigurationError, RuntimeSettings
from .specpack.loader import load_spec_pack
from .specpack.schema import OFF_TOPIC_CATEGORY, CategoryChecklist, SpecPack
from .state.codec import StateCodec
from .state.machine import Action, Signals, transition
from .state.models import ConversationPhase, ConversationState, FinalOutcome
from .state.store import CommentThreadStateStore, StateRecord

LOGGER = logging.getLogger(__name__)

ESCALATION_LABELS = ["needs-maintainer-review", "incomplete-info"]
REVISION_ESCALATION_LABELS = ["needs-maintainer-review"]
UNKNOWN_CATEGORY = "unknown"
DOC_FILES = ("README.md", "TROUBLESHOOTING.md")
DOC_CHAR_LIMIT = 3000
DUPLICATE_SEARCH_LIMIT = 3
DUPLICATE_QUERY_TERMS = 3
PARTICIPANT_COMMENT_SEPARATOR = "\n\n---\n\n"


def pending_fields(scoring: ScoringResult, state: ConversationState) -> List[str]:
    """Missing, then invalid, fields that have not been asked about yet."""
    pending: List[str] = []
    for name in [*scoring.missing_fields, *scoring.invalid_fields]:
        if name not in pending and not state.has_asked(name):
            pending.append(name)
    return pending


@dataclass(slots=True)
class TriageOutcome:
    """What one event did; ``comment`` is ``None`` when nothing was posted."""

    action: Action
    reason: str = ""
    participant: str = ""
    phase: Optional[ConversationPhase] = None
    state: Optional[ConversationState] = None
    comment: Optional[Comment] = None
    labels: List[str] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    scoring: Optional[ScoringResult] = None

    @property
    def posted(self) -> bool:
        return self.comment is not None


@dataclass(slots=True)
class Assessment:
    """Facts gathered for one scoring pass."""

    checklist: CategoryChecklist
    fields: FieldMap
    scoring: ScoringResult
    secret_findings: List[str] = field(default_factory=list)


@dataclass(slots=True)
class _EventContext:
    event: IssueEvent
    participant: str
    comments: List[Comment]
    store: CommentThreadStateStore
    record: Optional[StateRecord] = None

    @property
    def owner(self) -> str:
        return self.event.repository.owner

    @property
    def repo(self) -> str:
        return self.event.repository.name

    @property
    def number(self) -> int:
        return self.event.issue.number


class Orchestrator:
    """Runs one inbound event through the conversation state machine."""

    def __init__(
        self,
        *,
        github: GitHubClient,
        client: LLMClient,
        spec_pack: SpecPack,
        bot_username: str,
        logs_dir: Path | None = None,
        composer: CommentComposer | None = None,
        codec: StateCodec | None = None,
    ) -> None:
        self._github = github
        self._spec_pack = spec_pack
        self._bot_username = bot_username
        self._composer = composer or CommentComposer()
        self._codec = codec or StateCodec()
        self._router = PhaseRouter(client=client, logs_dir=logs_dir)
        self._redactor = SecretRedactor(spec_pack.validators.secret_patterns)
        self._scorer = CompletenessScorer(FieldValidator(spec_pack.validators))

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        *,
        github: GitHubClient | None = None,
        client: LLMClient | None = None,
        spec_pack: SpecPack | None = None,
    ) -> "Orchestrator":
        """Convenience constructor used by the CLI."""
        if github is None or client is None:
            settings.require_credentials()
        return cls(
            github=github
            or GitHubClient(
                token=settings.github_token,
                api_url=settings.github_api_url,
                timeout=settings.github_timeout,
            ),
            client=client
            or OpenAIResponsesClient(
                api_key=settings.openai_api_key,
                model=settings.model,
                timeout=settings.llm_timeout,
                max_attempts=settings.llm_max_attempts,
            ),
            spec_pack=spec_pack or load_spec_pack(settings.spec_dir),
            bot_username=settings.bot_username,
            logs_dir=settings.logs_dir,
        )

    def run_phase(self, phase: PhaseName | str, payload: Any) -> Any:
        """Execute a single phase and return its tagged outcome."""
        return self._router.dispatch(phase, payload)

    def process_event(self, event_name: str, payload: Mapping[str, Any]) -> TriageOutcome:
        """Handle one webhook delivery.

        External failures propagate before anything is posted, so a failed
        run can be repeated from the same event.
        """
        event = IssueEvent.from_payload(event_name, payload)
        if not event.should_process():
            return TriageOutcome(Action.IGNORE, reason=f"unsupported event {event_name}/{event.action}")
        if event.issue.is_pull_request:
            return TriageOutcome(Action.IGNORE, reason="pull request")
        if event.actor.lower() == self._bot_username.lower():
            return TriageOutcome(Action.IGNORE, reason="own comment")

        reply = event.comment.body if event.comment is not None else ""
        command = detect_command(reply) if event.is_comment else Command.NONE
        participant = self._participant(event, command)
        if participant is None:
            return TriageOutcome(Action.IGNORE, reason="reply from a non-participant")

        comments = self._github.list_issue_comments(event.repository.owner, event.repository.name, event.issue.number)
        if event.comment is not None and all(item.id != event.comment.id for item in comments):
            comments.append(event.comment)
        store = CommentThreadStateStore(comments, bot_username=self._bot_username, codec=self._codec)
        ctx = _EventContext(event=event, participant=participant, comments=comments, store=store)
        ctx.record = store.load(participant)
        state = ctx.record.state if ctx.record is not None else None

        signals = Signals(
            command=command,
            disagreement=bool(event.is_comment and state is not None and state.is_finalized and detect_disagreement(reply)),
        )
        assessment: Optional[Assessment] = None
        while True:
            step = transition(state, signals)
            LOGGER.debug("Transition for %s on #%d: %s -> %s", participant, ctx.number, step.phase.value, step.action.value)
            action = step.action

            if action is Action.IGNORE:
                return TriageOutcome(action, reason="nothing to do", participant=participant, phase=step.phase, state=state)
            if action is Action.ACKNOWLEDGE_OPT_OUT:
                return self._opt_out(ctx, state)
            if action is Action.RESTART:
                LOGGER.info("Restarting diagnosis for %s on #%d", participant, ctx.number)
                state = None
                signals = Signals(command=Command.NONE)
                continue
            if action is Action.REVISE_BRIEF:
                return self._revise_brief(ctx, state, reply)
            if action is Action.ESCALATE_REVISIONS:
                return self._escalate_revisions(ctx, state)
            if action is Action.CLASSIFY:
                signals.category = self._classify(event)
                continue
            if action is Action.FINALIZE_OFF_TOPIC:
                return self._finalize_off_topic(ctx, state)

            category = (state.category if state is not None and state.category else None) or signals.category or ""
            if state is None:
                state = ConversationState(category=category, participant_id=participant)
            elif not state.category:
                state.category = category
            if action is Action.SCORE:
                assessment = self._assess(ctx, category)
                signals.scoring = assessment.scoring
                signals.pending_fields = pending_fields(assessment.scoring, state)
                continue

            if assessment is None:
                raise RuntimeError(f"{action.value} reached before the issue was scored")
            state.completeness_score = assessment.scoring.score
            if action is Action.FINALIZE_ACTIONABLE:
                return self._finalize_actionable(ctx, state, assessment)
            if action is Action.ESCALATE:
                return self._escalate(ctx, state, assessment)
            return self._ask_follow_ups(ctx, state, assessment, signals.pending_fields)

    # ------------------------------------------------------------------ steps

    def _participant(self, event: IssueEvent, command: Command) -> Optional[str]:
        author = event.issue.user.login
        if event.comment is None:
            return author
        commenter = event.comment.user.login
        if command is not Command.NONE:
            return commenter
        if commenter.lower() == author.lower():
            return author
        return None

    def _opt_out(self, ctx: _EventContext, state: Optional[ConversationState]) -> TriageOutcome:
        if state is None:
            state = ConversationState(category=UNKNOWN_CATEGORY, participant_id=ctx.participant)
        state.finalize(FinalOutcome.OPTED_OUT)
        comment = self._post(ctx, self._composer.opt_out(ctx.participant), state)
        LOGGER.info("%s opted out on #%d", ctx.participant, ctx.number)
        return TriageOutcome(
            Action.ACKNOWLEDGE_OPT_OUT,
            participant=ctx.participant,
            phase=state.phase,
            state=state,
            comment=comment,
        )

    def _classify(self, event: IssueEvent) -> str:
        """Deterministic resolution first; the model only breaks the tie."""
        body = self._redactor.redact_text(event.issue.body)
        match = resolve_category(event.issue.title, body, parse_issue_fields(body), self._spec_pack)
        if match.category is not None:
            LOGGER.info("Category %s resolved from %s", match.category, match.source)
            return match.category

        names = self._spec_pack.category_names()
        fallback = names[0] if names else UNKNOWN_CATEGORY
        outcome = self._router.dispatch(
            PhaseName.CLASSIFY,
            ClassifyRequest(
                title=event.issue.title,
                body=body,
                categories=[(item.name, item.description) for item in self._spec_pack.categories],
                issue_number=event.issue.number,
            ),
        )
        if isinstance(outcome, Failed):
            LOGGER.warning("Classification failed (%s); using %s", outcome.reason, fallback)
            return fallback
        configured = self._spec_pack.find_category(outcome.value.category)
        if configured is None:
            LOGGER.warning("Model picked unknown category %r; using %s", outcome.value.category, fallback)
            return fallback
        LOGGER.info("Category %s chosen by the model (confidence %.2f)", configured.name, outcome.value.confidence)
        return configured.name

    def _finalize_off_topic(self, ctx: _EventContext, state: Optional[ConversationState]) -> TriageOutcome:
        if state is None:
            state = ConversationState(category=OFF_TOPIC_CATEGORY, participant_id=ctx.participant)
        state.finalize(FinalOutcome.OFF_TOPIC)
        comment = self._post(ctx, self._composer.off_topic(ctx.participant), state)
        return TriageOutcome(
            Action.FINALIZE_OFF_TOPIC,
            participant=ctx.participant,
            phase=state.phase,
            state=state,
            comment=comment,
        )

    def _assess(self, ctx: _EventContext, category: str) -> Assessment:
        checklist = self._spec_pack.checklist_for(category)
        if checklist is None:
            raise ConfigurationError(f"No checklist configured for category '{category}'")
        fields, findings = self._gather_fields(ctx, checklist)
        scoring = self._scorer.score(fields, checklist)
        LOGGER.info(
            "Scored #%d as %s: %d/%d (missing: %s)",
            ctx.number,
            category,
            scoring.score,
            scoring.threshold,
            ", ".join(scoring.missing_fields) or "none",
        )
        return Assessment(checklist=checklist, fields=fields, scoring=scoring, secret_findings=findings)

    def _gather_fields(self, ctx: _EventContext, checklist: Optional[CategoryChecklist]) -> tuple[FieldMap, List[str]]:
        """Parse, extract and redact everything the participant has said so far."""
        findings: List[str] = []
        body = self._redact(ctx.event.issue.body, findings)
        replies = [self._redact(item.body, findings) for item in self._participant_comments(ctx)]

        parsed = merge_fields(parse_issue_fields(body), *(parse_issue_fields(reply) for reply in replies))
        extracted: dict[str, str] = {}
        if checklist is not None and checklist.required_fields:
            outcome = self._router.dispatch(
                PhaseName.EXTRACT,
                ExtractRequest(
                    body=body,
                    comments=PARTICIPANT_COMMENT_SEPARATOR.join(replies),
                    fields=[(item.name, item.description) for item in checklist.required_fields],
                    issue_number=ctx.number,
                ),
            )
            if isinstance(outcome, Failed):
                LOGGER.warning("Extraction failed for #%d: %s", ctx.number, outcome.reason)
            extracted = unwrap(outcome, ExtractResponse()).fields

        merged = merge_fields(parsed, extracted)
        fields = FieldMap((name, self._redact(value, findings)) for name, value in merged.items())
        return fields, findings

    def _participant_comments(self, ctx: _EventContext) -> List[Comment]:
        participant = ctx.participant.lower()
        return [
            item
            for item in ctx.comments
            if item.user.login.lower() == participant and item.user.login.lower() != self._bot_username.lower()
        ]

    def _human_comment_text(self, ctx: _EventContext) -> str:
        bot = self._bot_username.lower()
        return "\n\n".join(
            self._redactor.redact_text(item.body) for item in ctx.comments if item.user.login.lower() != bot
        )

    def _finalize_actionable(
        self,
        ctx: _EventContext,
        state: ConversationState,
        assessment: Assessment,
    ) -> TriageOutcome:
        category = state.category
        fields = assessment.fields.to_dict()
        outcome = self._router.dispatch(
            PhaseName.BRIEF,
            BriefRequest(
                body=self._redactor.redact_text(ctx.event.issue.body),
                category=category,
                comments=self._human_comment_text(ctx),
                fields=fields,
                playbook=self._spec_pack.playbook_for(category),
                docs=self._repository_docs(ctx),
                duplicates=self._find_duplicates(ctx, assessment.fields),
                issue_number=ctx.number,
            ),
        )
        brief = self._brief_or_fallback(outcome, ctx, category, fields)
        body = self._composer.engineer_brief(
            brief,
            assessment.scoring,
            fields,
            assessment.secret_findings,
            username=ctx.participant,
        )

        # No finalized state is posted until routing has been applied.
        labels: List[str] = []
        assignees: List[str] = []
        route = self._spec_pack.route_for(category)
        if route is not None:
            labels = list(route.labels)
            # Entries such as "@team-handle" are placeholders, not user logins.
            assignees = [name for name in route.assignees if name and not name.startswith("@")]
            self._github.add_labels(ctx.owner, ctx.repo, ctx.number, labels)
            self._github.add_assignees(ctx.owner, ctx.repo, ctx.number, assignees)

        state.is_actionable = True
        state.finalize(FinalOutcome.ACTIONABLE)
        comment = self._post(ctx, body, state)
        LOGGER.info("Issue #%d is actionable (%d/100)", ctx.number, assessment.scoring.score)
        return TriageOutcome(
            Action.FINALIZE_ACTIONABLE,
            participant=ctx.participant,
            phase=state.phase,
            state=state,
            comment=comment,
            labels=labels,
            assignees=assignees,
            scoring=assessment.scoring,
        )

    def _escalate(self, ctx: _EventContext, state: ConversationState, assessment: Assessment) -> TriageOutcome:
        mentions = self._spec_pack.routing.escalation_mentions
        body = self._composer.escalation(assessment.scoring, mentions, rounds=state.loop_count)
        labels = list(ESCALATION_LABELS)
        self._github.add_labels(ctx.owner, ctx.repo, ctx.number, labels)
        state.finalize(FinalOutcome.ESCALATED)
        comment = self._post(ctx, body, state)
        LOGGER.info("Escalated #%d after %d follow-up round(s)", ctx.number, state.loop_count)
        return TriageOutcome(
            Action.ESCALATE,
            participant=ctx.participant,
            phase=state.phase,
            state=state,
            comment=comment,
            labels=labels,
            scoring=assessment.scoring,
        )

    def _ask_follow_ups(
        self,
        ctx: _EventContext,
        state: ConversationState,
        assessment: Assessment,
        pending: List[str],
    ) -> TriageOutcome:
        descriptions = {item.name.lower(): item.description for item in assessment.checklist.required_fields}
        missing = [(name, descriptions.get(name.lower(), "")) for name in pending]
        outcome = self._router.dispatch(
            PhaseName.FOLLOW_UPS,
            FollowUpRequest(
                body=self._redactor.redact_text(ctx.event.issue.body),
                category=state.category,
                missing_fields=missing,
                asked_before=list(state.asked_fields),
                issue_number=ctx.number,
            ),
        )
        questions = unwrap(outcome, FollowUpResponse()).questions
        if not questions:
            LOGGER.warning("No usable follow-up questions for #%d; using checklist descriptions", ctx.number)
            questions = fallback_questions(missing)

        canonical = {name.lower(): name for name in pending}
        asked: List[str] = []
        for item in questions:
            name = canonical.get(item.field.lower(), item.field)
            if name and name not in asked:
                asked.append(name)

        state.loop_count += 1
        state.record_asked(asked)
        state.touch()
        body = self._composer.follow_up(questions, state.loop_count, username=ctx.participant)
        comment = self._post(ctx, body, state)
        LOGGER.info("Asked round %d on #%d about: %s", state.loop_count, ctx.number, ", ".join(asked))
        return TriageOutcome(
            Action.ASK_FOLLOW_UPS,
            participant=ctx.participant,
            phase=state.phase,
            state=state,
            comment=comment,
            scoring=assessment.scoring,
        )

    def _revise_brief(self, ctx: _EventContext, state: ConversationState, feedback: str) -> TriageOutcome:
        state.brief_iteration_count += 1
        category = state.category
        fields, findings = self._gather_fields(ctx, self._spec_pack.checklist_for(category))
        plain_fields = fields.to_dict()
        previous = ""
        if ctx.record is not None and ctx.record.comment is not None:
            previous = self._codec.strip(ctx.record.comment.body)

        outcome = self._router.dispatch(
            PhaseName.REVISE_BRIEF,
            RevisionRequest(
                previous_brief=previous,
                feedback=self._redactor.redact_text(feedback),
                category=category,
                fields=plain_fields,
                playbook=self._spec_pack.playbook_for(category),
                issue_number=ctx.number,
            ),
        )
        brief = self._brief_or_fallback(outcome, ctx, category, plain_fields)
        body = self._composer.revised_brief(
            self._composer.engineer_brief(brief, None, plain_fields, findings, username=ctx.participant)
        )
        state.touch()
        comment = self._post(ctx, body, state)
        LOGGER.info("Posted revised brief %d on #%d", state.brief_iteration_count, ctx.number)
        return TriageOutcome(
            Action.REVISE_BRIEF,
            participant=ctx.participant,
            phase=state.phase,
            state=state,
            comment=comment,
        )

    def _escalate_revisions(self, ctx: _EventContext, state: ConversationState) -> TriageOutcome:
        labels = list(REVISION_ESCALATION_LABELS)
        self._github.add_labels(ctx.owner, ctx.repo, ctx.number, labels)
        state.brief_iteration_count += 1
        state.finalize(FinalOutcome.ESCALATED)
        body = self._composer.revision_escalation(self._spec_pack.routing.escalation_mentions)
        comment = self._post(ctx, body, state)
        LOGGER.info("Escalated #%d after %d brief revision(s)", ctx.number, state.brief_iteration_count)
        return TriageOutcome(
            Action.ESCALATE_REVISIONS,
            participant=ctx.participant,
            phase=state.phase,
            state=state,
            comment=comment,
            labels=labels,
        )

    # ---------------------------------------------------------------- helpers

    def _brief_or_fallback(self, outcome: Any, ctx: _EventContext, category: str, fields: dict[str, str]) -> EngineerBrief:
        if isinstance(outcome, Failed):
            LOGGER.warning("Brief generation failed for #%d: %s", ctx.number, outcome.reason)
            return fallback_brief(ctx.event.issue.title, category, fields)
        if isinstance(outcome, PartialOk):
            LOGGER.info("Brief for #%d used with violations: %s", ctx.number, "; ".join(outcome.violations))
        return outcome.value

    def _repository_docs(self, ctx: _EventContext) -> str:
        """README and troubleshooting guide from the default branch, cut to ``DOC_CHAR_LIMIT`` characters."""
        branch = ctx.event.repository.default_branch
        contents = [self._github.get_file_content(ctx.owner, ctx.repo, path, ref=branch) for path in DOC_FILES]
        docs = "\n\n".join(content for content in contents if content.strip()).strip()
        if len(docs) > DOC_CHAR_LIMIT:
            docs = docs[:DOC_CHAR_LIMIT] + "..."
        return docs

    def _find_duplicates(self, ctx: _EventContext, fields: FieldMap) -> List[DuplicateCandidate]:
        error = fields.lookup("error_message")
        if error is None:
            return []
        terms = [word for word in error[1].split() if len(word) > 4][:DUPLICATE_QUERY_TERMS]
        if not terms:
            return []
        issues = self._github.search_issues(ctx.owner, ctx.repo, " ".join(terms), max_results=DUPLICATE_SEARCH_LIMIT)
        return [
            DuplicateCandidate(number=issue.number, title=issue.title, url=issue.html_url)
            for issue in issues
            if issue.number != ctx.number
        ][:DUPLICATE_SEARCH_LIMIT]

    def _redact(self, text: str | None, findings: List[str]) -> str:
        result = self._redactor.redact(text)
        for finding in result.findings:
            if finding not in findings:
                findings.append(finding)
        return result.text

    def _post(self, ctx: _EventContext, body: str, state: ConversationState) -> Comment:
        """Redact the visible text, embed state, then post."""
        visible = self._redactor.redact_text(body)
        return self._github.post_comment(ctx.owner, ctx.repo, ctx.number, ctx.store.save(visible, state))


__all__ = ["Assessment", "ESCALATION_LABELS", "Orchestrator", "TriageOutcome", "pending_fields"]
