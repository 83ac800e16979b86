from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from questline_api.award_engine import RewardSummary, apply_rewards
from questline_api.db import begin_write
from questline_api.errors import (
    ConflictError,
    NotFoundError,
    StoreBusyError,
    ValidationError,
)
from questline_api.eventlog import log_event
from questline_api.metrics import inc_counter
from questline_api.models import (
    Profile,
    Quest,
    QuestStep,
    QuestSubmission,
    UserQuest,
)


@dataclass(frozen=True)
class CheckIn:
    lat: float
    lng: float


@dataclass(frozen=True)
class SubmitStepResult:
    user_quest: UserQuest
    submission_id: str
    step_reward: RewardSummary
    completion_reward: RewardSummary | None = None

    @property
    def completed(self) -> bool:
        return bool(self.user_quest.is_completed)

    @property
    def xp_awarded(self) -> int:
        total = int(self.step_reward.xp_awarded)
        if self.completion_reward is not None:
            total += int(self.completion_reward.xp_awarded)
        return total


def _as_aware_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _find_user_quest(session: Session, *, user_id: str, quest_id: str) -> UserQuest | None:
    return session.scalars(
        select(UserQuest)
        .where(UserQuest.user_id == str(user_id))
        .where(UserQuest.quest_id == str(quest_id))
        .limit(1)
    ).first()


def _step_count(session: Session, *, quest_id: str) -> int:
    steps = session.scalars(
        select(QuestStep.step_number).where(QuestStep.quest_id == str(quest_id))
    ).all()
    return max((int(n) for n in steps), default=0)


def accept_quest(
    session: Session,
    *,
    user_id: str,
    quest_id: str,
    now: datetime | None = None,
) -> UserQuest:
    now_dt = _as_aware_utc(now) or datetime.now(UTC)
    uid = str(user_id)
    qid = str(quest_id)

    try:
        begin_write(session)
        if session.get(Profile, uid) is None:
            raise NotFoundError("profile_not_found", f"no profile for {uid!r}")
        if session.get(Quest, qid) is None:
            raise NotFoundError("quest_not_found", f"unknown quest {qid!r}")
        if _find_user_quest(session, user_id=uid, quest_id=qid) is not None:
            raise ConflictError("quest_already_accepted")

        uq = UserQuest(
            id=f"uq_{uuid4().hex}",
            user_id=uid,
            quest_id=qid,
            is_accepted=True,
            accepted_at=now_dt,
            current_step=1,
            is_completed=False,
            completed_at=None,
            last_submission_at=None,
            created_at=now_dt,
        )
        session.add(uq)
        log_event(
            session,
            type="quest_accepted",
            user_id=uid,
            payload={"quest_id": qid, "user_quest_id": uq.id},
            now=now_dt,
        )
        # On PostgreSQL a concurrent accept for the same pair trips the unique key here.
        session.flush()
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        inc_counter("questline_quest_accepts_total", outcome="conflict")
        raise ConflictError("quest_already_accepted") from exc
    except ConflictError:
        session.rollback()
        inc_counter("questline_quest_accepts_total", outcome="conflict")
        raise
    except OperationalError as exc:
        session.rollback()
        inc_counter("questline_quest_accepts_total", outcome="busy")
        raise StoreBusyError("store_busy", str(exc.orig)[:200]) from exc
    except Exception:
        session.rollback()
        raise

    inc_counter("questline_quest_accepts_total", outcome="ok")
    return uq


def _claim_step(session: Session, *, user_quest_id: str, expected_step: int, now: datetime) -> bool:
    """
    Open the write transaction and compare-and-set advance current_step. Under
    concurrent submissions for the same expected step exactly one caller sees
    a matched row; the others match zero rows once the winner has committed.
    """
    begin_write(session)
    result = session.execute(
        update(UserQuest)
        .where(UserQuest.id == str(user_quest_id))
        .where(UserQuest.current_step == int(expected_step))
        .where(UserQuest.is_completed.is_(False))
        .values(current_step=UserQuest.current_step + 1, last_submission_at=now)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0) == 1


@dataclass(frozen=True)
class _StepClaim:
    user_quest_id: str
    step_id: str
    step_number: int
    proof: str


def _validate_submission(
    session: Session,
    *,
    user_id: str,
    quest_id: str,
    step_id: str,
    proof_ref: str,
    check_in: CheckIn | None,
) -> _StepClaim:
    uq = _find_user_quest(session, user_id=user_id, quest_id=quest_id)
    if uq is None or not bool(uq.is_accepted):
        raise NotFoundError("user_quest_not_found", "quest has not been accepted")
    step = session.get(QuestStep, str(step_id))
    if step is None or str(step.quest_id) != quest_id:
        raise NotFoundError("step_not_found", f"unknown step {step_id!r} for quest")
    if bool(uq.is_completed):
        raise ValidationError("quest_completed", "quest is already completed")

    expected = int(uq.current_step or 0)
    if int(step.step_number) != expected:
        raise ValidationError(
            "step_out_of_order",
            f"expected step {expected}, got step {int(step.step_number)}",
        )
    if bool(step.requires_check_in) and check_in is None:
        raise ValidationError("check_in_required", "this step requires a check-in location")
    proof = str(proof_ref or "").strip()
    if not proof:
        raise ValidationError("proof_required", "a proof reference is required")
    return _StepClaim(
        user_quest_id=str(uq.id),
        step_id=str(step.id),
        step_number=expected,
        proof=proof,
    )


def submit_step(
    session: Session,
    *,
    user_id: str,
    quest_id: str,
    step_id: str,
    proof_ref: str,
    check_in: CheckIn | None = None,
    caption: str | None = None,
    now: datetime | None = None,
) -> SubmitStepResult:
    """
    Record proof for the user's current step and advance by exactly one.

    Validation runs in its own read transaction. The advance, the submission
    row, the step reward and (on the last step) the completion reward then
    commit together or not at all; the compare-and-set on current_step decides
    a race between submissions that validated against the same step.
    """
    now_dt = _as_aware_utc(now) or datetime.now(UTC)
    uid = str(user_id)
    qid = str(quest_id)

    try:
        claim = _validate_submission(
            session,
            user_id=uid,
            quest_id=qid,
            step_id=str(step_id),
            proof_ref=proof_ref,
            check_in=check_in,
        )
    except Exception:
        session.rollback()
        inc_counter("questline_step_submissions_total", outcome="rejected")
        raise
    session.rollback()

    try:
        if not _claim_step(
            session, user_quest_id=claim.user_quest_id, expected_step=claim.step_number, now=now_dt
        ):
            raise ConflictError("step_conflict", "step was advanced by a concurrent submission")

        submission = QuestSubmission(
            id=f"qs_{uuid4().hex}",
            user_id=uid,
            quest_id=qid,
            step_id=claim.step_id,
            image_url=claim.proof[:2000],
            check_in_lat=float(check_in.lat) if check_in is not None else None,
            check_in_lng=float(check_in.lng) if check_in is not None else None,
            caption=(str(caption)[:500] if caption else None),
            created_at=now_dt,
        )
        session.add(submission)
        log_event(
            session,
            type="step_submitted",
            user_id=uid,
            payload={
                "quest_id": qid,
                "step_id": claim.step_id,
                "step_number": claim.step_number,
                "submission_id": submission.id,
            },
            now=now_dt,
        )
        session.flush()

        step_reward = apply_rewards(
            session,
            user_id=uid,
            source_id=claim.step_id,
            source_kind="StepCompletion",
            now=now_dt,
        )

        completion_reward: RewardSummary | None = None
        if claim.step_number >= _step_count(session, quest_id=qid):
            session.execute(
                update(UserQuest)
                .where(UserQuest.id == claim.user_quest_id)
                .values(is_completed=True, completed_at=now_dt)
                .execution_options(synchronize_session=False)
            )
            # Synergy is evaluated after our own completion row is written, on
            # this transaction's snapshot.
            completion_reward = apply_rewards(
                session,
                user_id=uid,
                source_id=qid,
                source_kind="QuestCompletion",
                now=now_dt,
            )
            log_event(
                session,
                type="quest_completed",
                user_id=uid,
                payload={
                    "quest_id": qid,
                    "xp_awarded": completion_reward.xp_awarded,
                    "synergy_applied": completion_reward.synergy_applied,
                },
                now=now_dt,
            )

        session.commit()
    except IntegrityError as exc:
        session.rollback()
        inc_counter("questline_step_submissions_total", outcome="conflict")
        raise ConflictError("step_conflict", "concurrent submission for this step") from exc
    except ConflictError:
        session.rollback()
        inc_counter("questline_step_submissions_total", outcome="conflict")
        raise
    except OperationalError as exc:
        session.rollback()
        inc_counter("questline_step_submissions_total", outcome="busy")
        raise StoreBusyError("store_busy", str(exc.orig)[:200]) from exc
    except Exception:
        session.rollback()
        inc_counter("questline_step_submissions_total", outcome="rejected")
        raise

    uq = session.get(UserQuest, claim.user_quest_id)
    inc_counter("questline_step_submissions_total", outcome="ok")
    return SubmitStepResult(
        user_quest=uq,
        submission_id=submission.id,
        step_reward=step_reward,
        completion_reward=completion_reward,
    )


def get_state(session: Session, *, user_id: str, quest_id: str) -> UserQuest:
    uq = _find_user_quest(session, user_id=str(user_id), quest_id=str(quest_id))
    if uq is None:
        raise NotFoundError("user_quest_not_found", "quest has not been accepted")
    return uq


def list_user_quests(session: Session, *, user_id: str) -> list[tuple[UserQuest, Quest]]:
    rows = session.execute(
        select(UserQuest, Quest)
        .join(Quest, Quest.id == UserQuest.quest_id)
        .where(UserQuest.user_id == str(user_id))
        .where(UserQuest.is_accepted.is_(True))
        .order_by(UserQuest.accepted_at.desc(), UserQuest.id.asc())
    ).all()
    return [(uq, q) for uq, q in rows]


def list_submissions(
    session: Session, *, user_id: str, quest_id: str
) -> list[QuestSubmission]:
    return list(
        session.scalars(
            select(QuestSubmission)
            .where(QuestSubmission.user_id == str(user_id))
            .where(QuestSubmission.quest_id == str(quest_id))
            .order_by(QuestSubmission.created_at.asc(), QuestSubmission.id.asc())
        ).all()
    )
