from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from questline_api.award_engine import RewardSummary
from questline_api.db import atomic
from questline_api.deps import AdminOnly, CurrentUserId, DBSession
from questline_api.errors import ConflictError, NotFoundError
from questline_api.models import (
    Badge,
    Quest,
    QuestStep,
    RewardDefinition,
    Title,
    UserQuest,
)
from questline_api.quest_tracker import (
    CheckIn,
    accept_quest,
    get_state,
    list_submissions,
    list_user_quests,
    submit_step,
)
from questline_api.rewards import BadgeReward, TitleReward, add_definition, make_reward


class UserQuestOut(BaseModel):
    id: str
    quest_id: str
    is_accepted: bool
    accepted_at: datetime | None = None
    current_step: int
    is_completed: bool
    completed_at: datetime | None = None
    last_submission_at: datetime | None = None


class MyQuestOut(BaseModel):
    quest_title: str
    base_xp_reward: int
    state: UserQuestOut


class CheckInIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class SubmitStepIn(BaseModel):
    proof_ref: str = Field(min_length=1, max_length=2000)
    check_in: CheckInIn | None = None
    caption: str | None = Field(default=None, max_length=500)


class RewardSummaryOut(BaseModel):
    source_kind: str
    source_id: str
    xp_awarded: int
    xp_total: int
    level: int
    level_up: bool
    synergy_applied: bool = False
    badges_granted: list[str] = Field(default_factory=list)
    titles_granted: list[str] = Field(default_factory=list)


class SubmitStepOut(BaseModel):
    ok: bool = True
    submission_id: str
    state: UserQuestOut
    completed: bool
    xp_awarded: int
    step_reward: RewardSummaryOut
    completion_reward: RewardSummaryOut | None = None


class SubmissionOut(BaseModel):
    id: str
    step_id: str | None = None
    image_url: str
    check_in: CheckInIn | None = None
    caption: str | None = None
    created_at: datetime


class StepIn(BaseModel):
    description: str = Field(min_length=1, max_length=1000)
    requires_check_in: bool = False
    step_xp_reward: int = Field(default=25, ge=0, le=100_000)


class RewardIn(BaseModel):
    xp_amount: int | None = Field(default=None, ge=0, le=100_000)
    badge_id: str | None = Field(default=None, max_length=120)
    title_id: str | None = Field(default=None, max_length=120)


class OpsQuestUpsertIn(BaseModel):
    id: str | None = Field(default=None, max_length=80)
    title: str = Field(min_length=1, max_length=120)
    short_description: str = Field(default="", max_length=400)
    long_description: str = Field(default="", max_length=4000)
    is_daily: bool = False
    is_geofenced: bool = False
    base_xp_reward: int = Field(default=100, ge=0, le=100_000)
    steps: list[StepIn] = Field(min_length=1, max_length=50)
    rewards: list[RewardIn] = Field(default_factory=list, max_length=20)


class OpsQuestOut(BaseModel):
    id: str
    title: str
    base_xp_reward: int
    step_ids: list[str]
    reward_ids: list[str]


router = APIRouter(prefix="/api/quests", tags=["quests"])
ops_router = APIRouter(prefix="/api/ops/quests", tags=["ops"])


def _state_out(uq: UserQuest) -> UserQuestOut:
    return UserQuestOut(
        id=str(uq.id),
        quest_id=str(uq.quest_id),
        is_accepted=bool(uq.is_accepted),
        accepted_at=uq.accepted_at,
        current_step=int(uq.current_step or 0),
        is_completed=bool(uq.is_completed),
        completed_at=uq.completed_at,
        last_submission_at=uq.last_submission_at,
    )


def _summary_out(s: RewardSummary) -> RewardSummaryOut:
    return RewardSummaryOut(
        source_kind=str(s.source_kind),
        source_id=str(s.source_id),
        xp_awarded=int(s.xp_awarded),
        xp_total=int(s.xp_total),
        level=int(s.level),
        level_up=bool(s.level_up),
        synergy_applied=bool(s.synergy_applied),
        badges_granted=list(s.badges_granted),
        titles_granted=list(s.titles_granted),
    )


@router.get("/mine", response_model=list[MyQuestOut])
def mine(
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> list[MyQuestOut]:
    return [
        MyQuestOut(
            quest_title=str(q.title),
            base_xp_reward=int(q.base_xp_reward or 0),
            state=_state_out(uq),
        )
        for uq, q in list_user_quests(db, user_id=user_id)
    ]


@router.post("/{quest_id}/accept", response_model=UserQuestOut)
def accept(
    quest_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> UserQuestOut:
    uq = accept_quest(db, user_id=user_id, quest_id=quest_id, now=datetime.now(UTC))
    return _state_out(uq)


@router.post("/{quest_id}/steps/{step_id}/submit", response_model=SubmitStepOut)
def submit(
    quest_id: str,
    step_id: str,
    payload: SubmitStepIn,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> SubmitStepOut:
    check_in = (
        CheckIn(lat=float(payload.check_in.lat), lng=float(payload.check_in.lng))
        if payload.check_in is not None
        else None
    )
    res = submit_step(
        db,
        user_id=user_id,
        quest_id=quest_id,
        step_id=step_id,
        proof_ref=payload.proof_ref,
        check_in=check_in,
        caption=payload.caption,
        now=datetime.now(UTC),
    )
    return SubmitStepOut(
        submission_id=str(res.submission_id),
        state=_state_out(res.user_quest),
        completed=res.completed,
        xp_awarded=res.xp_awarded,
        step_reward=_summary_out(res.step_reward),
        completion_reward=(
            _summary_out(res.completion_reward) if res.completion_reward else None
        ),
    )


@router.get("/{quest_id}/state", response_model=UserQuestOut)
def state(
    quest_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> UserQuestOut:
    return _state_out(get_state(db, user_id=user_id, quest_id=quest_id))


@router.get("/{quest_id}/submissions", response_model=list[SubmissionOut])
def submissions(
    quest_id: str,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> list[SubmissionOut]:
    out: list[SubmissionOut] = []
    for s in list_submissions(db, user_id=user_id, quest_id=quest_id):
        check_in = None
        if s.check_in_lat is not None and s.check_in_lng is not None:
            check_in = CheckInIn(lat=float(s.check_in_lat), lng=float(s.check_in_lng))
        out.append(
            SubmissionOut(
                id=str(s.id),
                step_id=str(s.step_id) if s.step_id else None,
                image_url=str(s.image_url),
                check_in=check_in,
                caption=s.caption,
                created_at=s.created_at,
            )
        )
    return out


@ops_router.post("", response_model=OpsQuestOut, dependencies=[AdminOnly])
def ops_upsert_quest(
    payload: OpsQuestUpsertIn,
    db: Session = DBSession,
) -> OpsQuestOut:
    """
    Create or replace a quest with its ordered steps and reward rows. Steps are
    numbered 1..N in payload order. Replacing steps of a quest that users have
    already accepted is rejected.
    """
    now = datetime.now(UTC)
    # Validate every reward before writing anything.
    rewards = [
        make_reward(
            source_kind="quest",
            xp_amount=r.xp_amount,
            badge_id=r.badge_id,
            title_id=r.title_id,
        )
        for r in payload.rewards
    ]

    with atomic(db):
        for r in rewards:
            if isinstance(r, BadgeReward) and db.get(Badge, r.badge_id) is None:
                raise NotFoundError("badge_not_found", f"unknown badge {r.badge_id!r}")
            if isinstance(r, TitleReward) and db.get(Title, r.title_id) is None:
                raise NotFoundError("title_not_found", f"unknown title {r.title_id!r}")

        qid = str(payload.id or f"q_{uuid4().hex}")
        q = db.get(Quest, qid)
        if q is None:
            q = Quest(id=qid, created_at=now)
        else:
            accepted = db.scalars(
                select(UserQuest.id).where(UserQuest.quest_id == qid).limit(1)
            ).first()
            if accepted is not None:
                raise ConflictError("quest_in_progress", "quest already has participants")
            db.execute(delete(QuestStep).where(QuestStep.quest_id == qid))
            db.execute(
                delete(RewardDefinition)
                .where(RewardDefinition.source_kind == "quest")
                .where(RewardDefinition.source_id == qid)
            )

        q.title = payload.title
        q.short_description = payload.short_description
        q.long_description = payload.long_description
        q.is_daily = bool(payload.is_daily)
        q.is_geofenced = bool(payload.is_geofenced)
        q.base_xp_reward = int(payload.base_xp_reward)
        q.updated_at = now
        db.add(q)
        db.flush()

        step_ids: list[str] = []
        for i, s in enumerate(payload.steps, start=1):
            sid = f"qst_{uuid4().hex}"
            db.add(
                QuestStep(
                    id=sid,
                    quest_id=qid,
                    step_number=i,
                    description=s.description,
                    requires_check_in=bool(s.requires_check_in),
                    step_xp_reward=int(s.step_xp_reward),
                    created_at=now,
                )
            )
            step_ids.append(sid)

        reward_ids = [
            add_definition(db, source_kind="quest", source_id=qid, reward=r, now=now).id
            for r in rewards
        ]

    return OpsQuestOut(
        id=qid,
        title=payload.title,
        base_xp_reward=int(payload.base_xp_reward),
        step_ids=step_ids,
        reward_ids=reward_ids,
    )


@ops_router.get("/{quest_id}", response_model=OpsQuestOut, dependencies=[AdminOnly])
def ops_get_quest(quest_id: str, db: Session = DBSession) -> OpsQuestOut:
    q = db.get(Quest, str(quest_id))
    if q is None:
        raise NotFoundError("quest_not_found")
    step_ids = db.scalars(
        select(QuestStep.id)
        .where(QuestStep.quest_id == q.id)
        .order_by(QuestStep.step_number.asc())
    ).all()
    reward_ids = db.scalars(
        select(RewardDefinition.id)
        .where(RewardDefinition.source_kind == "quest")
        .where(RewardDefinition.source_id == q.id)
        .order_by(RewardDefinition.created_at.asc(), RewardDefinition.id.asc())
    ).all()
    return OpsQuestOut(
        id=str(q.id),
        title=str(q.title),
        base_xp_reward=int(q.base_xp_reward or 0),
        step_ids=[str(s) for s in step_ids],
        reward_ids=[str(r) for r in reward_ids],
    )
