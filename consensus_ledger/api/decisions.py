"""
Decision API Routes: the operations the messaging layer calls.

1. POST /decisions - Open a decision (and register its voters)
2. POST /decisions/{id}/votes - Record a voter's click
3. GET /decisions/{id} - Decision merged with its tally
4. GET /decisions/{id}/missing-voters - Who has not voted yet
5. DELETE /decisions/{id} - Creator removes a decision with its votes
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Response, status

from ..core import ConsensusError
from ..schemas import (
    DecisionCreate,
    DecisionResponse,
    DecisionStatsResponse,
    MessageUpdate,
    MissingVotersResponse,
    VoteCreate,
    VoteResponse,
    VotersAdd,
    VotersAddedResponse,
)
from .deps import DecisionServiceDep, http_error

router = APIRouter(prefix="/decisions", tags=["decisions"])


@router.post(
    "",
    response_model=DecisionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new decision",
)
async def create_decision(request: DecisionCreate, service: DecisionServiceDep):
    """Create a decision in the active state."""
    try:
        decision = await service.create_decision(
            name=request.name,
            proposal=request.proposal,
            success_policy=request.success_policy,
            channel_ref=request.channel_ref,
            creator_ref=request.creator_ref,
            deadline=request.deadline,
            voter_ids=request.voter_ids,
        )
    except ConsensusError as e:
        raise http_error(e)
    return DecisionResponse.model_validate(decision)


@router.get(
    "",
    response_model=list[DecisionResponse],
    summary="List active decisions",
    description="Active decisions, soonest deadline first.",
)
async def list_decisions(service: DecisionServiceDep):
    try:
        decisions = await service.list_active()
    except ConsensusError as e:
        raise http_error(e)
    return [DecisionResponse.model_validate(d) for d in decisions]


@router.get(
    "/{decision_id}",
    response_model=DecisionStatsResponse,
    summary="Get a decision with its tally",
)
async def get_decision(decision_id: UUID, service: DecisionServiceDep):
    try:
        stats = await service.get_decision_with_stats(decision_id)
    except ConsensusError as e:
        raise http_error(e)

    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Decision {decision_id} not found",
        )
    return DecisionStatsResponse.model_validate(stats)


@router.post(
    "/{decision_id}/voters",
    response_model=VotersAddedResponse,
    summary="Register required voters",
)
async def add_voters(decision_id: UUID, request: VotersAdd, service: DecisionServiceDep):
    """Register voters; users already registered are skipped."""
    try:
        added = await service.add_voters(decision_id, request.user_ids)
    except ConsensusError as e:
        raise http_error(e)
    return VotersAddedResponse(added=added)


@router.delete(
    "/{decision_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a decision",
    description="""
    Remove a decision together with its voters and votes.

    - 403 when the requester is not the decision's creator
    - 404 when the decision does not exist
    """,
)
async def delete_decision(
    decision_id: UUID,
    service: DecisionServiceDep,
    requested_by: str = Query(..., min_length=1, description="User asking for the delete"),
):
    try:
        await service.delete_decision(decision_id, requested_by)
    except ConsensusError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{decision_id}/message",
    response_model=DecisionResponse,
    summary="Attach the announcement message reference",
)
async def attach_message(decision_id: UUID, request: MessageUpdate, service: DecisionServiceDep):
    try:
        decision = await service.attach_message(decision_id, request.message_ref)
    except ConsensusError as e:
        raise http_error(e)
    return DecisionResponse.model_validate(decision)


@router.post(
    "/{decision_id}/votes",
    response_model=VoteResponse,
    summary="Cast or change a vote",
    description="""
    Record a vote. Re-voting replaces the earlier choice.

    - 403 when the user is not a registered voter
    - 409 when the decision is closed or its deadline has passed
    """,
)
async def cast_vote(decision_id: UUID, request: VoteCreate, service: DecisionServiceDep):
    try:
        result = await service.cast_vote(decision_id, request.user_id, request.value)
    except ConsensusError as e:
        raise http_error(e)
    return VoteResponse.model_validate(result)


@router.get(
    "/{decision_id}/missing-voters",
    response_model=MissingVotersResponse,
    summary="List voters who have not voted",
)
async def get_missing_voters(decision_id: UUID, service: DecisionServiceDep):
    try:
        user_ids = await service.get_missing_voters(decision_id)
    except ConsensusError as e:
        raise http_error(e)
    return MissingVotersResponse(decision_id=decision_id, user_ids=user_ids)
