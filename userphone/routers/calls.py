from fastapi import APIRouter, Depends, HTTPException

from userphone.dependencies import get_call_manager
from userphone.models.api.calls import (
    ActiveCall,
    CallChannel,
    InitiateCallRequest,
    ParticipantChangeResponse,
    RelayMessageRequest,
    RelayMessageResponse,
    ReportCallResponse,
    SkipCallRequest,
)
from userphone.models.api.results import CallResult
from userphone.services.call_manager import CallManager

router = APIRouter()


@router.post("", response_model=CallResult)
async def initiate_call(
    request: InitiateCallRequest,
    manager: CallManager = Depends(get_call_manager),
) -> CallResult:
    """
    Start a call from a channel.

    The result's ``outcome`` is QUEUED, CONNECTED or FAILED; failures such as
    an existing call or a missing webhook are returned with status 200.
    """
    channel = CallChannel(id=request.channel_id, guild_id=request.guild_id)
    return await manager.initiate_call(channel, request.initiator_id)


@router.post("/{channel_id}/hangup", response_model=CallResult)
async def hangup(
    channel_id: str, manager: CallManager = Depends(get_call_manager)
) -> CallResult:
    """End the channel's call, or take it out of the queue."""
    return await manager.hangup(channel_id)


@router.post("/{channel_id}/skip", response_model=CallResult)
async def skip(
    channel_id: str,
    request: SkipCallRequest,
    manager: CallManager = Depends(get_call_manager),
) -> CallResult:
    """End the channel's call and look for a new match."""
    return await manager.skip(channel_id, request.user_id)


@router.get("/channels/{channel_id}", response_model=ActiveCall)
async def get_active_call(
    channel_id: str, manager: CallManager = Depends(get_call_manager)
) -> ActiveCall:
    call = await manager.get_active_call(channel_id)
    if not call:
        raise HTTPException(status_code=404, detail="No active call for channel")
    return call


@router.post("/{channel_id}/messages", response_model=RelayMessageResponse)
async def relay_message(
    channel_id: str,
    request: RelayMessageRequest,
    manager: CallManager = Depends(get_call_manager),
) -> RelayMessageResponse:
    """Mirror a message to the other side; ``relayed`` is false outside a call."""
    relayed = await manager.relay_message(
        channel_id,
        request.user_id,
        request.username,
        request.content,
        request.attachment_url,
    )
    return RelayMessageResponse(relayed=relayed)


@router.post(
    "/{channel_id}/participants/{user_id}", response_model=ParticipantChangeResponse
)
async def add_participant(
    channel_id: str, user_id: str, manager: CallManager = Depends(get_call_manager)
) -> ParticipantChangeResponse:
    found = await manager.add_participant(channel_id, user_id)
    return ParticipantChangeResponse(call_found=found)


@router.delete(
    "/{channel_id}/participants/{user_id}", response_model=ParticipantChangeResponse
)
async def remove_participant(
    channel_id: str, user_id: str, manager: CallManager = Depends(get_call_manager)
) -> ParticipantChangeResponse:
    found = await manager.remove_participant(channel_id, user_id)
    return ParticipantChangeResponse(call_found=found)


@router.get("/ended/{call_id}", response_model=ActiveCall)
async def get_ended_call(
    call_id: str, manager: CallManager = Depends(get_call_manager)
) -> ActiveCall:
    """Get the snapshot of a recently ended call for moderation review."""
    call = await manager.get_ended_call(call_id)
    if not call:
        raise HTTPException(status_code=404, detail="Ended call not found")
    return call


@router.post("/ended/{call_id}/report", response_model=ReportCallResponse)
async def report_call(
    call_id: str, manager: CallManager = Depends(get_call_manager)
) -> ReportCallResponse:
    """Flag a call for moderation and extend its snapshot retention."""
    extended = await manager.report_call(call_id)
    return ReportCallResponse(reported=True, snapshot_extended=extended)
