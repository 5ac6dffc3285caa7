from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from stepagent.agents import DEFAULT_AGENT, get_agent
from stepagent.settings import settings

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    message: str
    model: str | None = None


class ChatResponse(BaseModel):
    conversation_id: str
    answer: Optional[str] = None
    rounds: int
    events: List[Dict[str, Any]]
    state: Optional[Dict[str, Any]] = None


@router.post("/{conversation_id}", response_model=ChatResponse)
async def chat_endpoint(conversation_id: str, body: ChatRequest):
    if body.model and body.model not in settings.AVAILABLE_MODELS:
        raise HTTPException(status_code=400, detail=f"Unknown model: {body.model}")

    agent = get_agent(DEFAULT_AGENT)
    result = await agent.run_turn(conversation_id, body.message, model_name=body.model)
    return ChatResponse(
        conversation_id=conversation_id,
        answer=result.answer,
        rounds=len(result.rounds),
        events=[event.model_dump(mode="json") for event in result.events],
        state=result.state.to_dict() if result.state else None,
    )


@router.get("/{conversation_id}/state")
async def state_endpoint(conversation_id: str):
    state = await get_agent(DEFAULT_AGENT).get_state(conversation_id)
    if state is None:
        raise HTTPException(status_code=404, detail="No agent state for conversation")
    return state.to_dict()


@router.delete("/{conversation_id}", status_code=204)
async def delete_endpoint(conversation_id: str):
    await get_agent(DEFAULT_AGENT).delete_conversation(conversation_id)
