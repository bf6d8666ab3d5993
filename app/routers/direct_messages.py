"""
Direct message endpoints
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.conversation import Conversation, ConversationList
from app.schemas.message import ConversationHistory, DirectMessageCreate, DirectMessageResponse
from app.security import get_current_user_id
from app.services import ConversationAggregator, MessageStore, MessagingGateway, get_gateway

router = APIRouter(prefix="/dm", tags=["direct_messages"])


@router.post("/messages", response_model=DirectMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_direct_message(
    payload: DirectMessageCreate,
    current_user_id: str = Depends(get_current_user_id),
    gateway: MessagingGateway = Depends(get_gateway)
):
    """
    Send a direct message
    Request body:
    {
        "receiver_id": "user_2b",
        "content": "hello"
    }
    """
    return await gateway.send(
        current_user_id,
        payload.receiver_id,
        payload.content,
        sender_id=payload.sender_id
    )


@router.get("/conversation/{counterpart_id}", response_model=ConversationHistory)
def get_conversation_history(
    counterpart_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get every message between the caller and one counterpart, oldest first"""
    messages = MessageStore.list_between(db, current_user_id, current_user_id, counterpart_id)

    return {
        "counterpart_id": counterpart_id,
        "messages": [DirectMessageResponse.model_validate(m) for m in messages],
        "count": len(messages)
    }


@router.get("/conversations", response_model=ConversationList)
def get_all_conversations(
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get the caller's conversations, most recent first"""
    conversations = ConversationAggregator.list_conversations(db, current_user_id)

    return {
        "conversations": conversations,
        "count": len(conversations)
    }


@router.get("/conversations/{counterpart_id}", response_model=Conversation)
def open_conversation(
    counterpart_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get one conversation, or a placeholder when no message exists yet"""
    return ConversationAggregator.open_conversation(db, current_user_id, counterpart_id)
