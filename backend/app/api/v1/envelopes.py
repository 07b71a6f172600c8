from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user_id
from backend.app.database import get_db_session
from backend.app.schemas.budgets import EnvelopeInDB, EnvelopeUpdate
from backend.app.services.budget_service import get_envelope, update_envelope

router = APIRouter()

@router.get("/{envelope_id}", response_model=EnvelopeInDB)
def get_envelope_endpoint(
    envelope_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return get_envelope(db, envelope_id, user_id)

@router.patch("/{envelope_id}", response_model=EnvelopeInDB)
def update_envelope_endpoint(
    envelope_id: str,
    envelope_update: EnvelopeUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Update an envelope's name, type, target or active flag.

    The balance only changes through transactions.
    """
    return update_envelope(db, envelope_id, envelope_update, user_id)
