"""Notification preference router."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select

from calnotify.db.config import get_session
from calnotify.middleware.auth import CurrentUser, ensure_same_user, get_current_user
from calnotify.models.user import User
from calnotify.models.user_preference import UserPreference
from calnotify.schemas.preference import PreferenceResponse, PreferenceUpdate
from calnotify.utils.timeutils import utcnow

router = APIRouter(tags=["Notification Preferences"])


def _get_or_default(session: Session, user_id: str) -> UserPreference:
    preference = session.exec(select(UserPreference).where(UserPreference.user_id == user_id)).first()
    return preference or UserPreference(user_id=user_id)


@router.get("/{user_id}/notification-preferences", response_model=PreferenceResponse)
async def get_preferences(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Return stored preferences, or the defaults if none were saved."""
    ensure_same_user(user_id, current_user)
    return _get_or_default(session, user_id)


@router.put("/{user_id}/notification-preferences", response_model=PreferenceResponse)
async def update_preferences(
    user_id: str,
    data: PreferenceUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    ensure_same_user(user_id, current_user)
    if not session.get(User, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    preference = _get_or_default(session, user_id)
    changes = data.model_dump(exclude_unset=True)
    if "lead_times" in changes:
        changes["lead_times"] = sorted(set(changes["lead_times"]))
    for field, value in changes.items():
        setattr(preference, field, value)
    preference.updated_at = utcnow()

    session.add(preference)
    session.commit()
    session.refresh(preference)
    return preference
