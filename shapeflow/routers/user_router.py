from fastapi import APIRouter, Depends

from shapeflow.auth import Principal
from shapeflow.dependencies import get_credential_store, get_current_principal
from shapeflow.models import DEFAULT_THEME
from shapeflow.schemas import PreferencesRequest, PreferencesResponse
from shapeflow.stores import CredentialStore

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/preferences", response_model=PreferencesResponse)
async def get_preferences(principal: Principal = Depends(get_current_principal)):
    return PreferencesResponse(theme=principal.user.theme or DEFAULT_THEME)


@router.patch("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    request: PreferencesRequest,
    principal: Principal = Depends(get_current_principal),
    credentials: CredentialStore = Depends(get_credential_store),
):
    """
    Update the UI theme ("light" or "dark"; anything else is a 400).
    """
    await credentials.update_theme(principal.user_id, request.theme)
    return PreferencesResponse(theme=request.theme)
