"""
Account routes: registration, login/logout, profile and preferences.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from lawyerzen.auth import (
    SessionIdentity,
    clear_auth_cookie,
    create_access_token,
    hash_password,
    require_auth,
    set_auth_cookie,
    verify_password,
)
from lawyerzen.config import Settings
from lawyerzen.db import Collections, DocumentService, QueryFilter
from lawyerzen.dependencies import get_app_settings, get_documents
from lawyerzen.preferences import merge_preferences, resolve_preferences
from lawyerzen.schemas import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    OkResponse,
    PreferencesUpdate,
    ProfileUpdate,
    RegisterRequest,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _user_response(user: dict) -> UserResponse:
    return UserResponse(
        id=user["id"],
        name=user.get("name", ""),
        email=user["email"],
        role=user.get("role", "lawyer"),
        barNumber=user.get("barNumber"),
        firm=user.get("firm"),
        preferences=resolve_preferences(user),
    )


def _find_user_by_email(documents: DocumentService, email: str) -> dict | None:
    users = documents.query_documents(
        Collections.USERS, [QueryFilter("email", "==", email)], limit=1
    )
    return users[0] if users else None


def _load_current_user(documents: DocumentService, identity: SessionIdentity) -> dict:
    user = documents.get_document_by_id(Collections.USERS, identity.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    payload: RegisterRequest,
    response: Response,
    documents: DocumentService = Depends(get_documents),
    settings: Settings = Depends(get_app_settings),
):
    email = payload.email.strip().lower()
    if _find_user_by_email(documents, email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = documents.create_document(
        Collections.USERS,
        {
            "name": payload.name.strip(),
            "email": email,
            "role": payload.role,
            "barNumber": payload.barNumber.strip() if payload.barNumber else None,
            "firm": payload.firm.strip() if payload.firm else None,
            "passwordHash": hash_password(payload.password),
        },
    )
    token = create_access_token(settings, user["id"], email, user["role"])
    set_auth_cookie(response, settings, token)
    logger.info("Registered user %s", user["id"])
    return AuthResponse(token=token, user=_user_response(user))


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    response: Response,
    documents: DocumentService = Depends(get_documents),
    settings: Settings = Depends(get_app_settings),
):
    user = _find_user_by_email(documents, payload.email.strip().lower())
    if not user or not verify_password(payload.password, user.get("passwordHash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token(settings, user["id"], user["email"], user.get("role"))
    set_auth_cookie(response, settings, token)
    return AuthResponse(token=token, user=_user_response(user))


@router.post("/logout", response_model=OkResponse)
def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    clear_auth_cookie(response, settings)
    return OkResponse()


@router.get("/me", response_model=MeResponse)
def get_me(
    response: Response,
    identity: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    response.headers.update(NO_CACHE_HEADERS)
    return MeResponse(user=_user_response(_load_current_user(documents, identity)))


@router.put("/me", response_model=MeResponse)
def update_me(
    payload: ProfileUpdate,
    identity: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    user = _load_current_user(documents, identity)
    updates = payload.model_dump(exclude_unset=True, exclude={"preferences"})
    if payload.preferences is not None:
        updates["preferences"] = merge_preferences(
            user, payload.preferences.model_dump(exclude_unset=True)
        )
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    updated = documents.update_document(Collections.USERS, identity.user_id, updates)
    return MeResponse(user=_user_response(updated))


@router.patch("/settings/preferences", response_model=MeResponse)
def update_preferences(
    payload: PreferencesUpdate,
    identity: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    user = _load_current_user(documents, identity)
    preferences = merge_preferences(user, payload.model_dump(exclude_unset=True))
    updated = documents.update_document(
        Collections.USERS, identity.user_id, {"preferences": preferences}
    )
    return MeResponse(user=_user_response(updated))
