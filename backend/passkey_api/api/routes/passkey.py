from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from typing import List, Optional

from ...core.config import Settings
from ...core.exceptions import InvalidInputError, PasskeyException
from ...models.auth_models import (
    BeginCeremonyRequest, MessageResponse, SessionInfo, UserResponse, UserListResponse
)
from ...models.user import User
from ...services.ceremony_coordinator import CeremonyCoordinator
from ...services.credential_store import CredentialStore
from ..dependencies import get_coordinator, get_credential_store, get_settings
from ..errors import error_response

router = APIRouter(prefix="/passkey", tags=["passkey"])


def _set_ceremony_cookie(response: Response, token: str, settings: Settings):
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.CEREMONY_SESSION_SECONDS,
        path=settings.SESSION_COOKIE_PATH,
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite=settings.COOKIE_SAMESITE
    )


def _clear_ceremony_cookie(response: Response, settings: Settings):
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path=settings.SESSION_COOKIE_PATH,
        domain=settings.COOKIE_DOMAIN
    )


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id_b64,
        name=user.name,
        display_name=user.display_name,
        credential_count=len(user.credentials),
        created_at=user.created_at
    )


async def _read_client_response(request: Request) -> bytes:
    body = await request.body()
    if not body or not body.strip():
        raise InvalidInputError("Request body is required")
    return body


@router.post("/registerStart")
async def register_start(
    body: BeginCeremonyRequest,
    response: Response,
    coordinator: CeremonyCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings)
):
    """Create the user and return WebAuthn creation options"""
    start = await coordinator.begin_registration(body.username)
    _set_ceremony_cookie(response, start.token, settings)
    return start.options


@router.post("/registerFinish", response_model=MessageResponse)
async def register_finish(
    request: Request,
    coordinator: CeremonyCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings)
):
    """Verify the authenticator's attestation and store the credential"""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    try:
        client_response = await _read_client_response(request)
        await coordinator.finish_registration(token, client_response)
    except PasskeyException as e:
        response = error_response(request, e)
        _clear_ceremony_cookie(response, settings)
        return response

    response = JSONResponse(content=MessageResponse(message="Registration Success").model_dump())
    _clear_ceremony_cookie(response, settings)
    return response


@router.post("/loginStart")
async def login_start(
    body: BeginCeremonyRequest,
    response: Response,
    coordinator: CeremonyCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings)
):
    """Return WebAuthn request options for an existing user"""
    start = await coordinator.begin_login(body.username)
    _set_ceremony_cookie(response, start.token, settings)
    return start.options


@router.post("/loginFinish", response_model=MessageResponse)
async def login_finish(
    request: Request,
    coordinator: CeremonyCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings)
):
    """Verify the assertion and open an authenticated session"""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    try:
        client_response = await _read_client_response(request)
        result = await coordinator.finish_login(token, client_response)
    except PasskeyException as e:
        response = error_response(request, e)
        _clear_ceremony_cookie(response, settings)
        return response

    response = JSONResponse(content=MessageResponse(message="Login Success").model_dump())
    _clear_ceremony_cookie(response, settings)
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=result.session.token,
        max_age=settings.AUTH_SESSION_HOURS * 3600,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite=settings.COOKIE_SAMESITE
    )
    return response


@router.get("/session", response_model=SessionInfo)
async def get_session_info(
    request: Request,
    coordinator: CeremonyCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings)
):
    """Current user behind the authenticated session cookie"""
    auth_token: Optional[str] = request.cookies.get(settings.AUTH_COOKIE_NAME)
    user = await coordinator.current_user(auth_token)
    session = await coordinator.session_manager.get_user_session(user.id)
    return SessionInfo(
        user=_user_response(user),
        is_authenticated=True,
        expires_at=session.expires_at if session else None
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    coordinator: CeremonyCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings)
):
    """End the authenticated session"""
    ended = await coordinator.logout(request.cookies.get(settings.AUTH_COOKIE_NAME))
    message = "Logout successful" if ended else "No active session"
    response = JSONResponse(content=MessageResponse(message=message).model_dump())
    response.delete_cookie(key=settings.AUTH_COOKIE_NAME, path="/", domain=settings.COOKIE_DOMAIN)
    return response


@router.get("/users", response_model=List[UserListResponse])
async def list_users(
    request: Request,
    coordinator: CeremonyCoordinator = Depends(get_coordinator),
    credential_store: CredentialStore = Depends(get_credential_store),
    settings: Settings = Depends(get_settings)
):
    """List registered users (names and display names only); login required"""
    await coordinator.current_user(request.cookies.get(settings.AUTH_COOKIE_NAME))
    users = await credential_store.list_users()
    return [UserListResponse(**user) for user in users]
