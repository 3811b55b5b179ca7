from fastapi import APIRouter, Depends, Form, Request, UploadFile, File, HTTPException
from fastapi.responses import RedirectResponse
from sqlmodel import Session
from database import get_session
from apps.auth.deps import require_user
from apps.auth.models import User, UserRead
from apps.auth.services import AuthService
from apps.auth.utils import auth0_client, logout_url
from apps.core.exceptions import ValidationError
from apps.core.models import HiveStatus
from config import settings

router = APIRouter(prefix="/auth", tags=["auth"])

def get_service(session: Session = Depends(get_session)) -> AuthService:
    return AuthService(session)

# --- AUTH0 ROUTES ---

@router.get("/login")
async def login(request: Request):
    client = auth0_client()
    if not client:
        raise HTTPException(status_code=503, detail="Authentication service not configured")

    redirect_uri = settings.AUTH0_CALLBACK_URL or request.url_for("auth_callback")
    return await client.authorize_redirect(request, str(redirect_uri))

@router.get("/callback", name="auth_callback")
async def auth_callback(request: Request, service: AuthService = Depends(get_service)):
    client = auth0_client()
    if not client:
        raise HTTPException(status_code=503, detail="Authentication service not configured")

    token = await client.authorize_access_token(request)
    user_info = token.get("userinfo")

    if not user_info or not user_info.get("email"):
        raise HTTPException(status_code=400, detail="Failed to get user info")

    user = service.get_or_create_user(user_info)
    request.session["user_id"] = user.id

    return RedirectResponse(url="/")

@router.get("/logout")
def logout(request: Request):
    request.session.clear()
    if not auth0_client():
        return RedirectResponse(url="/")
    return RedirectResponse(url=logout_url(str(request.base_url)))

# --- SETTINGS ROUTES ---

@router.get("/me", response_model=UserRead)
def me(user: User = Depends(require_user)):
    return user

@router.post("/settings/username", response_model=UserRead)
def save_username(
    username: str = Form(...),
    user: User = Depends(require_user),
    service: AuthService = Depends(get_service)
):
    return service.set_username(user, username)

@router.post("/settings/name", response_model=UserRead)
def save_display_name(
    name: str = Form(...),
    user: User = Depends(require_user),
    service: AuthService = Depends(get_service)
):
    return service.set_display_name(user, name)

@router.post("/settings/status", response_model=UserRead)
def save_default_status(
    status: str = Form(...),
    user: User = Depends(require_user),
    service: AuthService = Depends(get_service)
):
    try:
        default_status = HiveStatus.from_legacy(status)
    except ValueError:
        raise ValidationError(f"Unknown status: {status}")
    return service.set_default_status(user, default_status)

@router.post("/settings/avatar", response_model=UserRead)
def save_avatar(
    avatar: UploadFile = File(...),
    user: User = Depends(require_user),
    service: AuthService = Depends(get_service)
):
    return service.update_avatar(user, avatar)

@router.delete("/account")
def delete_account(
    request: Request,
    confirm: bool = Form(False),
    user: User = Depends(require_user),
    service: AuthService = Depends(get_service)
):
    if not confirm:
        raise ValidationError("Confirmation required!")

    service.delete_account(user)
    request.session.clear()
    return {"deleted": True}
