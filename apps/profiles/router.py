from typing import List, Optional
from fastapi import APIRouter, Depends, Request, Query, Response
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlmodel import Session
from database import get_session
from apps.auth.deps import get_current_user, require_user
from apps.auth.models import User
from apps.profiles.models import Profile, PublicUser, FollowState
from apps.profiles.services import ProfileService
from apps.core.tmdb import image_url
from config import settings

router = APIRouter(tags=["profiles"])
templates = Jinja2Templates(directory="templates")
templates.env.globals["image_url"] = image_url

def get_service(session: Session = Depends(get_session)) -> ProfileService:
    return ProfileService(session)

# --- PAGES ---

@router.get("/profile/{username}", response_class=HTMLResponse)
def profile_page(
    request: Request,
    username: str,
    user: Optional[User] = Depends(get_current_user),
    service: ProfileService = Depends(get_service)
):
    owner = service.get_user_by_username(username)
    profile = service.get_profile(username)
    is_owner = bool(user) and user.id == owner.id
    is_following = bool(user) and not is_owner and service.is_following(user.id, owner.id)

    return templates.TemplateResponse(request, "profiles/profile.html", {
        "profile": profile,
        "user": user,
        "is_following": is_following,
        "is_owner": is_owner,
        "og_image": f"{settings.SITE_URL}/profile/{profile.user.username}/og.svg",
    })

@router.get("/profile/{username}/og.svg")
def profile_og_image(request: Request, username: str, service: ProfileService = Depends(get_service)):
    profile = service.get_profile(username)
    svg = templates.get_template("profiles/og.svg").render(profile=profile, site_name=settings.PROJECT_NAME)
    return Response(
        content=svg,
        media_type="image/svg+xml",
        headers={"Cache-Control": "public, max-age=3600"}
    )

@router.get("/profiles/discover", response_class=HTMLResponse)
def discover_page(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    service: ProfileService = Depends(get_service)
):
    return templates.TemplateResponse(request, "profiles/discover.html", {
        "profiles": service.discover(),
        "user": user,
    })

# --- API ---

@router.get("/profiles/search", response_model=List[PublicUser])
def search_profiles(q: str = Query(..., min_length=1), service: ProfileService = Depends(get_service)):
    return service.search_users(q)

@router.get("/profiles/{username}", response_model=Profile)
def get_profile(username: str, service: ProfileService = Depends(get_service)):
    return service.get_profile(username)

@router.post("/profiles/{username}/follow", response_model=FollowState)
def toggle_follow(
    username: str,
    user: User = Depends(require_user),
    service: ProfileService = Depends(get_service)
):
    return service.toggle_follow(user, username)
