from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from sqlmodel import Session
from database import get_session
from apps.auth.models import User

def get_current_user(request: Request, session: Session = Depends(get_session)) -> Optional[User]:
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    return session.get(User, user_id)

def require_user(request: Request, user: Optional[User] = Depends(get_current_user)) -> User:
    if user:
        return user

    # Browsers go to the login page, API clients get a plain 401
    if "text/html" in request.headers.get("accept", ""):
        raise HTTPException(
            status_code=status.HTTP_303_SEE_OTHER,
            headers={"Location": "/auth/login"}
        )
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
