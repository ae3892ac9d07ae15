from datetime import timedelta

from app.core.config import settings
from app.core.security import create_access_token
from app.models import User

API = settings.API_V1_STR


def auth_headers_for(user: User) -> dict[str, str]:
    token = create_access_token(user.id, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}
