import logging
from fastapi import APIRouter, Depends
from civicseva.middleware.auth import Principal, get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/me")
async def get_profile(current_user: Principal = Depends(get_current_user)):
    logger.info(f"Profile lookup: user={current_user.user_id}")
    return {
        "id": current_user.user_id,
        "email": current_user.email,
        "name": current_user.display_name,
        "role": current_user.role,
        "is_staff": current_user.is_staff,
    }
