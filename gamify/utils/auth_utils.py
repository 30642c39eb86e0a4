# gamify/utils/auth_utils.py
from __future__ import annotations

import os

from bson import ObjectId
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ..db.mongo import USERS, get_database

# ------------------------------------------------------------------
# Config
# ------------------------------------------------------------------
# Support either JWT_SECRET_KEY or JWT_SECRET (fallback)
SECRET_KEY = os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET") or ""
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

bearer_scheme = HTTPBearer(auto_error=True)


async def _load_user_or_401(database, user_id: str):
    if not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload.")

    user = await database[USERS].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    database=Depends(get_database),
):
    """
    Validates Bearer JWT and loads the user.
    Returns the Mongo user document (with ObjectId _id).
    """
    token = credentials.credentials
    if not SECRET_KEY:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="JWT secret not configured.")

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("user_id")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload.")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token.")

    return await _load_user_or_401(database, user_id)


async def get_current_admin_user(user: dict = Depends(get_current_user)):
    """
    Admin guard. Accepts either user.role == 'admin' or user.is_admin == True.
    """
    if not (user.get("role") == "admin" or user.get("is_admin") is True):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only.")
    return user
