# Authentication module

from app.modules.auth.dependencies import (
    get_current_user,
    get_current_master_admin,
    get_current_college_admin,
    get_current_college_staff,
    get_current_student,
)

__all__ = [
    "get_current_user",
    "get_current_master_admin",
    "get_current_college_admin",
    "get_current_college_staff",
    "get_current_student",
]
