from fastapi import APIRouter

from gdpt.modules.auth.router import router as auth_router
from gdpt.modules.invitations.admin_router import router as admin_invitations_router
from gdpt.modules.invitations.router import router as invitations_router
from gdpt.modules.submissions.admin_router import router as admin_submissions_router
from gdpt.modules.submissions.router import router as submissions_router
from gdpt.modules.users.admin_router import leaders_router as admin_leaders_router
from gdpt.modules.users.admin_router import router as admin_users_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(invitations_router, prefix="/invitations", tags=["Invitations"])

api_router.include_router(submissions_router, prefix="/submissions", tags=["Submissions"])

api_router.include_router(
    admin_invitations_router,
    prefix="/admin/invitations",
    tags=["Admin - Invitations"],
)

api_router.include_router(
    admin_submissions_router,
    prefix="/admin/submissions",
    tags=["Admin - Submissions"],
)

api_router.include_router(admin_users_router, prefix="/admin/users", tags=["Admin - Users"])

api_router.include_router(admin_leaders_router, prefix="/admin/leaders", tags=["Admin - Leaders"])
