"""Route modules for the previewhub server.

Each module defines an APIRouter for one surface:
- socket: workspace WebSocket (connection handler)
- files: file CRUD
- execute: process launch
- preview: static preview serving
- misc: health, liveness
"""

from previewhub.server.routes.execute import router as execute_router
from previewhub.server.routes.files import router as files_router
from previewhub.server.routes.misc import router as misc_router
from previewhub.server.routes.preview import router as preview_router
from previewhub.server.routes.socket import router as socket_router

__all__ = [
    "execute_router",
    "files_router",
    "misc_router",
    "preview_router",
    "socket_router",
]
