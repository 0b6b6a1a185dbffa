import logging

from fastapi import Depends, FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

import config
import models
from database import engine
from errors import NotFoundError, register_error_handlers
from request_context import RequestContext, get_request_context
from routers import assignments, attendance, auth, courses, grades, notices, users

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create database tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="College Management Backend")

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

for module in (auth, users, courses, assignments, attendance, grades, notices):
    app.include_router(module.router)


# ---------------------------
# PREFLIGHT / UNKNOWN RESOURCES
# ---------------------------
@app.options("/api/{path:path}", include_in_schema=False)
def preflight(path: str):
    return Response(status_code=200)


@app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "DELETE"], include_in_schema=False)
def unknown_resource(path: str, ctx: RequestContext = Depends(get_request_context)):
    logger.info("Unknown resource %r (%s /%s)", ctx.resource, ctx.method, ctx.path)
    raise NotFoundError("Resource not found")


logger.info("College Management Backend ready (database: %s)", engine.url.render_as_string(hide_password=True))
