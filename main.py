import os
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

load_dotenv(".env")

ROOT_PATH = os.getenv("ROOT_PATH", "")

from taskpool.core.errors import TaskpoolError
from taskpool.core.main_router import router as main_router
from taskpool.task import task_router
from taskpool.invoice import invoice_router

logger = logging.getLogger("uvicorn.error")

app = FastAPI(
    title="Taskpool APIs",
    root_path=ROOT_PATH,
    swagger_ui_parameters={'displayRequestDuration': True}
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.exception_handler(TaskpoolError)
async def taskpool_error_handler(request: Request, exc: TaskpoolError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "error": type(exc).__name__})


app.include_router(main_router)
app.include_router(task_router)
app.include_router(invoice_router)

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=True)
