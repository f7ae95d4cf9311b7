from fastapi import APIRouter
from taskpool.task.task import router

API_STR = "/api/projects"

task_router = APIRouter(prefix=API_STR)
task_router.include_router(router)
