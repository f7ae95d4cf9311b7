from fastapi import APIRouter
from taskpool.invoice.invoice import router

API_STR = "/api/invoices"

invoice_router = APIRouter(prefix=API_STR)
invoice_router.include_router(router)
