from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from recovery.core.config import settings
from recovery.routers import dunning, payment_failure_webhooks

OPENAPI_TAGS = [
    {
        "name": "Dunning",
        "description": "Configure retry policies and inspect dunning campaigns for failed payments.",
    },
    {"name": "Webhooks", "description": "Receive payment failure notifications."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Revenue recovery API. Detects failed recurring payments, opens dunning "
        "campaigns and drives them through scheduled retries and notifications."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(dunning.router, prefix="/v1/dunning", tags=["Dunning"])
app.include_router(
    payment_failure_webhooks.router,
    prefix="/v1/webhooks/payment_failures",
    tags=["Webhooks"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
