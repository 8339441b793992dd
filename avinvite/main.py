import logging

from dotenv import load_dotenv
from fastapi import FastAPI

from avinvite.observability.logger import init_sentry
from avinvite.routes.health import router as health_router
from avinvite.routes.inbound import router as inbound_router

load_dotenv()

logging.basicConfig(level=logging.INFO)

init_sentry()

app = FastAPI(title="AV Invite Mailer")

# Routes
app.include_router(health_router, tags=["health"])
app.include_router(inbound_router, prefix="/inbound", tags=["inbound"])
