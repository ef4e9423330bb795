from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Load environment variables from .env file FIRST
load_dotenv()

from config import get_settings
from database import create_db_and_tables, engine
import models  # Import models to register them with SQLModel
from routers import availability, bookings, notifications, payments, prescriptions, reviews
from services.slot_resolver import seed_default_schedule
from middleware.request_logger import RequestLoggingMiddleware
from middleware.security_headers import SecurityHeadersMiddleware
from utils.rate_limit import limiter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlmodel import Session

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    with Session(engine) as session:
        seed_default_schedule(session)
    logger.info("Clinic API started (%s)", settings.environment)
    yield


app = FastAPI(
    title="Clinic API",
    description="Appointments, availability, payments, reviews and prescriptions for the clinic",
    version="0.1.0",
    lifespan=lifespan
)

# Set up rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS configuration
origins = [
    "http://localhost:3000",  # Development frontend
    settings.frontend_url,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(origins)),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-Admin-Key", "X-Requested-With", "Accept", "Origin"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(RequestLoggingMiddleware)

# Security headers apply to every response
app.add_middleware(SecurityHeadersMiddleware, video_domain=settings.video_domain)

# Include routers
app.include_router(bookings.router)
app.include_router(payments.router)
app.include_router(availability.router)
app.include_router(reviews.router)
app.include_router(prescriptions.router)
app.include_router(notifications.router)


@app.get("/")
def read_root():
    return {"message": f"Welcome to the {settings.clinic_name} API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
