import asyncio
import logging
import os

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from catcafe_booking.bookings.publisher import publish_outbox_events
from catcafe_booking.bookings.router import router as booking_router
from catcafe_booking.exceptions import BookingException
from catcafe_booking.packages.cleanup_worker import clear_expired_packages_worker
from catcafe_booking.packages.router import router as package_router
from catcafe_booking.rooms.router import dates_router, router as room_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Cat Cafe Booking Service",
    description="Room bookings, package balances and receipts for the cat café coworking space.",
    version="1.0.0",
)


@app.exception_handler(BookingException)
async def booking_exception_handler(request: Request, exc: BookingException):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    message = errors[0]["msg"] if errors else "Invalid request."
    return JSONResponse(status_code=422, content={"success": False, "error": message, "details": errors})


@app.get("/health")
def health_check():
    return {"status": "ok", "service": "catcafe-booking"}


@app.on_event("startup")
async def startup_event():
    asyncio.create_task(publish_outbox_events())
    asyncio.create_task(clear_expired_packages_worker())


app.include_router(booking_router, prefix="/api/v1")
app.include_router(room_router, prefix="/api/v1")
app.include_router(dates_router, prefix="/api/v1")
app.include_router(package_router, prefix="/api/v1")
