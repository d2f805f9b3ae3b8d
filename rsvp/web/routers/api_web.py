import logging

from fastapi import APIRouter, Depends, HTTPException, status

from rsvp.schemas.guest import GuestCreate, GuestOut, PageVisitOut
from rsvp.services.guest_store import GuestStore
from rsvp.web.deps import get_store, require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["admin-api"],
    dependencies=[Depends(require_api_key)],
)


@router.post("/guests", response_model=GuestOut, status_code=status.HTTP_201_CREATED)
async def add_guest(guest_in: GuestCreate, store: GuestStore = Depends(get_store)):
    """Issue an invitation code for a new guest"""
    logger.info(f"/api/guests request for name {guest_in.name}")
    guest = await store.insert_guest(guest_in.name)
    logger.info(f"Guest {guest.name} added with code {guest.code}")
    return guest


@router.get("/guests/{code}", response_model=GuestOut)
async def get_guest(code: str, store: GuestStore = Depends(get_store)):
    guest = await store.get_guest(code)
    if not guest:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Guest not found")
    return guest


@router.get("/rsvps", response_model=list[GuestOut])
async def get_rsvps(store: GuestStore = Depends(get_store)):
    logger.info("/api/rsvps request")
    return await store.list_guests()


@router.get("/visits", response_model=list[PageVisitOut])
async def get_visits(store: GuestStore = Depends(get_store)):
    logger.info("/api/visits request")
    return await store.list_page_visits()
