from fastapi import APIRouter

# Public - identity, time slots, reservations
from mealticket.api.v1.public.me import router as me_router
from mealticket.api.v1.public.time_slots import router as time_slots_router
from mealticket.api.v1.public.reservations import router as reservations_router

# Staff - ticket validation at the counter
from mealticket.api.v1.staff.tickets import router as staff_tickets_router

# Admin
from mealticket.api.v1.admin.time_slots import router as admin_time_slots_router

api_router = APIRouter()

# --- Public ---
api_router.include_router(me_router)
api_router.include_router(time_slots_router)
api_router.include_router(reservations_router)

# --- Staff ---
api_router.include_router(staff_tickets_router)

# --- Admin ---
api_router.include_router(admin_time_slots_router)
