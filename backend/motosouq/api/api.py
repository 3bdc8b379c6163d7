from fastapi import APIRouter
from motosouq.api.v1.endpoints import (
    auth,
    users,
    cards,
    listings,
    sooms,
    auctions,
    promo_codes,
    license_plates,
)

api_router = APIRouter()

# Incluir routers para diferentes recursos
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(cards.router, tags=["cards"])
api_router.include_router(listings.router, prefix="/listings", tags=["listings"])
api_router.include_router(sooms.router, tags=["sooms"])
api_router.include_router(auctions.router, prefix="/auctions", tags=["auctions"])
api_router.include_router(promo_codes.router, prefix="/promo-codes", tags=["promo-codes"])
api_router.include_router(license_plates.router, prefix="/license-plates", tags=["license-plates"])
