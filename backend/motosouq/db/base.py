# Importar todos los modelos para que Base.metadata los conozca antes de create_all
from motosouq.db.base_class import Base  # noqa: F401
from motosouq.models.user import User, RevokedToken  # noqa: F401
from motosouq.models.card import CardType, BankCard  # noqa: F401
from motosouq.models.listing import Listing  # noqa: F401
from motosouq.models.submission import Submission  # noqa: F401
from motosouq.models.submission_response import SubmissionResponse  # noqa: F401
from motosouq.models.soom_negotiation import SoomNegotiation  # noqa: F401
from motosouq.models.auction_history import AuctionHistory  # noqa: F401
from motosouq.models.promo_code import PromoCode, PromoCodeUsage  # noqa: F401
from motosouq.models.license_plate import LicensePlate, LicensePlateValue  # noqa: F401
