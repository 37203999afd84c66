"""Import every model so ``Base.metadata`` knows all tables."""

from src.repositories.offers.models.offer_model import Offer  # noqa: F401
from src.repositories.offers.models.verification_metric_model import (  # noqa: F401
    VerificationMetric,
)
