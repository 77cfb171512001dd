from app.models.payment_intent import PaymentIntent
from app.models.profile import Profile
from app.models.subscription import Subscription
from app.models.used_signature import UsedSignature

__all__ = ["PaymentIntent", "Profile", "Subscription", "UsedSignature"]
