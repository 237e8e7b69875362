# TanaPark — Database Models
# Import all models here for SQLAlchemy discovery

from tanapark.models.user import User                                      # noqa
from tanapark.models.parked_vehicle import ParkedVehicle                   # noqa
from tanapark.models.pending_package_payment import PendingPackagePayment  # noqa
from tanapark.models.pricing_settings import PricingSettings               # noqa
from tanapark.models.alert import Alert                                    # noqa
