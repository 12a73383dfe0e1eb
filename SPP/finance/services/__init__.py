from .billing import BillingService
from .savings import SavingsService
from .scholarships import ScholarshipService
from .tuition import TuitionRateService

__all__ = ['BillingService', 'SavingsService', 'ScholarshipService', 'TuitionRateService']
