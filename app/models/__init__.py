from .user import User
from .catalog import Brand, Category, University, UniversityDomain
from .discount import Discount, DiscountClaim, DiscountUsage, FraudAlert
from .verification import VerificationRequest
from .audit import AuditLog
