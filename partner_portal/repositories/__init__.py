from partner_portal.repositories.achievements import AchievementRepository
from partner_portal.repositories.annual_progress import AnnualProgressRepository
from partner_portal.repositories.base import EntityRepository
from partner_portal.repositories.certifications import CertificationRepository, TrainingCertificationRepository
from partner_portal.repositories.commissions import CommissionRepository
from partner_portal.repositories.courses import TrainingCourseRepository
from partner_portal.repositories.credentials import CredentialRepository
from partner_portal.repositories.deals import DealRepository
from partner_portal.repositories.documents import LegalDocumentRepository
from partner_portal.repositories.partners import PartnerRepository
from partner_portal.repositories.quotes import QuoteRepository
from partner_portal.repositories.tier_history import TierHistoryRepository
from partner_portal.repositories.users import UserRepository

__all__ = [
    "AchievementRepository",
    "AnnualProgressRepository",
    "CertificationRepository",
    "CommissionRepository",
    "CredentialRepository",
    "DealRepository",
    "EntityRepository",
    "LegalDocumentRepository",
    "PartnerRepository",
    "QuoteRepository",
    "TierHistoryRepository",
    "TrainingCertificationRepository",
    "TrainingCourseRepository",
    "UserRepository",
]
