"""Database repository layer: one repo per aggregate root."""

from case_engine.db.repositories.advocate_repo import AdvocateRepo
from case_engine.db.repositories.case_repo import CaseRepo

__all__ = [
    "AdvocateRepo",
    "CaseRepo",
]
