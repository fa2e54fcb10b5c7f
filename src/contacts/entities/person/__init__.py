"""Entity package: Person."""

from .entity import Person
from .gateway import PersonGateway, SalaryStats
from .table import PERSONS_TABLE, PersonTable
from .validation import ValidationReport, validate_person_fields

__all__ = [
    "Person",
    "PersonGateway",
    "PersonTable",
    "PERSONS_TABLE",
    "SalaryStats",
    "ValidationReport",
    "validate_person_fields",
]
