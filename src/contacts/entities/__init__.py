"""Entities module with entity-centric structure.

Each entity has its own package containing:
- entity.py: Immutable domain model
- table.py: Database persistence model
- gateway.py: Data access layer issuing the entity's queries
"""

from .person import Person, PersonGateway, PersonTable

__all__ = [
    "Person",
    "PersonGateway",
    "PersonTable",
]
