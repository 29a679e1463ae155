"""
Servicios de aplicacion.

Contiene la logica de negocio reutilizable que no pertenece
a un caso de uso especifico.
"""
from app.application.services.category_indexer import CategoryIndexer, build_index
from app.application.services.budget_index_service import BudgetIndexService

__all__ = [
    # Indice de presupuesto
    "CategoryIndexer",
    "build_index",
    "BudgetIndexService",
]
