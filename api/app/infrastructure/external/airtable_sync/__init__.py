"""
Pipeline de sincronización one-way: Airtable -> store relacional.

Objetivos de diseño:
- Idempotencia: se puede ejecutar N veces sin duplicar datos.
- Monotonía: cada entidad guarda el último lastModified aplicado; nunca
  se pisa un estado más nuevo con uno más viejo (webhooks vs full sync).
- Sin cursor global: cada corrida es independiente y re-ejecutable.
- Control total: mapeo/transformaciones/resolución de relaciones en código.
"""
