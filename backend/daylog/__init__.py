"""
Daylog Backend — Package Initializer
=====================================

What: Marks the `daylog` directory as a Python package.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    The backend is layered around one component with persistence semantics:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Entry, Media, Weather)  │  ← Orchestration, external I/O
    ├─────────────────────────────────────┤
    │   Entry Store + Change Notifier     │  ← insert / list_all / subscribe
    ├─────────────────────────────────────┤
    │   Models & Schemas (Data)           │  ← SQLAlchemy ORM + Pydantic
    └─────────────────────────────────────┘

    The store is constructed explicitly and handed to its consumers; nothing in
    the package holds a process-wide store instance.
"""

__version__ = "1.0.0"
