"""Travel request approval service.

The FastAPI application lives in :mod:`travel.api` and the Celery worker in
:mod:`travel.worker`; neither is imported here so that migrations can run
before the API creates its tables.
"""
