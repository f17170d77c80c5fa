"""
Test Suite for Dossier Compliance

- status resolution and reasons
- summary aggregation
- task reconciliation (idempotence, due-date lock, partial failure)
- stores and the HTTP layer
"""
