"""
Legal-practice management API.

FastAPI service for cases, clients, invoices, hearings, time entries and
uploaded documents, over a document store that runs on Firestore, MongoDB or
in memory. ``lawyerzen.client`` holds the client-side preference and theme
controllers.
"""
