"""
Feedback-submission backend.

Clients upload attachments straight to object storage with temporary
credentials, then submit bug reports that reference the stored paths. This
package provides the FastAPI application, the relational store and the
object-storage/STS wrappers behind it.
"""
