"""
Enrollment and vendor sync services.

Services take a Session plus ids or domain inputs and raise the errors in
enrollment_errors / sync_jobs. They flush but never commit; routes and
Celery tasks own the transaction.
"""
