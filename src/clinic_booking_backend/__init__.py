'''
Availability & booking engine of the practice management backend.

The FastAPI application lives in `clinic_booking_backend.main:app`.
'''
__version__ = "0.1.0"
