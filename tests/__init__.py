"""
Test suite for the MediConnect scheduling core.

Covers the store, the backing-store mirror, scheduling, the appointment
lifecycle, clinical records, reports and the HTTP API.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
